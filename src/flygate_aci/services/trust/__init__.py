from .registry import TrustedDevice, TrustRegistry

__all__ = ["TrustedDevice", "TrustRegistry"]
