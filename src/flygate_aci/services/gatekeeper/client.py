# src/flygate_aci/services/gatekeeper/client.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from flygate_aci.config.const import DEFAULT_FLYGATE_BASE_URL, DEFAULT_FLYGATE_TIMEOUT_SECONDS, FLYGATE_DUTY_PATH

__all__ = ["FlyGateClient", "FlyGateHttpError"]


class FlyGateHttpError(RuntimeError):
    """Raised when the FlyGate authority cannot be reached or answers with an error."""

    def __init__(self, message: str, *, status_code: int, payload: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(slots=True)
class FlyGateClient:
    """HTTP client for the FlyGate duty authority."""

    base_url: str = DEFAULT_FLYGATE_BASE_URL
    timeout: float = DEFAULT_FLYGATE_TIMEOUT_SECONDS
    # injectable for tests (httpx.MockTransport)
    transport: httpx.AsyncBaseTransport | None = None

    async def fetch_duty_assertion(self, *, nonce: str, aci_id: str) -> Mapping[str, Any]:
        """
        GET ``/api/duty?nonce=…&aci_id=…`` and return the decoded JSON object.

        Any transport failure, non-2xx status or non-object body raises
        :class:`FlyGateHttpError`; ``status_code`` is 0 when no response arrived.
        """
        params = {"nonce": nonce, "aci_id": aci_id}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.get(FLYGATE_DUTY_PATH, params=params)
        except httpx.RequestError as exc:
            raise FlyGateHttpError(f"GET {FLYGATE_DUTY_PATH} failed: {exc!r}", status_code=0) from exc

        if not response.is_success:
            raise FlyGateHttpError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                payload=response.text,
            )
        try:
            content = response.json()
        except ValueError as exc:
            raise FlyGateHttpError("response is not JSON", status_code=response.status_code, payload=response.text) from exc
        if not isinstance(content, dict):
            raise FlyGateHttpError("response is not a JSON object", status_code=response.status_code, payload=content)
        return content
