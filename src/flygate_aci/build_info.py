"""Version reported by the health endpoints and the OpenAPI document."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import metadata
import os
from typing import Final, Mapping

DISTRIBUTION: Final[str] = "flygate-aci"
UNKNOWN_VERSION: Final[str] = "0+unknown"


@dataclass(frozen=True, slots=True)
class BuildInfo:
    version: str


def resolve_version(environ: Mapping[str, str] | None = None) -> str:
    """``ACI_BUILD_VERSION`` wins (tablet image builds); otherwise the installed distribution version."""
    env = os.environ if environ is None else environ
    explicit = env.get("ACI_BUILD_VERSION")
    if explicit:
        return explicit
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return UNKNOWN_VERSION


BUILD_INFO: Final[BuildInfo] = BuildInfo(version=resolve_version())
