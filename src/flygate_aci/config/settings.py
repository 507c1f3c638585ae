from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping
import os

import yaml

from flygate_aci.config import const

__all__ = ["AciSettings", "DeviceSeed", "load_settings", "load_device_seeds"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class DeviceSeed:
    device_id: str
    device_name: str
    public_key_pem: str | None = None


@dataclass(slots=True)
class AciSettings:
    aci_id: str = const.DEFAULT_ACI_ID
    flygate_base_url: str = const.DEFAULT_FLYGATE_BASE_URL
    # empty secret disables the gatekeeper; the console then stays LOCKED
    shared_secret: str = ""
    poll_interval_ms: int = const.DEFAULT_POLL_INTERVAL_MS
    duty_ttl_max_seconds: int = const.DEFAULT_DUTY_TTL_MAX_SECONDS
    flygate_timeout_seconds: float = const.DEFAULT_FLYGATE_TIMEOUT_SECONDS
    nonce_ttl_seconds: int = const.DEFAULT_NONCE_TTL_SECONDS
    admin_token: str = const.DEFAULT_ADMIN_TOKEN
    allow_unbound_nonce: bool = False
    trusted_devices_file: str | None = None
    log_level: str = "INFO"
    extra_devices: list[DeviceSeed] = field(default_factory=list)

    @property
    def gatekeeper_enabled(self) -> bool:
        return bool(self.shared_secret)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    def public_dict(self) -> dict[str, Any]:
        """Settings as exposed over the API: the shared secret never leaves the process."""
        data = asdict(self)
        data.pop("shared_secret", None)
        data.pop("admin_token", None)
        data.pop("extra_devices", None)
        return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _from_mapping(data: Mapping[str, Any]) -> AciSettings:
    settings = AciSettings()
    flygate = data.get("flygate") if isinstance(data.get("flygate"), dict) else {}
    if data.get("aci_id"):
        settings.aci_id = str(data["aci_id"])
    if flygate.get("base_url"):
        settings.flygate_base_url = str(flygate["base_url"])
    if flygate.get("shared_secret"):
        settings.shared_secret = str(flygate["shared_secret"])
    if flygate.get("poll_interval_ms") is not None:
        settings.poll_interval_ms = int(flygate["poll_interval_ms"])
    if flygate.get("duty_ttl_max_seconds") is not None:
        settings.duty_ttl_max_seconds = int(flygate["duty_ttl_max_seconds"])
    if flygate.get("timeout_seconds") is not None:
        settings.flygate_timeout_seconds = float(flygate["timeout_seconds"])
    if data.get("nonce_ttl_seconds") is not None:
        settings.nonce_ttl_seconds = int(data["nonce_ttl_seconds"])
    if data.get("admin_token"):
        settings.admin_token = str(data["admin_token"])
    if data.get("allow_unbound_nonce") is not None:
        settings.allow_unbound_nonce = _as_bool(data["allow_unbound_nonce"])
    if data.get("trusted_devices_file"):
        settings.trusted_devices_file = str(data["trusted_devices_file"])
    if data.get("log_level"):
        settings.log_level = str(data["log_level"]).upper()
    settings.extra_devices = _seeds_from_list(data.get("devices"))
    return settings


def _apply_env(settings: AciSettings, environ: Mapping[str, str]) -> AciSettings:
    if environ.get("ACI_ID"):
        settings.aci_id = environ["ACI_ID"]
    if environ.get("FLYGATE_BASE_URL"):
        settings.flygate_base_url = environ["FLYGATE_BASE_URL"]
    if environ.get("FLYGATE_ACI_SHARED_SECRET"):
        settings.shared_secret = environ["FLYGATE_ACI_SHARED_SECRET"]
    if environ.get("POLL_INTERVAL_MS"):
        settings.poll_interval_ms = int(environ["POLL_INTERVAL_MS"])
    if environ.get("DUTY_TTL_MAX_SECONDS"):
        settings.duty_ttl_max_seconds = int(environ["DUTY_TTL_MAX_SECONDS"])
    if environ.get("FLYGATE_TIMEOUT_SECONDS"):
        settings.flygate_timeout_seconds = float(environ["FLYGATE_TIMEOUT_SECONDS"])
    if environ.get("ACI_NONCE_TTL_SECONDS"):
        settings.nonce_ttl_seconds = int(environ["ACI_NONCE_TTL_SECONDS"])
    if environ.get("ACI_ADMIN_TOKEN"):
        settings.admin_token = environ["ACI_ADMIN_TOKEN"]
    if environ.get("ACI_ALLOW_UNBOUND_NONCE"):
        settings.allow_unbound_nonce = _as_bool(environ["ACI_ALLOW_UNBOUND_NONCE"])
    if environ.get("ACI_TRUSTED_DEVICES"):
        settings.trusted_devices_file = environ["ACI_TRUSTED_DEVICES"]
    if environ.get("ACI_LOG_LEVEL"):
        settings.log_level = environ["ACI_LOG_LEVEL"].upper()
    return settings


def _seeds_from_list(raw: Any) -> list[DeviceSeed]:
    if not isinstance(raw, list):
        return []
    seeds: list[DeviceSeed] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        device_id = item.get("device_id")
        device_name = item.get("device_name")
        if not device_id or not device_name:
            continue
        key = item.get("public_key_pem")
        seeds.append(DeviceSeed(device_id=str(device_id), device_name=str(device_name), public_key_pem=str(key) if key else None))
    return seeds


def load_device_seeds(path: str | Path | None) -> list[DeviceSeed]:
    """Read ``devices: [{device_id, device_name, public_key_pem}]`` from a YAML file."""
    if not path:
        return []
    target = Path(path).expanduser()
    data = yaml.safe_load(target.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{target}: expected a mapping with a 'devices' list")
    return _seeds_from_list(data.get("devices"))


def load_settings(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> AciSettings:
    """
    Build settings from an optional YAML file (``ACI_CONFIG``) and the environment.

    Environment variables always win over file values.
    """
    env = os.environ if environ is None else environ
    config_path = path or env.get("ACI_CONFIG")
    data: dict[str, Any] = {}
    if config_path:
        loaded = yaml.safe_load(Path(config_path).expanduser().read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{config_path}: expected a mapping at top level")
        data = loaded
    return _apply_env(_from_mapping(data), env)
