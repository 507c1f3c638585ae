"""Static capability catalogs: the app tiles unlocked for each duty state."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = ["AppCapability", "GROUND_APPS", "FLIGHT_APPS", "apps_for"]


@dataclass(frozen=True, slots=True)
class AppCapability:
    app_id: str
    display_name: str
    icon: str
    intent_ids: tuple[str, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "displayName": self.display_name,
            "icon": self.icon,
            "intentIds": list(self.intent_ids),
        }


GROUND_APPS: tuple[AppCapability, ...] = (
    AppCapability("com.ops.general", "Ops", "FileText", ("open_doc",)),
    AppCapability("com.docs.viewer", "Docs", "Shield", ("open_doc",)),
    AppCapability("com.comms.general", "Comms", "Radio", ("call",)),
    AppCapability("com.maint.viewer", "Maintenance", "Wrench", ("view_status",)),
    AppCapability("com.weather.ground", "Weather", "Cloud", ("view_weather",)),
)

FLIGHT_APPS: tuple[AppCapability, ...] = (
    AppCapability("com.flight.ops", "Flight Ops", "FileText", ("open_checklist", "show_status")),
    AppCapability("com.flight.nav", "Navigation", "Map", ("route_summary", "wx_overlay")),
    AppCapability("com.flight.checklists", "Checklists", "Shield", ("open_checklist",)),
    AppCapability("com.flight.performance", "Performance", "ChartNoAxesCombined", ("calc_perf",)),
    AppCapability("com.flight.comms", "Comms", "Radio", ("freq_tune", "call")),
    AppCapability("com.flight.weather", "Weather", "Cloud", ("view_weather", "wx_radar")),
    AppCapability("com.flight.maps", "Flight Maps", "Map", ("show_map",)),
    AppCapability("com.flight.security", "Security", "Shield", ("threat_assess",)),
)


def apps_for(duty_state: str) -> tuple[AppCapability, ...]:
    """Return the catalog for a duty state; OFF_DUTY unlocks nothing."""
    if duty_state == "FLIGHT_MODE":
        return FLIGHT_APPS
    if duty_state == "ON_DUTY":
        return GROUND_APPS
    return ()
