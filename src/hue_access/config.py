from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import os


def _optional(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class AppConfig:
    port: int
    bridge_host: Optional[str]
    application_key: Optional[str]
    hass_origin: Optional[str]
    hass_access_token: Optional[str]
    bridge_rate_limit_rps: float
    hass_rate_limit_rps: float
    event_stream_max_backoff_seconds: float
    scene_ignore_window_seconds: float

    def __post_init__(self) -> None:
        if self.bridge_host and "://" in self.bridge_host:
            raise ValueError("HUE_BRIDGE_HOST must be a host name or address without a scheme")

    @property
    def bridge_configured(self) -> bool:
        return bool(self.bridge_host and self.application_key)

    @property
    def hass_configured(self) -> bool:
        return bool(self.hass_origin and self.hass_access_token)

    @staticmethod
    def from_env() -> "AppConfig":
        return AppConfig(
            port=int(os.getenv("PORT", "8000")),
            bridge_host=_optional(os.getenv("HUE_BRIDGE_HOST")),
            application_key=_optional(os.getenv("HUE_APPLICATION_KEY")),
            hass_origin=_optional(os.getenv("HASS_ORIGIN")),
            hass_access_token=_optional(os.getenv("HASS_ACCESS_TOKEN")),
            bridge_rate_limit_rps=float(os.getenv("BRIDGE_RATE_LIMIT_RPS", "10")),
            hass_rate_limit_rps=float(os.getenv("HASS_RATE_LIMIT_RPS", "10")),
            event_stream_max_backoff_seconds=float(os.getenv("EVENT_STREAM_MAX_BACKOFF_SECONDS", "30")),
            scene_ignore_window_seconds=float(os.getenv("SCENE_IGNORE_WINDOW_SECONDS", "5")),
        )
