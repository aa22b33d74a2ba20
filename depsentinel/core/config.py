"""Discovery configuration — plain values supplied by the host or the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

ENABLED_OPTION = "depsentinel.dependency.discovery.enabled"
DELAY_SECONDS_OPTION = "depsentinel.dependency.discovery.delay.seconds"
INTERVAL_HOURS_OPTION = "depsentinel.dependency.discovery.interval.hours"

ENABLED_ENV = "DEPSENTINEL_DISCOVERY_ENABLED"
DELAY_SECONDS_ENV = "DEPSENTINEL_DISCOVERY_DELAY_SECONDS"
INTERVAL_HOURS_ENV = "DEPSENTINEL_DISCOVERY_INTERVAL_HOURS"

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class DiscoveryConfig(BaseModel):
    """Enable flag, initial delay and re-scan interval.

    An interval of zero or less disables periodic re-scans: discovery then
    runs exactly once.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    delay_seconds: float = 5.0
    interval_hours: float = 6.0

    @field_validator("enabled", mode="before")
    @classmethod
    def _parse_bool(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        return v

    @field_validator("delay_seconds")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delay_seconds must not be negative")
        return v

    @property
    def delay(self) -> float:
        """Initial delay in seconds."""
        return self.delay_seconds

    @property
    def interval(self) -> float:
        """Re-scan interval in seconds (<= 0 means run once)."""
        return self.interval_hours * 3600.0

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> DiscoveryConfig:
        """Build from host-supplied dotted property keys; missing keys use defaults."""
        values: dict[str, Any] = {}
        for key, field_name in (
            (ENABLED_OPTION, "enabled"),
            (DELAY_SECONDS_OPTION, "delay_seconds"),
            (INTERVAL_HOURS_OPTION, "interval_hours"),
        ):
            if key in properties and properties[key] is not None:
                values[field_name] = properties[key]
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DiscoveryConfig:
        env = os.environ if environ is None else environ
        return cls.from_properties(
            {
                ENABLED_OPTION: env.get(ENABLED_ENV),
                DELAY_SECONDS_OPTION: env.get(DELAY_SECONDS_ENV),
                INTERVAL_HOURS_OPTION: env.get(INTERVAL_HOURS_ENV),
            }
        )
