"""Host wiring — build a DiscoveryProcessor from configuration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from depsentinel.core.config import DiscoveryConfig
from depsentinel.engines.dependency_discovery.processor import DiscoveryProcessor
from depsentinel.engines.dependency_discovery.sink import DiscoverySink

log = structlog.get_logger("depsentinel.autoconfig")


def register_discovery(
    config: DiscoveryConfig | Mapping[str, Any] | None = None,
    sink: DiscoverySink | None = None,
) -> DiscoveryProcessor | None:
    """Return a configured processor, or None when discovery is disabled.

    ``config`` may be a :class:`DiscoveryConfig`, a mapping of host property
    keys, or None to read the environment.  The sink may be bound later with
    :meth:`DiscoveryProcessor.bind_sink`.
    """
    if config is None:
        config = DiscoveryConfig.from_env()
    elif not isinstance(config, DiscoveryConfig):
        config = DiscoveryConfig.from_properties(config)

    if not config.enabled:
        log.info("autoconfig.discovery_disabled")
        return None

    processor = DiscoveryProcessor(sink, delay=config.delay, interval=config.interval)
    log.info(
        "autoconfig.discovery_registered",
        delay_seconds=config.delay_seconds,
        interval_hours=config.interval_hours,
        ready=processor.state.value,
    )
    return processor
