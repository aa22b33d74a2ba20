"""Emission sink interface and the default implementations.

The sink is owned by the host: the engine only hands it one event per
discovered dependency plus a scan boundary that groups a campaign's events.
"""

from __future__ import annotations

import threading
import time
import uuid
from typing import Any, Protocol, runtime_checkable

import structlog

from depsentinel.engines.dependency_discovery.models import DependencyEvent

log = structlog.get_logger("depsentinel.sink")


@runtime_checkable
class ScanBoundary(Protocol):
    """An open correlation boundary for one discovery campaign."""

    def set_attribute(self, key: str, value: Any) -> None: ...

    def end(self) -> None: ...


@runtime_checkable
class DiscoverySink(Protocol):
    """Interface every emission sink must satisfy."""

    def start_scan(self) -> ScanBoundary: ...

    def record(self, event: DependencyEvent, parent: ScanBoundary | None) -> None: ...


class LoggedScanBoundary:
    """Boundary that reports itself through structlog when it ends."""

    def __init__(self, attributes: dict[str, Any] | None = None) -> None:
        self.scan_id = uuid.uuid4().hex
        self.attributes: dict[str, Any] = dict(attributes or {})
        self.ended = False
        self._started = time.monotonic()

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        log.info(
            "dependency.scan.ended",
            scan_id=self.scan_id,
            elapsed=round(time.monotonic() - self._started, 3),
            **self.attributes,
        )


class StructlogSink:
    """Default sink: each discovered dependency becomes a structured log event."""

    def __init__(self, boundary_attributes: dict[str, Any] | None = None) -> None:
        self._boundary_attributes = boundary_attributes or {}

    def start_scan(self) -> LoggedScanBoundary:
        boundary = LoggedScanBoundary(self._boundary_attributes)
        log.info("dependency.scan.started", scan_id=boundary.scan_id)
        return boundary

    def record(self, event: DependencyEvent, parent: ScanBoundary | None) -> None:
        scan_id = getattr(parent, "scan_id", None)
        log.info(
            "dependency.discovered",
            event_name=event.name,
            scan_id=scan_id,
            **event.attributes,
        )


class MemorySink:
    """Sink that keeps everything in memory, for embedding hosts and tests."""

    def __init__(self) -> None:
        self.boundaries: list[LoggedScanBoundary] = []
        self.events: list[tuple[DependencyEvent, ScanBoundary | None]] = []
        self._lock = threading.Lock()

    def start_scan(self) -> LoggedScanBoundary:
        boundary = LoggedScanBoundary()
        with self._lock:
            self.boundaries.append(boundary)
        return boundary

    def record(self, event: DependencyEvent, parent: ScanBoundary | None) -> None:
        with self._lock:
            self.events.append((event, parent))

    @property
    def purls(self) -> list[str]:
        with self._lock:
            return [event.purl for event, _ in self.events]
