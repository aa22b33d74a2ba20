"""ScanCorrelationContext — groups a campaign's events under one scan boundary."""

from __future__ import annotations

import threading
from typing import Any

import structlog

from depsentinel.engines.dependency_discovery.sink import DiscoverySink, ScanBoundary

log = structlog.get_logger("depsentinel.context")

SCAN_TYPE = "classpath"
SCAN_TRIGGER = "auto"


class ScanCorrelationContext:
    """At most one open scan boundary per context.

    The first caller of :meth:`begin` to flip the in-progress flag opens a
    boundary through the sink.  Later callers get the boundary that is
    already open; they never open a second one.  A single :meth:`end`
    closes it and releases the flag.
    """

    def __init__(self, sink: DiscoverySink) -> None:
        self._sink = sink
        self._in_progress = False
        self._boundary: ScanBoundary | None = None
        self._lock = threading.Lock()

    def begin(self, trigger: str = SCAN_TRIGGER) -> ScanBoundary | None:
        boundary, _ = self.open(trigger)
        return boundary

    def open(self, trigger: str = SCAN_TRIGGER) -> tuple[ScanBoundary | None, bool]:
        """Like :meth:`begin`, also reporting whether this call opened the boundary."""
        with self._lock:
            if self._in_progress:
                return self._boundary, False
            self._in_progress = True
            try:
                boundary = self._sink.start_scan()
                boundary.set_attribute("dependency.scan.type", SCAN_TYPE)
                boundary.set_attribute("dependency.scan.trigger", trigger)
            except Exception:
                log.exception("context.begin_failed")
                self._in_progress = False
                return None, False
            self._boundary = boundary
            return boundary, True

    def end(self) -> None:
        with self._lock:
            boundary, self._boundary = self._boundary, None
            self._in_progress = False
        if boundary is not None:
            try:
                boundary.end()
            except Exception:
                log.exception("context.end_failed")

    def is_in_progress(self) -> bool:
        return self._in_progress

    @property
    def current(self) -> ScanBoundary | None:
        return self._boundary

    def set_attribute(self, key: str, value: Any) -> None:
        boundary = self._boundary
        if boundary is not None:
            boundary.set_attribute(key, value)
