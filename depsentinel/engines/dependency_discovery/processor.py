"""DiscoveryProcessor — the host-facing facade that wires the engine together."""

from __future__ import annotations

import enum
import threading
import time

import structlog

from depsentinel.engines.dependency_discovery.context import ScanCorrelationContext
from depsentinel.engines.dependency_discovery.emitter import DependencyEmitter
from depsentinel.engines.dependency_discovery.enumerator import ArchiveSetEnumerator
from depsentinel.engines.dependency_discovery.models import CampaignResult
from depsentinel.engines.dependency_discovery.purl import PurlGenerator
from depsentinel.engines.dependency_discovery.scheduler import DiscoveryScheduler
from depsentinel.engines.dependency_discovery.sink import DiscoverySink
from depsentinel.exceptions import SinkNotReadyError

log = structlog.get_logger("depsentinel.processor")

DEFAULT_DELAY_SECONDS = 5.0
DEFAULT_INTERVAL_SECONDS = 6 * 3600.0


class ProcessorState(str, enum.Enum):
    NOT_READY = "not_ready"
    READY = "ready"


class DiscoveryProcessor:
    """Discover dependencies in the background and report them to a sink.

    Construction is two-phase: the processor may be built before the host's
    sink exists, in which case it stays ``NOT_READY`` until
    :meth:`bind_sink` is called.  Campaigns that run before then raise
    :class:`SinkNotReadyError`, which the scheduler logs.

    The host calls :meth:`on_start` on its first telemetry activity; that
    schedules discovery exactly once.
    """

    def __init__(
        self,
        sink: DiscoverySink | None = None,
        *,
        enumerator: ArchiveSetEnumerator | None = None,
        generator: PurlGenerator | None = None,
        delay: float = DEFAULT_DELAY_SECONDS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_workers: int | None = None,
    ) -> None:
        self._enumerator = enumerator or ArchiveSetEnumerator()
        self._generator = generator or PurlGenerator()
        self._scheduler = DiscoveryScheduler(
            self.run_campaign,
            initial_delay=delay,
            interval=interval,
            max_workers=max_workers,
        )
        self._bind_lock = threading.Lock()
        self._sink: DiscoverySink | None = None
        self._context: ScanCorrelationContext | None = None
        self._emitter: DependencyEmitter | None = None
        if sink is not None:
            self.bind_sink(sink)

    # ── wiring ───────────────────────────────────────────────────────────

    @property
    def state(self) -> ProcessorState:
        return ProcessorState.READY if self._emitter is not None else ProcessorState.NOT_READY

    @property
    def enumerator(self) -> ArchiveSetEnumerator:
        return self._enumerator

    @property
    def scheduler(self) -> DiscoveryScheduler:
        return self._scheduler

    @property
    def context(self) -> ScanCorrelationContext | None:
        return self._context

    @property
    def emitter(self) -> DependencyEmitter | None:
        return self._emitter

    def bind_sink(self, sink: DiscoverySink) -> None:
        with self._bind_lock:
            if self._sink is not None:
                log.debug("processor.sink_already_bound")
                return
            context = ScanCorrelationContext(sink)
            self._emitter = DependencyEmitter(sink, context, self._generator)
            self._context = context
            self._sink = sink
        log.info("processor.ready", sink=type(sink).__name__)

    # ── host hooks ───────────────────────────────────────────────────────

    def on_start(self) -> None:
        """Host hook: first activity seen. Schedules discovery once."""
        self._scheduler.start()

    def is_discovery_started(self) -> bool:
        return self._scheduler.is_started()

    def force_discovery(self) -> None:
        self._scheduler.force()

    def shutdown(self, timeout: float | None = None) -> bool:
        return self._scheduler.shutdown(timeout)

    # ── campaign ─────────────────────────────────────────────────────────

    def run_campaign(self) -> CampaignResult:
        """Scan once and emit every record under a single scan boundary."""
        emitter, context = self._emitter, self._context
        if emitter is None or context is None:
            raise SinkNotReadyError("no sink bound; call bind_sink() first")

        records = self._enumerator.scan_all()
        result = CampaignResult(discovered=len(records))
        log.info("processor.campaign_started", discovered=result.discovered)

        boundary, owner = context.open()
        if boundary is None or not owner:
            # Someone else owns the open boundary (or none could be opened).
            result.correlated = boundary is not None
            result.emitted = emitter.emit_all(records)
            return result

        result.correlated = True
        started = time.monotonic()
        try:
            boundary.set_attribute("dependency.total.count", result.discovered)
            result.emitted = emitter.emit_all(records)
        finally:
            result.duration_ms = int((time.monotonic() - started) * 1000)
            boundary.set_attribute("dependency.scan.duration.ms", result.duration_ms)
            context.end()
        return result
