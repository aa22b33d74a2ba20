"""DependencyEmitter — turn records into sink events carrying their PURL."""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog

from depsentinel.engines.dependency_discovery.context import ScanCorrelationContext
from depsentinel.engines.dependency_discovery.models import (
    UNKNOWN,
    DependencyEvent,
    DependencyRecord,
)
from depsentinel.engines.dependency_discovery.purl import FALLBACK_NAME, PurlGenerator
from depsentinel.engines.dependency_discovery.sink import DiscoverySink

log = structlog.get_logger("depsentinel.emitter")

DEPENDENCY_PURL = "dependency.purl"
DEPENDENCY_NAME = "dependency.name"
DEPENDENCY_VERSION = "dependency.version"
DEPENDENCY_TYPE = "dependency.type"
DEPENDENCY_CLASSIFIER = "dependency.classifier"
DEPENDENCY_FILE_PATH = "dependency.file.path"
DEPENDENCY_FILE_SIZE = "dependency.file.size"
DEPENDENCY_CHECKSUM = "dependency.checksum"
DEPENDENCY_GROUP_ID = "code.namespace"
DEPENDENCY_ARTIFACT_ID = "code.function"
DEPENDENCY_SCOPE = "dependency.scope"
DEPENDENCY_DIRECT = "dependency.direct"
DEPENDENCY_PARENT = "dependency.parent"

_INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9\-_.]")
_DASH_RUN_RE = re.compile(r"-{2,}")


def sanitize_event_name(name: str | None) -> str:
    if name is None or not name.strip():
        return UNKNOWN
    sanitized = _INVALID_CHARS_RE.sub("-", name)
    sanitized = _DASH_RUN_RE.sub("-", sanitized).strip("-")
    if not sanitized or not sanitized[0].isalnum():
        sanitized = "dep-" + sanitized
    return sanitized.lower()


def event_name(record: DependencyRecord) -> str:
    """``dependency.[<group>.]<artifact>`` with both parts sanitized."""
    name = record.artifact_id
    if name is None or not name.strip():
        name = FALLBACK_NAME
    prefix = ""
    group = record.group_id
    if group is not None and group.strip() and group != UNKNOWN:
        prefix = sanitize_event_name(group) + "."
    return f"dependency.{prefix}{sanitize_event_name(name)}"


def _or_unknown(value: str | None) -> str:
    return value if value else UNKNOWN


def build_attributes(record: DependencyRecord, purl: str) -> dict[str, str | int | bool]:
    attributes: dict[str, str | int | bool] = {
        DEPENDENCY_PURL: purl,
        DEPENDENCY_NAME: _or_unknown(record.artifact_id),
        DEPENDENCY_TYPE: record.package_type,
        DEPENDENCY_VERSION: _or_unknown(record.version),
        DEPENDENCY_GROUP_ID: _or_unknown(record.group_id),
        DEPENDENCY_ARTIFACT_ID: _or_unknown(record.artifact_id),
        DEPENDENCY_SCOPE: record.scope or "compile",
        DEPENDENCY_DIRECT: record.is_direct_dependency,
    }
    if record.classifier:
        attributes[DEPENDENCY_CLASSIFIER] = record.classifier
    if record.file_path:
        attributes[DEPENDENCY_FILE_PATH] = record.file_path
    if record.file_size > 0:
        attributes[DEPENDENCY_FILE_SIZE] = record.file_size
    if record.checksum:
        attributes[DEPENDENCY_CHECKSUM] = record.checksum
    if record.parent_dependency is not None:
        attributes[DEPENDENCY_PARENT] = record.parent_dependency
    return attributes


class DependencyEmitter:
    """Send one event per record to the sink, under the open scan boundary."""

    def __init__(
        self,
        sink: DiscoverySink,
        context: ScanCorrelationContext,
        generator: PurlGenerator | None = None,
    ) -> None:
        self._sink = sink
        self._context = context
        self._generator = generator or PurlGenerator()

    @property
    def generator(self) -> PurlGenerator:
        return self._generator

    def to_event(self, record: DependencyRecord) -> DependencyEvent:
        purl = self._generator.generate(record)
        return DependencyEvent(
            name=event_name(record),
            purl=purl,
            attributes=build_attributes(record, purl),
        )

    def emit(self, record: DependencyRecord | None) -> bool:
        """Emit one record; returns False if it could not be delivered."""
        if record is None:
            log.warning("emitter.null_record")
            return False
        try:
            event = self.to_event(record)
            parent = self._context.current if self._context.is_in_progress() else None
            self._sink.record(event, parent)
            log.debug("emitter.emitted", event_name=event.name, purl=event.purl)
            return True
        except Exception:
            log.warning("emitter.emit_failed", record=record, exc_info=True)
            return False

    def emit_all(self, records: Iterable[DependencyRecord]) -> int:
        emitted = 0
        for record in records:
            if self.emit(record):
                emitted += 1
        return emitted
