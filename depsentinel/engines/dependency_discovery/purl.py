"""Package URL generation, validation and parsing.

PURL format: ``pkg:type/namespace/name@version?qualifiers#subpath``.  Three
templates are produced: ``maven`` (for archives with real group
coordinates), ``gradle`` (same template as maven), and ``generic``.
"""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import NamedTuple
from urllib.parse import quote_plus

import structlog

from depsentinel.engines.dependency_discovery.extractor import (
    ARCHIVE_SUFFIXES,
    strip_archive_suffix,
)
from depsentinel.engines.dependency_discovery.models import UNKNOWN, DependencyRecord
from depsentinel.exceptions import EncodingFailure

log = structlog.get_logger("depsentinel.purl")

SCHEME = "pkg"
FALLBACK_NAME = "unknown-dependency"

GRADLE_MARKER = ".gradle"
MAVEN_PATH_MARKERS: tuple[str, ...] = ("/maven/", "/.m2/", "/repository/")

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9\-._~]")


class PurlParts(NamedTuple):
    scheme: str
    type: str
    namespace: str
    name: str
    version: str


_EMPTY_PARTS = PurlParts("", "", "", "", "")


def _encode(component: str) -> str:
    try:
        encoded = quote_plus(component, encoding="utf-8", errors="strict")
    except (UnicodeError, TypeError) as exc:
        raise EncodingFailure(f"cannot encode component {component!r}") from exc
    # Spaces as %20; keep namespace separators and scheme markers literal.
    return encoded.replace("+", "%20").replace("%2F", "/").replace("%3A", ":")


def encode_component(component: str | None) -> str:
    """Percent-encode one PURL component. ``None``/empty encode to ``""``."""
    if not component:
        return ""
    try:
        return _encode(component)
    except EncodingFailure as exc:
        log.warning("purl.encode_failed", error=str(exc))
        return _UNSAFE_RE.sub("_", component)


def is_valid_purl(purl: str | None) -> bool:
    if not purl:
        return False
    return purl.startswith(f"{SCHEME}:") and "/" in purl


def parse_purl(purl: str | None) -> PurlParts:
    """Split a PURL into scheme, type, namespace, name and version.

    Diagnostic helper: qualifiers stay attached to the version, and any
    failure yields five empty strings.
    """
    if purl is None or not is_valid_purl(purl):
        return _EMPTY_PARTS
    try:
        rest = purl[len(SCHEME) + 1 :]
        type_, sep, remainder = rest.partition("/")
        if not sep:
            return _EMPTY_PARTS

        namespace_name, at, version = remainder.rpartition("@")
        if not at:
            namespace_name, version = remainder, ""

        namespace, slash, name = namespace_name.rpartition("/")
        if not slash:
            namespace, name = "", namespace_name

        return PurlParts(SCHEME, type_, namespace, name, version)
    except Exception:
        log.warning("purl.parse_failed", purl=purl, exc_info=True)
        return _EMPTY_PARTS


def _has_version(version: str | None) -> bool:
    return bool(version) and version != UNKNOWN


class PurlGenerator:
    """Generate a PURL for a :class:`DependencyRecord`. Never returns None."""

    def __init__(self, archive_suffixes: tuple[str, ...] = ARCHIVE_SUFFIXES) -> None:
        self._suffixes = archive_suffixes

    def generate(self, record: DependencyRecord | None) -> str:
        if record is None:
            return self.fallback(DependencyRecord())
        try:
            purl_type = self.determine_type(record)
            if purl_type in ("maven", "gradle"):
                return self._maven(record)
            return self._generic(record)
        except Exception:
            log.warning("purl.generate_failed", record=record, exc_info=True)
            return self.fallback(record)

    @staticmethod
    def determine_type(record: DependencyRecord) -> str:
        group = record.group_id
        if (
            group is not None
            and record.artifact_id is not None
            and group.strip()
            and group != UNKNOWN
        ):
            return "maven"

        path = record.file_path
        if path is not None:
            if GRADLE_MARKER in path:
                return "gradle"
            if any(marker in path for marker in MAVEN_PATH_MARKERS):
                return "maven"

        return "generic"

    # ── templates ────────────────────────────────────────────────────────

    @staticmethod
    def _maven(record: DependencyRecord) -> str:
        purl = (
            f"{SCHEME}:maven/{encode_component(record.group_id or UNKNOWN)}"
            f"/{encode_component(record.artifact_id or UNKNOWN)}"
        )
        if _has_version(record.version):
            purl += f"@{encode_component(record.version)}"
        if record.classifier:
            purl += f"?classifier={encode_component(record.classifier)}"
        return purl

    def _generic(self, record: DependencyRecord) -> str:
        name = record.artifact_id
        if not name and record.file_path:
            name = strip_archive_suffix(PurePath(record.file_path).name, self._suffixes)
        if not name:
            name = UNKNOWN

        purl = f"{SCHEME}:generic/{encode_component(name)}"
        if _has_version(record.version):
            purl += f"@{encode_component(record.version)}"
        return purl

    @staticmethod
    def fallback(record: DependencyRecord) -> str:
        name = record.artifact_id or FALLBACK_NAME
        version = record.version or UNKNOWN
        return f"{SCHEME}:generic/{encode_component(name)}@{encode_component(version)}"
