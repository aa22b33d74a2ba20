"""Archive metadata extraction — manifest, coordinate descriptor and filename fallback."""

from __future__ import annotations

import os
import re
import zipfile
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import structlog

from depsentinel.engines.dependency_discovery.models import (
    UNKNOWN,
    DependencyRecord,
    DependencyRecordBuilder,
)
from depsentinel.exceptions import ArchiveNotFoundError, MalformedSourceError

log = structlog.get_logger("depsentinel.extractor")

MANIFEST_PATH = "META-INF/MANIFEST.MF"
TOP_LEVEL_DESCRIPTOR = "META-INF/maven/pom.properties"
_DESCRIPTOR_RE = re.compile(r"META-INF/maven/.+/.+/pom\.properties")

ARCHIVE_SUFFIXES: tuple[str, ...] = (".jar",)

# (substrings, scope): first match wins, default is "compile".
ScopeRules = Sequence[tuple[Sequence[str], str]]

DEFAULT_SCOPE_RULES: ScopeRules = (
    (("/test/", "/test-", "/test_"), "test"),
    (("/runtime/", "/runtime-"), "runtime"),
    (("/provided/", "/provided-"), "provided"),
)
DEFAULT_SCOPE = "compile"
INDIRECT_MARKERS: tuple[str, ...] = ("/transitive/", "/nested/")

# Manifest attributes tried, in order, for still-missing coordinates.
_MANIFEST_COORDINATES: tuple[tuple[str, str], ...] = (
    ("Implementation-Vendor-Id", "group_id"),
    ("Implementation-Title", "artifact_id"),
    ("Implementation-Version", "version"),
    ("Specification-Vendor", "group_id"),
    ("Specification-Title", "artifact_id"),
    ("Specification-Version", "version"),
)


def java_string_hash(value: str) -> int:
    """32-bit signed ``String.hashCode`` over UTF-16 code units.

    Stable across processes, unlike the salted built-in :func:`hash`.
    """
    h = 0
    data = value.encode("utf-16-be")
    for i in range(0, len(data), 2):
        h = (31 * h + ((data[i] << 8) | data[i + 1])) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def simple_checksum(path: Path, size: int) -> str:
    """Cheap fingerprint for cache-key stability. Not collision-resistant."""
    return f"size-{size}-{java_string_hash(path.name)}"


def strip_archive_suffix(filename: str, suffixes: Sequence[str] = ARCHIVE_SUFFIXES) -> str:
    for suffix in suffixes:
        if filename.endswith(suffix):
            return filename[: -len(suffix)]
    return filename


def parse_manifest(content: str) -> dict[str, str]:
    """Parse the main section of a JAR manifest.

    Lines are ``Name: value``; a line starting with a single space continues
    the previous value.  The main section ends at the first blank line.
    """
    attributes: dict[str, str] = {}
    last_key: str | None = None
    for raw in content.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if not raw:
            if attributes:
                break
            continue
        if raw.startswith(" "):
            if last_key is None:
                raise MalformedSourceError("manifest continuation line without a header")
            attributes[last_key] += raw[1:]
            continue
        key, sep, value = raw.partition(":")
        if not sep or not key.strip():
            raise MalformedSourceError(f"invalid manifest line: {raw!r}")
        last_key = key.strip()
        attributes[last_key] = value.strip()
    return attributes


_PROPERTIES_WHITESPACE = " \t\f"
_PROPERTIES_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_PROPERTIES_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _unescape_property(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        seq = match.group(1)
        if len(seq) == 5:
            return chr(int(seq[1:], 16))
        return _PROPERTIES_ESCAPES.get(seq, seq)

    return _PROPERTIES_ESCAPE_RE.sub(_replace, text)


def _logical_property_lines(content: str) -> Iterator[str]:
    """Join backslash-continued lines; drop blank and comment lines."""
    pending: str | None = None
    for raw in content.splitlines():
        line = raw.lstrip(_PROPERTIES_WHITESPACE)
        if pending is None and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _split_property(line: str) -> tuple[str, str]:
    end = 0
    while end < len(line):
        char = line[end]
        if char == "\\":
            end += 2
            continue
        if char in "=:" or char in _PROPERTIES_WHITESPACE:
            break
        end += 1
    key = line[:end]
    value = line[end:].lstrip(_PROPERTIES_WHITESPACE)
    if value[:1] in ("=", ":"):
        value = value[1:].lstrip(_PROPERTIES_WHITESPACE)
    return _unescape_property(key), _unescape_property(value)


def parse_properties(content: str) -> dict[str, str]:
    """Parse a Java properties file.

    Keys end at the first unescaped `=`, `:` or whitespace; a key alone on
    its line has an empty value.  Leading whitespace is ignored, a line
    ending in an odd number of backslashes continues on the next one, and
    `#` or `!` start comment lines.  Later keys override earlier ones.
    """
    properties: dict[str, str] = {}
    for line in _logical_property_lines(content):
        key, value = _split_property(line)
        properties[key] = value
    return properties


def split_filename(stem: str) -> tuple[str, str, str | None]:
    """Split ``artifact-version[-classifier]`` into its parts.

    The last hyphen separates the artifact from the tail; a hyphen inside the
    tail separates version from classifier.  Without a usable hyphen the whole
    stem is the artifact and the version is ``"unknown"``.
    """
    last_dash = stem.rfind("-")
    if last_dash <= 0:
        return stem, UNKNOWN, None
    artifact = stem[:last_dash]
    tail = stem[last_dash + 1 :]
    classifier_dash = tail.rfind("-")
    if classifier_dash > 0:
        return artifact, tail[:classifier_dash], tail[classifier_dash + 1 :]
    return artifact, tail, None


class ArchiveMetadataExtractor:
    """Build a :class:`DependencyRecord` from one archive file.

    Sources are consulted in priority order and each only fills fields that
    are still unset: the ``pom.properties`` coordinate descriptor, then the
    manifest's implementation/specification attributes, then the filename.
    Scope and directness are path heuristics, not guarantees.
    """

    def __init__(
        self,
        *,
        archive_suffixes: Sequence[str] = ARCHIVE_SUFFIXES,
        scope_rules: ScopeRules = DEFAULT_SCOPE_RULES,
        indirect_markers: Sequence[str] = INDIRECT_MARKERS,
        checksum: Callable[[Path, int], str] = simple_checksum,
    ) -> None:
        self._suffixes = tuple(archive_suffixes)
        self._scope_rules = scope_rules
        self._indirect_markers = tuple(indirect_markers)
        self._checksum = checksum

    @property
    def archive_suffixes(self) -> tuple[str, ...]:
        return self._suffixes

    def is_archive(self, path: Path) -> bool:
        return path.name.endswith(self._suffixes)

    def extract(self, archive_path: str | os.PathLike[str]) -> DependencyRecord | None:
        """Return the record for ``archive_path``, or None if it cannot be read."""
        try:
            return self._extract(Path(archive_path))
        except ArchiveNotFoundError:
            log.debug("extractor.not_found", path=str(archive_path))
            return None
        except (zipfile.BadZipFile, OSError) as exc:
            log.warning("extractor.read_failed", path=str(archive_path), error=str(exc))
            return None
        except Exception:
            log.exception("extractor.unexpected_error", path=str(archive_path))
            return None

    def _extract(self, path: Path) -> DependencyRecord:
        if not path.is_file():
            raise ArchiveNotFoundError(str(path))

        path = path.absolute()
        size = path.stat().st_size
        builder = DependencyRecord.builder()
        builder.file_path = str(path)
        builder.file_size = size
        builder.checksum = self._checksum(path, size)

        with zipfile.ZipFile(path) as archive:
            manifest = self._read_manifest(archive)
            if manifest is not None:
                builder.manifest_info = self._manifest_snapshot(manifest)
            self._apply_descriptor(archive, builder)
            if manifest is not None:
                self._apply_manifest_coordinates(manifest, builder)

        if not builder.has_coordinates():
            self._apply_filename(path, builder)

        self._infer_scope(path, builder)

        record = builder.build()
        log.debug("extractor.extracted", path=str(path), record=record)
        return record

    # ── manifest ─────────────────────────────────────────────────────────

    @staticmethod
    def _read_manifest(archive: zipfile.ZipFile) -> dict[str, str] | None:
        try:
            raw = archive.read(MANIFEST_PATH)
        except KeyError:
            return None
        try:
            return parse_manifest(raw.decode("utf-8", errors="replace"))
        except MalformedSourceError as exc:
            log.debug("extractor.bad_manifest", error=str(exc))
            return None

    @staticmethod
    def _manifest_snapshot(manifest: dict[str, str]) -> str:
        lines = [
            f"{name}: {manifest.get(name)}"
            for name in (
                "Implementation-Title",
                "Implementation-Version",
                "Implementation-Vendor",
            )
        ]
        return "\n".join(lines)

    @staticmethod
    def _apply_manifest_coordinates(
        manifest: dict[str, str], builder: DependencyRecordBuilder
    ) -> None:
        for attribute, field_name in _MANIFEST_COORDINATES:
            builder.set_if_unset(field_name, manifest.get(attribute), replace_unknown=True)

    # ── coordinate descriptor ────────────────────────────────────────────

    @staticmethod
    def _find_descriptor(archive: zipfile.ZipFile) -> str | None:
        names = archive.namelist()
        if TOP_LEVEL_DESCRIPTOR in names:
            return TOP_LEVEL_DESCRIPTOR
        for name in names:
            if _DESCRIPTOR_RE.fullmatch(name):
                return name
        return None

    def _apply_descriptor(
        self, archive: zipfile.ZipFile, builder: DependencyRecordBuilder
    ) -> None:
        entry = self._find_descriptor(archive)
        if entry is None:
            return
        props = parse_properties(archive.read(entry).decode("latin-1"))
        builder.set_if_unset("group_id", props.get("groupId"))
        builder.set_if_unset("artifact_id", props.get("artifactId"))
        builder.set_if_unset("version", props.get("version"))

    # ── filename fallback ────────────────────────────────────────────────

    def _apply_filename(self, path: Path, builder: DependencyRecordBuilder) -> None:
        artifact, version, classifier = split_filename(
            strip_archive_suffix(path.name, self._suffixes)
        )
        builder.set_if_unset("artifact_id", artifact)
        builder.set_if_unset("version", version)
        builder.set_if_unset("classifier", classifier)
        if builder.group_id is None:
            builder.group_id = UNKNOWN

    # ── heuristics ───────────────────────────────────────────────────────

    def _infer_scope(self, path: Path, builder: DependencyRecordBuilder) -> None:
        lowered = path.as_posix().lower()
        builder.scope = DEFAULT_SCOPE
        for markers, scope in self._scope_rules:
            if any(marker in lowered for marker in markers):
                builder.scope = scope
                break
        builder.is_direct_dependency = not any(m in lowered for m in self._indirect_markers)
