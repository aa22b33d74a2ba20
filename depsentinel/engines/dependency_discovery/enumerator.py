"""ArchiveSetEnumerator — walk loader sources and extract every reachable archive."""

from __future__ import annotations

import atexit
import os
import shutil
import tempfile
import threading
import zipfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import structlog

from depsentinel.engines.dependency_discovery.cache import ExpiringCache
from depsentinel.engines.dependency_discovery.extractor import ArchiveMetadataExtractor
from depsentinel.engines.dependency_discovery.loaders import (
    ContextLoaders,
    UrlListLoader,
    context_loaders,
    system_loader,
)
from depsentinel.engines.dependency_discovery.models import DependencyRecord
from depsentinel.exceptions import (
    ArchiveNotFoundError,
    MalformedSourceError,
    UnsupportedArchiveUrlError,
)

log = structlog.get_logger("depsentinel.enumerator")

MAX_LOADER_DEPTH = 64

# Longest prefix first: "jar:nested:file:" must win over "jar:nested:".
_NESTED_PREFIXES: tuple[str, ...] = ("jar:nested:file:", "jar:nested:", "jar:file:")


def split_nested_url(url: str) -> tuple[str, str]:
    """Return ``(outer_path, inner_entry)`` for a nested-archive URL.

    Supports ``jar:file:/app.jar!/lib/x.jar`` and the packaging-tool form
    ``jar:nested:/app.jar/!lib/x.jar!/``.
    """
    for prefix in _NESTED_PREFIXES:
        if url.startswith(prefix):
            rest = url[len(prefix) :]
            break
    else:
        raise UnsupportedArchiveUrlError(url)

    sep = rest.find("/!")
    if sep == -1:
        sep = rest.find("!/")
    if sep == -1:
        raise MalformedSourceError(f"nested archive URL has no '!/' separator: {url}")

    outer = rest[:sep]
    inner = rest[sep + 2 :]
    if inner.endswith("!/"):
        inner = inner[:-2]
    if not outer or not inner:
        raise MalformedSourceError(f"nested archive URL is incomplete: {url}")
    return url2pathname(outer), unquote(inner)


def file_url_to_path(url: str) -> Path:
    parsed = urlparse(url)
    if parsed.scheme != "file":
        raise UnsupportedArchiveUrlError(url)
    return Path(url2pathname(parsed.path))


class ArchiveSetEnumerator:
    """Discover the archives visible to this process.

    Sources are unioned: the system loader, the calling thread's context
    loader, every other live thread's context loader, and any loaders
    supplied at construction time (each with its parent chain).  Failures
    for one loader or URL are logged and skipped, so :meth:`scan_all`
    never raises.
    """

    def __init__(
        self,
        extractor: ArchiveMetadataExtractor | None = None,
        cache: ExpiringCache[str, DependencyRecord] | None = None,
        *,
        contexts: ContextLoaders | None = None,
        extra_loaders: Iterable[Any] = (),
        system_loader_factory: Callable[[], Any] | None = system_loader,
    ) -> None:
        self._extractor = extractor or ArchiveMetadataExtractor()
        self._cache: ExpiringCache[str, DependencyRecord] = (
            cache if cache is not None else ExpiringCache()
        )
        self._contexts = contexts if contexts is not None else context_loaders
        self._extra_loaders = list(extra_loaders)
        self._system_loader_factory = system_loader_factory
        self._scratch_dir: str | None = None
        self._scratch_lock = threading.Lock()

    @property
    def cache(self) -> ExpiringCache[str, DependencyRecord]:
        return self._cache

    @property
    def extractor(self) -> ArchiveMetadataExtractor:
        return self._extractor

    # ── entry points ─────────────────────────────────────────────────────

    def scan_all(self) -> set[DependencyRecord]:
        """Scan every reachable loader. Deduplicated by record equality."""
        records: set[DependencyRecord] = set()
        visited: dict[int, Any] = {}
        try:
            records |= self.scan_from_system_loader(visited)
            records |= self.scan_from_context_loader(visited)
            records |= self.scan_from_all_threads(visited)
            for loader in self._extra_loaders:
                records |= self.scan_loader(loader, visited=visited)
            log.info("enumerator.discovered", count=len(records))
        except Exception:
            log.exception("enumerator.scan_failed")
        return records

    def scan_from_system_loader(
        self, visited: dict[int, Any] | None = None
    ) -> set[DependencyRecord]:
        if self._system_loader_factory is None:
            return set()
        try:
            loader = self._system_loader_factory()
        except Exception:
            log.exception("enumerator.system_loader_failed")
            return set()
        return self._scan_one(loader, "system", visited if visited is not None else {})

    def scan_from_context_loader(
        self, visited: dict[int, Any] | None = None
    ) -> set[DependencyRecord]:
        loader = self._contexts.get()
        if loader is None:
            return set()
        return self._scan_one(loader, "context", visited if visited is not None else {})

    def scan_from_all_threads(
        self, visited: dict[int, Any] | None = None
    ) -> set[DependencyRecord]:
        visited = visited if visited is not None else {}
        records: set[DependencyRecord] = set()
        current = threading.current_thread()
        own_loader = self._contexts.get()
        try:
            for thread, loader in self._contexts.live_items():
                if thread is current or loader is own_loader:
                    continue
                records |= self._scan_one(loader, f"thread-{thread.name}", visited)
        except Exception:
            log.exception("enumerator.thread_scan_failed")
        return records

    def scan_loader(
        self, loader: Any, *, visited: dict[int, Any] | None = None
    ) -> set[DependencyRecord]:
        """Scan ``loader`` and its parent chain."""
        visited = visited if visited is not None else {}
        records: set[DependencyRecord] = set()
        depth = 0
        node = loader
        while node is not None and depth < MAX_LOADER_DEPTH:
            records |= self._scan_one(node, "specific", visited)
            node = getattr(node, "parent", None)
            depth += 1
        if node is not None:
            log.warning("enumerator.loader_chain_truncated", depth=depth)
        return records

    def scan_paths(self, paths: Iterable[str | os.PathLike[str]]) -> set[DependencyRecord]:
        """Scan explicit archive files, or directories searched recursively."""
        records: set[DependencyRecord] = set()
        for entry in paths:
            path = Path(entry)
            try:
                if path.is_dir():
                    for suffix in self._extractor.archive_suffixes:
                        for hit in sorted(path.rglob(f"*{suffix}")):
                            self._add(records, self._scan_file(hit))
                else:
                    self._add(records, self._scan_file(path))
            except Exception:
                log.exception("enumerator.path_failed", path=str(path))
        return records

    # ── per-loader / per-URL ─────────────────────────────────────────────

    def _scan_one(
        self, loader: Any, source: str, visited: dict[int, Any]
    ) -> set[DependencyRecord]:
        if id(loader) in visited:
            return set()
        visited[id(loader)] = loader
        if not isinstance(loader, UrlListLoader):
            return set()

        records: set[DependencyRecord] = set()
        try:
            urls = list(loader.get_urls())
        except Exception:
            log.exception("enumerator.loader_failed", source=source)
            return records

        log.debug("enumerator.scanning", source=source, urls=len(urls))
        for url in urls:
            try:
                self._add(records, self.scan_url(url))
            except Exception as exc:
                log.warning("enumerator.url_failed", source=source, url=url, error=str(exc))
        return records

    def scan_url(self, url: str) -> DependencyRecord | None:
        """Resolve one loader URL; raises for malformed or unsupported URLs."""
        if url.startswith("jar:"):
            return self._scan_nested(url)
        path = file_url_to_path(url)
        if not path.is_file() or not self._extractor.is_archive(path):
            return None
        return self._scan_file(path)

    def _scan_file(self, path: Path) -> DependencyRecord | None:
        key = str(path.absolute())
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        record = self._extractor.extract(path)
        self._cache.put(key, record)
        return record

    def _scan_nested(self, url: str) -> DependencyRecord | None:
        cached = self._cache.get(url)
        if cached is not None:
            return cached

        outer_path, inner = split_nested_url(url)
        outer = Path(outer_path)
        if not outer.is_file():
            raise ArchiveNotFoundError(outer_path)

        copy = self._copy_entry(outer, inner)
        if copy is None:
            log.debug("enumerator.nested_entry_missing", outer=outer_path, entry=inner)
            return None

        try:
            record = self._extractor.extract(copy)
        finally:
            # Only the path string survives in the record.
            shutil.rmtree(copy.parent, ignore_errors=True)
        if record is not None:
            record = record.with_parent(str(outer.absolute()))
            self._cache.put(url, record)
            log.debug("enumerator.nested_discovered", outer=outer_path, entry=inner)
        return record

    def _copy_entry(self, outer: Path, inner: str) -> Path | None:
        """Copy archive entry ``inner`` of ``outer`` to a scratch file."""
        with zipfile.ZipFile(outer) as archive:
            try:
                info = archive.getinfo(inner)
            except KeyError:
                return None
            if info.is_dir() or not inner.endswith(self._extractor.archive_suffixes):
                return None
            target_dir = Path(tempfile.mkdtemp(prefix="nested-archive-", dir=self._scratch()))
            target = target_dir / Path(inner).name
            try:
                with archive.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except BaseException:
                shutil.rmtree(target_dir, ignore_errors=True)
                raise
        return target

    def _scratch(self) -> str:
        with self._scratch_lock:
            if self._scratch_dir is None:
                self._scratch_dir = tempfile.mkdtemp(prefix="depsentinel-")
                atexit.register(shutil.rmtree, self._scratch_dir, True)
            return self._scratch_dir

    @staticmethod
    def _add(records: set[DependencyRecord], record: DependencyRecord | None) -> None:
        if record is not None:
            records.add(record)
            log.debug("enumerator.dependency", record=record)
