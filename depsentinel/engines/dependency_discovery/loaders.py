"""Loader sources — where archive URLs come from.

A *loader* is anything with a ``get_urls()`` method listing the archive
URLs it loads from, and optionally a ``parent`` loader.  Objects without
``get_urls()`` are not scannable and are skipped by the enumerator.
"""

from __future__ import annotations

import os
import sys
import threading
import weakref
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

URL_PREFIXES = ("file:", "jar:")


@runtime_checkable
class UrlListLoader(Protocol):
    """Interface of a loader that exposes its constituent URLs."""

    def get_urls(self) -> Sequence[str]: ...


class PathListLoader:
    """A loader backed by a fixed list of URLs (or plain filesystem paths)."""

    def __init__(
        self,
        urls: Iterable[str | os.PathLike[str]],
        parent: Any = None,
        name: str = "path-list",
    ) -> None:
        self._urls = [to_url(u) for u in urls]
        self.parent = parent
        self.name = name

    def get_urls(self) -> list[str]:
        return list(self._urls)

    def __repr__(self) -> str:
        return f"PathListLoader(name={self.name!r}, urls={len(self._urls)})"


def to_url(entry: str | os.PathLike[str]) -> str:
    """Turn a path into a ``file:`` URL; URLs are returned unchanged."""
    text = os.fspath(entry)
    if text.startswith(URL_PREFIXES):
        return text
    return Path(text).absolute().as_uri()


def _classpath_entries() -> list[str]:
    raw = os.environ.get("CLASSPATH", "")
    return [entry for entry in raw.split(os.pathsep) if entry]


def system_loader() -> PathListLoader:
    """The process-wide loader: ``sys.path`` plus the ``CLASSPATH`` variable."""
    entries: list[str] = []
    seen: set[str] = set()
    for entry in [*sys.path, *_classpath_entries()]:
        if not entry or entry in seen:
            continue
        seen.add(entry)
        entries.append(entry)
    return PathListLoader(entries, name="system")


class ContextLoaders:
    """Per-thread context loader registry.

    Threads are held weakly, so a finished thread's loader is released once
    the thread object is collected.
    """

    def __init__(self) -> None:
        self._loaders: weakref.WeakKeyDictionary[threading.Thread, Any] = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()

    def set(self, loader: Any, thread: threading.Thread | None = None) -> None:
        with self._lock:
            self._loaders[thread or threading.current_thread()] = loader

    def get(self, thread: threading.Thread | None = None) -> Any:
        with self._lock:
            return self._loaders.get(thread or threading.current_thread())

    def clear(self, thread: threading.Thread | None = None) -> None:
        with self._lock:
            self._loaders.pop(thread or threading.current_thread(), None)

    def live_items(self) -> list[tuple[threading.Thread, Any]]:
        """(thread, loader) pairs for every live thread that has a loader."""
        with self._lock:
            snapshot = dict(self._loaders)
        return [
            (thread, snapshot[thread])
            for thread in threading.enumerate()
            if thread in snapshot
        ]


context_loaders = ContextLoaders()
