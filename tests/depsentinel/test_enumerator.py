"""Tests for ArchiveSetEnumerator and the loader sources it walks."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from depsentinel.engines.dependency_discovery.cache import ExpiringCache
from depsentinel.engines.dependency_discovery.enumerator import (
    ArchiveSetEnumerator,
    file_url_to_path,
    split_nested_url,
)
from depsentinel.engines.dependency_discovery.extractor import ArchiveMetadataExtractor
from depsentinel.engines.dependency_discovery.loaders import (
    ContextLoaders,
    PathListLoader,
    system_loader,
    to_url,
)
from depsentinel.exceptions import (
    ArchiveNotFoundError,
    MalformedSourceError,
    UnsupportedArchiveUrlError,
)


class CountingExtractor(ArchiveMetadataExtractor):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def extract(self, archive_path):
        self.calls += 1
        return super().extract(archive_path)


@pytest.fixture
def contexts():
    return ContextLoaders()


@pytest.fixture
def enumerator(contexts):
    return ArchiveSetEnumerator(contexts=contexts, system_loader_factory=None)


@pytest.fixture
def fat_jar(make_jar):
    """An outer archive with one archive packed inside it."""
    inner = make_jar(
        "build/inner-1.0.jar",
        pom={"groupId": "org.inner", "artifactId": "inner", "version": "1.0"},
    )
    return make_jar(
        "app/app.jar",
        entries={
            "BOOT-INF/lib/inner-1.0.jar": inner.read_bytes(),
            "BOOT-INF/lib/broken-1.0.jar": b"not a zip archive",
            "BOOT-INF/classes/app.properties": b"x=1\n",
        },
    )


# ── URL helpers ──────────────────────────────────────────────────────────


class TestUrlHelpers:
    def test_to_url_from_path(self, archive_root):
        assert to_url(archive_root / "a.jar") == (archive_root / "a.jar").as_uri()

    def test_to_url_keeps_urls(self):
        assert to_url("jar:file:/x.jar!/y.jar") == "jar:file:/x.jar!/y.jar"
        assert to_url("file:///x.jar") == "file:///x.jar"

    def test_file_url_to_path(self):
        assert file_url_to_path("file:///opt/lib/a.jar") == Path("/opt/lib/a.jar")

    def test_file_url_to_path_rejects_other_schemes(self):
        with pytest.raises(UnsupportedArchiveUrlError):
            file_url_to_path("http://example.com/a.jar")

    def test_split_jar_file(self):
        assert split_nested_url("jar:file:/opt/app.jar!/BOOT-INF/lib/x-1.jar") == (
            "/opt/app.jar",
            "BOOT-INF/lib/x-1.jar",
        )

    def test_split_nested(self):
        assert split_nested_url("jar:nested:/opt/app.jar/!BOOT-INF/lib/x-1.jar!/") == (
            "/opt/app.jar",
            "BOOT-INF/lib/x-1.jar",
        )

    def test_split_nested_file(self):
        assert split_nested_url("jar:nested:file:/opt/app.jar/!lib/x-1.jar") == (
            "/opt/app.jar",
            "lib/x-1.jar",
        )

    def test_split_unquotes_entry(self):
        _, inner = split_nested_url("jar:file:/opt/app.jar!/lib/my%20lib-1.jar")
        assert inner == "lib/my lib-1.jar"

    def test_split_unsupported(self):
        with pytest.raises(UnsupportedArchiveUrlError):
            split_nested_url("jar:http://example.com/app.jar!/x.jar")

    @pytest.mark.parametrize(
        "url", ["jar:file:/opt/app.jar", "jar:file:!/x.jar", "jar:file:/opt/app.jar!/"]
    )
    def test_split_malformed(self, url):
        with pytest.raises(MalformedSourceError):
            split_nested_url(url)


# ── loaders ──────────────────────────────────────────────────────────────


class TestLoaders:
    def test_path_list_loader(self, archive_root):
        loader = PathListLoader([archive_root / "a.jar", "file:///b.jar"])
        assert loader.get_urls() == [(archive_root / "a.jar").as_uri(), "file:///b.jar"]

    def test_system_loader_includes_classpath(self, monkeypatch, archive_root):
        jar = archive_root / "cp-1.jar"
        monkeypatch.setenv("CLASSPATH", f"{jar}")
        assert jar.as_uri() in system_loader().get_urls()

    def test_context_loaders_per_thread(self, contexts):
        loader = PathListLoader([])
        contexts.set(loader)
        assert contexts.get() is loader
        seen = []
        t = threading.Thread(target=lambda: seen.append(contexts.get()))
        t.start()
        t.join()
        assert seen == [None]
        contexts.clear()
        assert contexts.get() is None


# ── scanning ─────────────────────────────────────────────────────────────


class TestScanLoader:
    def test_plain_archives(self, enumerator, make_jar):
        a = make_jar("lib/alpha-1.0.jar")
        b = make_jar("lib/beta-2.0.jar")
        records = enumerator.scan_loader(PathListLoader([a, b]))
        assert {r.artifact_id for r in records} == {"alpha", "beta"}

    def test_skips_non_archives_and_bad_urls(self, enumerator, make_jar, archive_root):
        a = make_jar("lib/alpha-1.0.jar")
        (archive_root / "notes.txt").write_text("hi")
        loader = PathListLoader(
            [
                a,
                archive_root,
                archive_root / "notes.txt",
                archive_root / "missing-1.0.jar",
                "http://example.com/remote-1.0.jar",
                "jar:file:/does/not/exist.jar!/x-1.jar",
            ]
        )
        records = enumerator.scan_loader(loader)
        assert [r.artifact_id for r in records] == ["alpha"]

    def test_parent_chain(self, enumerator, make_jar):
        parent = PathListLoader([make_jar("lib/parent-1.jar")])
        child = PathListLoader([make_jar("lib/child-1.jar")], parent=parent)
        records = enumerator.scan_loader(child)
        assert {r.artifact_id for r in records} == {"parent", "child"}

    def test_parent_cycle_terminates(self, enumerator, make_jar):
        a = PathListLoader([make_jar("lib/a-1.jar")])
        b = PathListLoader([make_jar("lib/b-1.jar")], parent=a)
        a.parent = b
        records = enumerator.scan_loader(b)
        assert {r.artifact_id for r in records} == {"a", "b"}

    def test_non_url_loader_skipped(self, enumerator):
        assert enumerator.scan_loader(object()) == set()

    def test_failing_loader_skipped(self, enumerator):
        class Broken:
            def get_urls(self):
                raise RuntimeError("no urls today")

        assert enumerator.scan_loader(Broken()) == set()


class TestNestedArchives:
    def test_jar_file_url(self, enumerator, fat_jar):
        url = f"jar:file:{fat_jar}!/BOOT-INF/lib/inner-1.0.jar"
        record = enumerator.scan_url(url)
        assert record is not None
        assert (record.group_id, record.artifact_id, record.version) == (
            "org.inner",
            "inner",
            "1.0",
        )
        assert record.parent_dependency == str(fat_jar.absolute())
        assert Path(record.file_path).name == "inner-1.0.jar"

    def test_jar_nested_url(self, enumerator, fat_jar):
        url = f"jar:nested:{fat_jar}/!BOOT-INF/lib/inner-1.0.jar!/"
        record = enumerator.scan_url(url)
        assert record.artifact_id == "inner"
        assert record.parent_dependency == str(fat_jar.absolute())

    def test_cached_by_url(self, fat_jar):
        extractor = CountingExtractor()
        enumerator = ArchiveSetEnumerator(extractor, system_loader_factory=None)
        url = f"jar:file:{fat_jar}!/BOOT-INF/lib/inner-1.0.jar"
        first = enumerator.scan_url(url)
        second = enumerator.scan_url(url)
        assert first == second
        assert extractor.calls == 1
        assert url in enumerator.cache

    def test_scratch_copies_removed_after_extraction(self, enumerator, fat_jar):
        good = f"jar:file:{fat_jar}!/BOOT-INF/lib/inner-1.0.jar"
        broken = f"jar:file:{fat_jar}!/BOOT-INF/lib/broken-1.0.jar"
        for _ in range(3):
            assert enumerator.scan_url(good).artifact_id == "inner"
            assert enumerator.scan_url(broken) is None
            enumerator.cache.clear()

        scratch = Path(enumerator._scratch_dir)
        assert list(scratch.rglob("*.jar")) == []
        assert list(scratch.iterdir()) == []

    def test_record_outlives_its_copy(self, enumerator, fat_jar):
        record = enumerator.scan_url(f"jar:file:{fat_jar}!/BOOT-INF/lib/inner-1.0.jar")
        assert Path(record.file_path).name == "inner-1.0.jar"
        assert not Path(record.file_path).exists()

    def test_missing_entry(self, enumerator, fat_jar):
        assert enumerator.scan_url(f"jar:file:{fat_jar}!/BOOT-INF/lib/absent-1.jar") is None

    def test_non_archive_entry(self, enumerator, fat_jar):
        url = f"jar:file:{fat_jar}!/BOOT-INF/classes/app.properties"
        assert enumerator.scan_url(url) is None

    def test_missing_outer_archive(self, enumerator, archive_root):
        with pytest.raises(ArchiveNotFoundError):
            enumerator.scan_url(f"jar:file:{archive_root}/gone.jar!/lib/x-1.jar")

    def test_nested_url_through_loader(self, enumerator, fat_jar):
        loader = PathListLoader([fat_jar, f"jar:file:{fat_jar}!/BOOT-INF/lib/inner-1.0.jar"])
        records = enumerator.scan_loader(loader)
        assert {r.artifact_id for r in records} == {"app", "inner"}


class TestScanAll:
    def test_unions_sources_and_deduplicates(self, contexts, make_jar):
        shared = make_jar("lib/shared-1.0.jar")
        system = PathListLoader([shared, make_jar("lib/system-1.0.jar")])
        contexts.set(PathListLoader([shared, make_jar("lib/context-1.0.jar")]))
        extra = PathListLoader([shared, make_jar("lib/extra-1.0.jar")])

        enumerator = ArchiveSetEnumerator(
            contexts=contexts,
            extra_loaders=[extra],
            system_loader_factory=lambda: system,
        )
        records = enumerator.scan_all()
        assert sorted(r.artifact_id for r in records) == ["context", "extra", "shared", "system"]

    def test_other_thread_context_loader(self, contexts, enumerator, make_jar):
        loader = PathListLoader([make_jar("lib/worker-1.0.jar")])
        ready, done = threading.Event(), threading.Event()

        def worker():
            contexts.set(loader)
            ready.set()
            done.wait(5)

        t = threading.Thread(target=worker, name="worker")
        t.start()
        try:
            ready.wait(5)
            records = enumerator.scan_all()
        finally:
            done.set()
            t.join()
        assert [r.artifact_id for r in records] == ["worker"]

    def test_system_loader_failure_is_contained(self, contexts, make_jar):
        def broken():
            raise RuntimeError("boom")

        contexts.set(PathListLoader([make_jar("lib/ok-1.0.jar")]))
        enumerator = ArchiveSetEnumerator(contexts=contexts, system_loader_factory=broken)
        assert [r.artifact_id for r in enumerator.scan_all()] == ["ok"]

    def test_uses_cache(self, contexts, make_jar):
        extractor = CountingExtractor()
        cache: ExpiringCache = ExpiringCache()
        jar = make_jar("lib/cached-1.0.jar")
        enumerator = ArchiveSetEnumerator(
            extractor,
            cache,
            contexts=contexts,
            system_loader_factory=lambda: PathListLoader([jar]),
        )
        assert enumerator.scan_all() == enumerator.scan_all()
        assert extractor.calls == 1
        assert cache.size() == 1


class TestScanPaths:
    def test_directory_recursive(self, enumerator, make_jar, archive_root):
        make_jar("deps/a-1.jar")
        make_jar("deps/sub/b-2.jar")
        (archive_root / "deps" / "readme.txt").write_text("x")
        records = enumerator.scan_paths([archive_root / "deps"])
        assert {r.artifact_id for r in records} == {"a", "b"}

    def test_explicit_file(self, enumerator, make_jar):
        jar = make_jar("deps/c-3.jar")
        assert [r.version for r in enumerator.scan_paths([jar])] == ["3"]

    def test_bad_file_is_skipped(self, enumerator, archive_root):
        bogus = archive_root / "bogus-1.jar"
        bogus.write_bytes(b"not a zip")
        assert enumerator.scan_paths([bogus]) == set()
