"""Shared pytest fixtures for depsentinel tests."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
import structlog


def _manifest_text(attributes: dict[str, str]) -> str:
    lines = ["Manifest-Version: 1.0"]
    lines += [f"{key}: {value}" for key, value in attributes.items()]
    return "\r\n".join(lines) + "\r\n\r\n"


def _properties_text(props: dict[str, str]) -> str:
    lines = ["#Generated by Maven", "#Tue Oct 04 10:00:00 UTC 2022"]
    lines += [f"{key}={value}" for key, value in props.items()]
    return "\n".join(lines) + "\n"


def build_jar(
    path: Path,
    *,
    manifest: dict[str, str] | None = None,
    pom: dict[str, str] | None = None,
    pom_entry: str | None = None,
    entries: dict[str, bytes] | None = None,
) -> Path:
    """Write a JAR-style zip archive at ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        if manifest is not None:
            zf.writestr("META-INF/MANIFEST.MF", _manifest_text(manifest))
        if pom is not None:
            if pom_entry is None:
                group = pom.get("groupId", "g")
                artifact = pom.get("artifactId", "a")
                pom_entry = f"META-INF/maven/{group}/{artifact}/pom.properties"
            zf.writestr(pom_entry, _properties_text(pom))
        for name, data in (entries or {}).items():
            zf.writestr(name, data)
        zf.writestr("com/example/Placeholder.class", b"\xca\xfe\xba\xbe")
    return path


@pytest.fixture(autouse=True, scope="session")
def _structlog_through_stdlib():
    """Route structlog through stdlib logging so pytest captures it.

    The default configuration prints to stdout, which would mix log lines
    into CLI output under test.
    """
    structlog.configure(
        processors=[
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def archive_root(tmp_path_factory) -> Path:
    """Scratch directory for archives.

    Not ``tmp_path``: its per-test directory name starts with ``test_``,
    which the scope heuristic would read as a test-scoped path.
    """
    return tmp_path_factory.mktemp("archives")


@pytest.fixture
def make_jar(archive_root):
    """Factory: ``make_jar("lib/foo-1.0.jar", manifest=..., pom=...)``."""

    def _make(relative: str, **kwargs) -> Path:
        return build_jar(archive_root / relative, **kwargs)

    return _make
