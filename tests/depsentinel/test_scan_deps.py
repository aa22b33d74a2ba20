"""Tests for the standalone scan_deps script."""

from __future__ import annotations

import json
import sys

import pytest

import scan_deps


def _run(monkeypatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["scan_deps.py", *args])
    scan_deps.main()


class TestScanDeps:
    def test_grouped_by_scope(self, monkeypatch, capsys, make_jar, archive_root):
        make_jar("lib/alpha-1.0.jar")
        make_jar("runtime/beta-2.0.jar")
        make_jar("lib/transitive/gamma-3.0.jar")
        _run(monkeypatch, str(archive_root))
        out = capsys.readouterr().out
        assert "Found 3 dependencies in 2 scope(s)" in out
        assert "    pkg:generic/alpha@1.0\n" in out
        assert "    pkg:generic/gamma@3.0  (indirect)" in out
        assert out.index("  compile") < out.index("  runtime")

    def test_json(self, monkeypatch, capsys, make_jar):
        jar = make_jar("lib/alpha-1.0.jar")
        _run(monkeypatch, str(jar), "--json")
        (row,) = json.loads(capsys.readouterr().out)
        assert row["purl"] == "pkg:generic/alpha@1.0"
        assert row["direct"] is True

    def test_missing_target(self, monkeypatch, capsys, archive_root):
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch, str(archive_root / "nope"))
        assert exc.value.code == 1
        assert "not found" in capsys.readouterr().err

    def test_requires_target_or_runtime(self, monkeypatch):
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch)
        assert exc.value.code == 2
