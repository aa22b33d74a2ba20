#!/usr/bin/env python3
"""Standalone archive scanner — print a Package URL for every archive found.

Usage:
    python scan_deps.py /path/to/lib                 # scan a directory of archives
    python scan_deps.py app.jar other.jar            # scan specific archives
    python scan_deps.py --runtime                    # scan this process's loader path
    python scan_deps.py /path/to/lib --json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from depsentinel.engines.dependency_discovery.enumerator import ArchiveSetEnumerator
from depsentinel.engines.dependency_discovery.models import DependencyRecord
from depsentinel.engines.dependency_discovery.purl import PurlGenerator


def _print_deps(deps: list[DependencyRecord], as_json: bool) -> None:
    if not deps:
        print("No dependencies found.")
        return

    generator = PurlGenerator()
    if as_json:
        rows = [
            {
                "purl": generator.generate(d),
                "group_id": d.group_id,
                "artifact_id": d.artifact_id,
                "version": d.version,
                "classifier": d.classifier,
                "scope": d.scope,
                "direct": d.is_direct_dependency,
                "file_path": d.file_path,
                "parent": d.parent_dependency,
            }
            for d in deps
        ]
        print(json.dumps(rows, indent=2))
        return

    # Group by scope
    by_scope: dict[str, list[DependencyRecord]] = {}
    for d in deps:
        by_scope.setdefault(d.scope or "compile", []).append(d)

    print(f"Found {len(deps)} dependencies in {len(by_scope)} scope(s)\n")

    for scope, scope_deps in sorted(by_scope.items()):
        print(f"  {scope}")
        for d in scope_deps:
            marker = "" if d.is_direct_dependency else "  (indirect)"
            print(f"    {generator.generate(d)}{marker}")
        print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Scan archives for dependency metadata")
    parser.add_argument("targets", nargs="*", help="Archive files or directories to scan")
    parser.add_argument("--runtime", action="store_true", help="Also scan the loader path")
    parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    args = parser.parse_args()

    missing = [t for t in args.targets if not Path(t).exists()]
    if missing:
        print(f"Error: {', '.join(missing)} not found", file=sys.stderr)
        sys.exit(1)
    if not args.targets and not args.runtime:
        parser.error("give at least one target or --runtime")

    enumerator = ArchiveSetEnumerator()
    deps = enumerator.scan_paths(args.targets)
    if args.runtime:
        deps |= enumerator.scan_all()

    ordered = sorted(deps, key=lambda d: (d.artifact_id or "", d.version or ""))
    _print_deps(ordered, args.as_json)


if __name__ == "__main__":
    main()
