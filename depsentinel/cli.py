"""CLI entry point: depsentinel.

Subcommands:
    depsentinel scan [PATHS...]            # One-shot scan, print PURLs
    depsentinel scan --json lib/           # Same, as JSON records
    depsentinel purl -g org.x -a core -v 1.0
    depsentinel parse pkg:maven/org.x/core@1.0
"""

from __future__ import annotations

import json
import sys
from dataclasses import asdict

import click

from depsentinel.core.logging import setup_logging
from depsentinel.engines.dependency_discovery.enumerator import ArchiveSetEnumerator
from depsentinel.engines.dependency_discovery.models import DependencyRecord
from depsentinel.engines.dependency_discovery.purl import PurlGenerator, parse_purl


def _sort_key(record: DependencyRecord) -> tuple[str, str, str]:
    return (record.artifact_id or "", record.version or "", record.file_path or "")


@click.group()
@click.version_option(package_name="depsentinel")
@click.option(
    "--log-level",
    envvar="DEPSENTINEL_LOG_LEVEL",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Level for diagnostics written to stderr.",
)
def main(log_level: str) -> None:
    """Discover loaded archives and identify them by Package URL."""
    setup_logging(level=log_level)


@main.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output records as JSON.")
@click.option(
    "--include-runtime/--no-include-runtime",
    default=True,
    show_default=True,
    help="Also scan the archives on this process's loader path.",
)
def scan(paths: tuple[str, ...], as_json: bool, include_runtime: bool) -> None:
    """Scan archives once and print one PURL per dependency."""
    enumerator = ArchiveSetEnumerator()
    generator = PurlGenerator()

    records = set(enumerator.scan_paths(paths))
    if include_runtime:
        records |= enumerator.scan_all()

    ordered = sorted(records, key=_sort_key)
    if as_json:
        rows = [dict(asdict(r), purl=generator.generate(r)) for r in ordered]
        click.echo(json.dumps(rows, indent=2))
        return

    if not ordered:
        click.echo("No dependencies found.")
        return
    for record in ordered:
        click.echo(generator.generate(record))


@main.command()
@click.option("-g", "--group", "group_id", default=None, help="Group / namespace.")
@click.option("-a", "--artifact", "artifact_id", required=True, help="Artifact name.")
@click.option("-v", "--version", "version", default=None, help="Version.")
@click.option("-c", "--classifier", default=None, help="Classifier qualifier.")
def purl(
    group_id: str | None, artifact_id: str, version: str | None, classifier: str | None
) -> None:
    """Print the PURL for the given coordinates."""
    record = DependencyRecord(
        group_id=group_id, artifact_id=artifact_id, version=version, classifier=classifier
    )
    click.echo(PurlGenerator().generate(record))


@main.command()
@click.argument("value")
def parse(value: str) -> None:
    """Split a PURL into its components."""
    parts = parse_purl(value)
    if not parts.scheme:
        click.echo(f"Error: not a valid package URL: {value}", err=True)
        sys.exit(1)
    click.echo(json.dumps(parts._asdict(), indent=2))


if __name__ == "__main__":
    main()
