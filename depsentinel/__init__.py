"""depsentinel: discover the archives loaded by a process and report them as Package URLs."""

__version__ = "0.1.0"

from depsentinel.engines.dependency_discovery import (
    ArchiveMetadataExtractor,
    ArchiveSetEnumerator,
    DependencyRecord,
    DiscoveryProcessor,
    DiscoveryScheduler,
    ExpiringCache,
    PurlGenerator,
    ScanCorrelationContext,
)

__all__ = [
    "ArchiveMetadataExtractor",
    "ArchiveSetEnumerator",
    "DependencyRecord",
    "DiscoveryProcessor",
    "DiscoveryScheduler",
    "ExpiringCache",
    "PurlGenerator",
    "ScanCorrelationContext",
]
