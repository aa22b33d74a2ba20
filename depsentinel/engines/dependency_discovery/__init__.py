"""Dependency discovery engine — find loaded archives and identify them by PURL."""

from depsentinel.engines.dependency_discovery.cache import ExpiringCache
from depsentinel.engines.dependency_discovery.context import ScanCorrelationContext
from depsentinel.engines.dependency_discovery.emitter import DependencyEmitter
from depsentinel.engines.dependency_discovery.enumerator import ArchiveSetEnumerator
from depsentinel.engines.dependency_discovery.extractor import ArchiveMetadataExtractor
from depsentinel.engines.dependency_discovery.loaders import (
    ContextLoaders,
    PathListLoader,
    context_loaders,
    system_loader,
)
from depsentinel.engines.dependency_discovery.models import (
    CampaignResult,
    DependencyEvent,
    DependencyRecord,
)
from depsentinel.engines.dependency_discovery.processor import DiscoveryProcessor
from depsentinel.engines.dependency_discovery.purl import (
    PurlGenerator,
    PurlParts,
    encode_component,
    is_valid_purl,
    parse_purl,
)
from depsentinel.engines.dependency_discovery.scheduler import DiscoveryScheduler, SchedulerState
from depsentinel.engines.dependency_discovery.sink import (
    DiscoverySink,
    MemorySink,
    ScanBoundary,
    StructlogSink,
)

__all__ = [
    "ArchiveMetadataExtractor",
    "ArchiveSetEnumerator",
    "CampaignResult",
    "ContextLoaders",
    "DependencyEmitter",
    "DependencyEvent",
    "DependencyRecord",
    "DiscoveryProcessor",
    "DiscoveryScheduler",
    "DiscoverySink",
    "ExpiringCache",
    "MemorySink",
    "PathListLoader",
    "PurlGenerator",
    "PurlParts",
    "ScanBoundary",
    "ScanCorrelationContext",
    "SchedulerState",
    "StructlogSink",
    "context_loaders",
    "encode_component",
    "is_valid_purl",
    "parse_purl",
    "system_loader",
]
