"""Data models for the dependency discovery engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

UNKNOWN = "unknown"
DEFAULT_PACKAGE_TYPE = "archive"


@dataclass(frozen=True)
class DependencyRecord:
    """A single archive discovered on the loader path.

    Records are immutable. Each scan pass produces fresh records; a later
    pass supersedes, never updates, an earlier one.

    ``"unknown"`` is a real value for the coordinate fields and is distinct
    from ``None`` (never found).
    """

    group_id: str | None = None
    artifact_id: str | None = None
    version: str | None = None
    package_type: str = DEFAULT_PACKAGE_TYPE
    classifier: str | None = None
    file_path: str | None = None
    checksum: str | None = None
    file_size: int = 0
    manifest_info: str | None = None
    scope: str | None = field(default=None, compare=False)
    is_direct_dependency: bool = field(default=False, compare=False)
    # Display-only back-reference to the enclosing archive, not ownership.
    parent_dependency: str | None = field(default=None, compare=False)

    def has_coordinates(self) -> bool:
        return (
            self.group_id is not None
            and self.artifact_id is not None
            and self.version is not None
        )

    @staticmethod
    def builder() -> DependencyRecordBuilder:
        return DependencyRecordBuilder()

    def with_parent(self, parent: str | None) -> DependencyRecord:
        return replace(self, parent_dependency=parent)


@dataclass
class DependencyRecordBuilder:
    """Mutable accumulator used while the extractor walks its fallback chain."""

    group_id: str | None = None
    artifact_id: str | None = None
    version: str | None = None
    package_type: str = DEFAULT_PACKAGE_TYPE
    classifier: str | None = None
    file_path: str | None = None
    checksum: str | None = None
    file_size: int = 0
    manifest_info: str | None = None
    scope: str | None = None
    is_direct_dependency: bool = False
    parent_dependency: str | None = None

    def has_coordinates(self) -> bool:
        return (
            self.group_id is not None
            and self.artifact_id is not None
            and self.version is not None
        )

    def set_if_unset(self, name: str, value: str | None, *, replace_unknown: bool = False) -> bool:
        """Set coordinate ``name`` only if it is still ``None``.

        With ``replace_unknown`` the ``"unknown"`` sentinel also counts as unset.
        Blank values are ignored. Returns True when the field was written.
        """
        if value is None or not value.strip():
            return False
        current = getattr(self, name)
        if current is None or (replace_unknown and current == UNKNOWN):
            setattr(self, name, value.strip())
            return True
        return False

    def build(self) -> DependencyRecord:
        return DependencyRecord(
            group_id=self.group_id,
            artifact_id=self.artifact_id,
            version=self.version,
            package_type=self.package_type,
            classifier=self.classifier,
            file_path=self.file_path,
            checksum=self.checksum,
            file_size=self.file_size,
            manifest_info=self.manifest_info,
            scope=self.scope,
            is_direct_dependency=self.is_direct_dependency,
            parent_dependency=self.parent_dependency,
        )


@dataclass(frozen=True)
class DependencyEvent:
    """What the sink receives for one discovered dependency."""

    name: str
    purl: str
    attributes: dict[str, str | int | bool] = field(default_factory=dict, compare=False)


@dataclass
class CampaignResult:
    """Summary of one discovery campaign."""

    discovered: int = 0
    emitted: int = 0
    duration_ms: int = 0
    correlated: bool = False
