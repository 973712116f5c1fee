"""Data models for artifact requests, outcomes and effective models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from constants import Constants, FailureKind, FailureReason
from registry.repositories import Repository


@dataclass(frozen=True)
class Coordinate:
    """A groupId:artifactId[:version] triple."""

    group_id: str
    artifact_id: str
    version: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.group_id and self.artifact_id and self.version)

    @property
    def is_snapshot(self) -> bool:
        return bool(self.version) and self.version.endswith(Constants.SNAPSHOT_SUFFIX)

    @property
    def key(self) -> str:
        """Versionless ``group:artifact`` identity."""
        return f"{self.group_id}:{self.artifact_id}"

    def with_version(self, version: Optional[str]) -> "Coordinate":
        return Coordinate(self.group_id, self.artifact_id, version)

    def __str__(self) -> str:
        if self.version:
            return f"{self.group_id}:{self.artifact_id}:{self.version}"
        return self.key


@dataclass(frozen=True)
class MetadataRequest:
    """Request for the list of available versions of ``group:artifact``."""

    group_id: str
    artifact_id: str

    noun = "metadata"

    @property
    def snapshot(self) -> Optional[bool]:
        return None

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id} metadata"


@dataclass(frozen=True)
class DescriptorRequest:
    """Request for the POM of one concrete coordinate."""

    coordinate: Coordinate

    noun = "POM"

    @property
    def snapshot(self) -> Optional[bool]:
        return self.coordinate.is_snapshot

    def __str__(self) -> str:
        return f"{self.coordinate} POM"


ArtifactRequest = Union[MetadataRequest, DescriptorRequest]


@dataclass(frozen=True)
class ArtifactMetadata:
    """Version listing parsed from maven-metadata.xml."""

    group_id: str
    artifact_id: str
    versions: Tuple[str, ...]
    latest: Optional[str] = None
    release: Optional[str] = None


@dataclass(frozen=True)
class RepositoryFailure:
    """One repository attempt that did not produce the artifact."""

    repository: Repository
    reason: FailureReason
    status: str

    def render(self) -> str:
        return f"{self.repository.url}: {self.status}"


@dataclass(frozen=True)
class Resolved:
    """Successful fetch: ``value`` is ArtifactMetadata or a POM document."""

    request: Any
    repository: Repository
    value: Any

    ok = True


@dataclass(frozen=True)
class Failed:
    """Every eligible repository failed; reasons keep registry order."""

    request: Any
    failures: Tuple[RepositoryFailure, ...]

    ok = False

    def render(self) -> str:
        """``Unable to download {metadata|POM}. Tried repositories:`` plus one line per repository.

        Local-repository misses are the ordinary cache-miss path and are left
        out unless the local copy itself was broken.
        """
        header = Constants.MSG_UNABLE_TO_DOWNLOAD.format(what=self.request.noun)
        lines = [
            failure.render()
            for failure in self.failures
            if not (failure.repository.local and failure.reason == FailureReason.NOT_FOUND)
        ]
        if not lines:
            lines = ["(none)"]
        return header + "\n" + "\n".join(lines)


ResolutionOutcome = Union[Resolved, Failed]


@dataclass(frozen=True)
class ResolutionFailure:
    """A node-level failure discovered during a resolution pass."""

    kind: FailureKind
    target: Optional[str]
    message: str
    detail: Optional[str] = None


@dataclass
class ManagedDependency:
    """A dependencyManagement entry after merge."""

    coordinate: Coordinate
    type: str = "jar"
    classifier: Optional[str] = None
    scope: Optional[str] = None
    node: Optional[str] = None


def management_key(group_id: str, artifact_id: str, type_: Optional[str] = None,
                   classifier: Optional[str] = None) -> str:
    """Key used to match a dependency against managed entries."""
    key = f"{group_id}:{artifact_id}:{type_ or 'jar'}"
    if classifier:
        key += f":{classifier}"
    return key


@dataclass
class ResolvedDependency:
    """A declared dependency with its concrete coordinate."""

    coordinate: Coordinate
    scope: str = "compile"
    type: str = "jar"
    classifier: Optional[str] = None
    optional: bool = False
    node: Optional[str] = None
    transitive: List[Coordinate] = field(default_factory=list)


@dataclass
class EffectiveModel:
    """Merged, substituted, parent-resolved view of one document."""

    coordinate: Optional[Coordinate]
    properties: Dict[str, str] = field(default_factory=dict)
    dependency_management: List[ManagedDependency] = field(default_factory=list)
    parent_chain: List[Coordinate] = field(default_factory=list)
    dependencies: List[ResolvedDependency] = field(default_factory=list)
    repositories: List[Repository] = field(default_factory=list)

    def managed_version(self, key: str) -> Optional[str]:
        for managed in self.dependency_management:
            entry_key = management_key(
                managed.coordinate.group_id,
                managed.coordinate.artifact_id,
                managed.type,
                managed.classifier,
            )
            if entry_key == key:
                return managed.coordinate.version
        return None


@dataclass
class ResolutionReport:
    """Result of one resolution pass before projection onto the document."""

    model: EffectiveModel
    failures: List[ResolutionFailure] = field(default_factory=list)
    touched: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
