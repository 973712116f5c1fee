"""Version change: move matching dependencies or the parent to a selected version.

The candidate comes from repository metadata through the context's version
selector and is only written once its POM has been fetched successfully. A
candidate that cannot be fetched, or metadata that cannot be downloaded,
becomes a marker on the node instead of an edit.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from constants import FailureKind
from document.markers import Marker
from document.pom import PARENT_REF, PomDocument
from resolution.annotator import FailureAnnotator
from resolution.context import ResolutionContext
from resolution.models import Coordinate, Failed, MetadataRequest, ResolutionFailure
from resolution.properties import has_references
from resolution.resolver import EffectiveModelResolver

logger = logging.getLogger(__name__)

_SINGLE_REFERENCE = re.compile(r"^\$\{([^}]+)\}$")


@dataclass(frozen=True)
class VersionChange:
    """One applied edit."""

    node: str
    coordinate: Coordinate
    new_version: str
    property_name: Optional[str] = None


@dataclass
class _Target:
    node: str
    group_id: str
    artifact_id: str
    raw_version: Optional[str]
    current: Optional[str]


def upgrade_dependency_version(
    document: PomDocument,
    context: ResolutionContext,
    group_pattern: str,
    artifact_pattern: str,
    policy: str = "latest.release",
    attach: bool = True,
) -> List[VersionChange]:
    """Change the version of every dependency matching the glob patterns.

    Declared dependencies and ``dependencyManagement`` entries are both
    considered; entries without an explicit version are left to their
    managed entry.

    Raises:
        UnresolvedDocumentError: when ``attach`` is False and a node failed.
    """
    scope = _Scope(document, context)
    targets = []
    for dep in document.managed_dependencies() + document.dependencies():
        if not dep.node or not dep.version:
            continue
        target = scope.target(dep.node, dep.group_id, dep.artifact_id, dep.version)
        if target is not None and _matches(target, group_pattern, artifact_pattern):
            targets.append(target)
    return _apply(document, scope, targets, policy, attach)


def upgrade_parent_version(
    document: PomDocument,
    context: ResolutionContext,
    group_pattern: str,
    artifact_pattern: str,
    policy: str = "latest.release",
    attach: bool = True,
) -> List[VersionChange]:
    """Change the ``<parent>`` version when the parent matches the glob patterns."""
    declared = document.parent()
    if declared is None or not declared.version:
        return []
    if not _matches_raw(declared.group_id, declared.artifact_id, group_pattern, artifact_pattern):
        return []
    scope = _Scope(document, context)
    target = scope.target(PARENT_REF, declared.group_id, declared.artifact_id, declared.version)
    if target is None or not _matches(target, group_pattern, artifact_pattern):
        return []
    return _apply(document, scope, [target], policy, attach)


class _Scope:
    """Parent-chain view of the document being changed.

    Versions, groups and artifacts are substituted against the merged
    properties of the whole chain, so a version held in a parent property
    still has a known current value.
    """

    def __init__(self, document: PomDocument, context: ResolutionContext):
        self.context = context
        self.resolver = EffectiveModelResolver(context)
        self.registry, self.lookup, self.inherited = self.resolver.inherited_scope(document)

    def target(self, node: str, group_id: Optional[str], artifact_id: Optional[str],
               raw_version: Optional[str]) -> Optional[_Target]:
        group = self.lookup.try_substitute(group_id)
        artifact = self.lookup.try_substitute(artifact_id)
        if not (group and artifact):
            return None
        return _Target(node, group, artifact, raw_version, self.lookup.try_substitute(raw_version))


def _matches(target: _Target, group_pattern: str, artifact_pattern: str) -> bool:
    return fnmatchcase(target.group_id, group_pattern) and fnmatchcase(target.artifact_id, artifact_pattern)


def _matches_raw(group_id: Optional[str], artifact_id: Optional[str],
                 group_pattern: str, artifact_pattern: str) -> bool:
    """Cheap pre-check on literal fields; anything with a reference is decided after substitution."""
    if has_references(group_id) or has_references(artifact_id):
        return True
    return fnmatchcase(group_id or "", group_pattern) and fnmatchcase(artifact_id or "", artifact_pattern)


def _apply(document: PomDocument, scope: _Scope, targets: List[_Target],
           policy: str, attach: bool) -> List[VersionChange]:
    context = scope.context
    changes: List[VersionChange] = []
    failures: List[ResolutionFailure] = []
    changed = set()
    listed = set()

    for target in targets:
        if target.current is None:
            logger.warning(
                "Skipping %s:%s: current version %s cannot be determined",
                target.group_id, target.artifact_id, target.raw_version,
                extra=extra_context(event="upgrade", component="upgrade", action="select",
                                    outcome="skipped", node=target.node),
            )
            continue

        metadata = context.fetch(MetadataRequest(target.group_id, target.artifact_id), scope.registry)
        if isinstance(metadata, Failed):
            failures.append(ResolutionFailure(
                FailureKind.METADATA_UNAVAILABLE, target.node, metadata.render(),
                f"{target.group_id}:{target.artifact_id}",
            ))
            continue
        listed.add(target.node)

        current = Coordinate(target.group_id, target.artifact_id, target.current)
        selected = context.selector.select(current, metadata.value.versions, policy)
        if not selected or selected == target.current:
            if is_debug_enabled(logger):
                logger.debug("No version change", extra=extra_context(
                    event="upgrade", component="upgrade", action="select",
                    outcome="unchanged", coordinate=str(current), node=target.node
                ))
            continue

        candidate = current.with_version(selected)
        problem = scope.resolver.validate(candidate, scope.registry)
        if problem is not None:
            failures.append(ResolutionFailure(
                FailureKind.DESCRIPTOR_UNAVAILABLE, target.node, problem, str(candidate)
            ))
            continue

        changes.append(_write(document, scope, target, current, selected))
        changed.add(target.node)

    if changes:
        document.cached_model = None

    def keep(marker: Marker) -> bool:
        # A changed node starts clean; a listed node no longer lacks metadata
        if marker.target in changed:
            return False
        return not (marker.kind == FailureKind.METADATA_UNAVAILABLE and marker.target in listed)

    annotator = FailureAnnotator()
    touched = [target.node for target in targets]
    if attach:
        annotator.annotate(document, failures, touched, keep)
    else:
        annotator.raise_for(document, failures, touched, keep)
    return changes


def _write(document: PomDocument, scope: _Scope, target: _Target, current: Coordinate,
           selected: str) -> VersionChange:
    """Write ``selected`` into the property the version references, else the field.

    A property inherited from a parent is overridden in this document's
    ``<properties>`` so the reference stays in place.
    """
    match = _SINGLE_REFERENCE.match(target.raw_version or "")
    property_name = match.group(1) if match else None
    if property_name is not None and property_name in document.properties():
        document.set_property(property_name, selected)
    elif property_name is not None and property_name in scope.inherited:
        document.override_property(property_name, selected)
    else:
        document.set_field(target.node, "version", selected)
        property_name = None
    logger.info(
        "Changed %s to %s", current, selected,
        extra=extra_context(event="upgrade", component="upgrade", action="write",
                            outcome="changed", coordinate=str(current), node=target.node),
    )
    return VersionChange(target.node, current, selected, property_name)
