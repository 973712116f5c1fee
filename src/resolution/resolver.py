"""Effective model resolver.

Builds the effective model of a POM in three stages:

1. walk the parent chain, fetching each ancestor through the context's cache
   (workspace documents first), and collect declared repositories;
2. merge properties and dependency management root-first so the child wins,
   expanding ``import``-scoped BOMs;
3. resolve every dependency: version first (declared, else managed), then
   group and artifact, then the POM itself and its transitive closure.

Every problem becomes a ResolutionFailure bound to the node it concerns, and
the walk carries on, so one pass reports every independent failure.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Constants, FailureKind
from document.pom import DeclaredDependency, PARENT_REF, PomDocument
from registry.repositories import Repository, RepositoryRegistry, repositories_from_dicts
from resolution.context import ResolutionContext
from resolution.models import (
    Coordinate,
    DescriptorRequest,
    EffectiveModel,
    Failed,
    ManagedDependency,
    ResolutionFailure,
    ResolutionReport,
    ResolvedDependency,
    management_key,
)
from resolution.properties import PropertyResolutionError, PropertyResolver, has_references, project_builtins

logger = logging.getLogger(__name__)

# Scopes that do not propagate to consumers
_NON_TRANSITIVE_SCOPES = frozenset({"test", "provided", "system", "import"})


@dataclass
class _Assembly:
    """Parent chain and merged sections of one document."""

    document: PomDocument
    chain: List[PomDocument]
    parent_chain: List[Coordinate]
    resolver: PropertyResolver
    properties: Dict[str, str]
    management: "OrderedDict[str, ManagedDependency]"
    repositories: List[Repository]
    registry: RepositoryRegistry
    failures: List[ResolutionFailure] = field(default_factory=list)
    touched: List[str] = field(default_factory=list)

    @property
    def coordinate(self) -> Optional[Coordinate]:
        group_id, artifact_id, version = self.document.coordinate()
        if not (group_id and artifact_id):
            return None
        return Coordinate(
            self.resolver.try_substitute(group_id) or group_id,
            self.resolver.try_substitute(artifact_id) or artifact_id,
            self.resolver.try_substitute(version) if version else None,
        )


@dataclass
class _DependencyResult:
    dependency: Optional[ResolvedDependency]
    failures: List[ResolutionFailure]


class EffectiveModelResolver:
    """Resolves documents against one ResolutionContext."""

    def __init__(self, context: ResolutionContext):
        self.context = context
        self._lock = threading.Lock()
        # Per-resolver memo of fetched POM assemblies and transitive outcomes
        self._assemblies: Dict[Tuple[str, tuple], _Assembly] = {}
        self._closures: Dict[Tuple[str, tuple], Tuple[List[Coordinate], List[str]]] = {}

    # -- public ---------------------------------------------------------

    def resolve(self, document: PomDocument) -> ResolutionReport:
        """Build the effective model of ``document`` and collect node failures."""
        with Timer() as timer:
            assembly = self._assemble(document, own=True)
            declared = self._declared_dependencies(assembly)
            results = self._resolve_dependencies(assembly, declared)

        failures = list(assembly.failures)
        touched = list(assembly.touched)
        dependencies: List[ResolvedDependency] = []
        for dep, result in zip(declared, results):
            if dep.node:
                touched.append(dep.node)
            failures.extend(result.failures)
            if result.dependency is not None:
                dependencies.append(result.dependency)

        model = EffectiveModel(
            coordinate=assembly.coordinate,
            properties=dict(assembly.properties),
            dependency_management=list(assembly.management.values()),
            parent_chain=list(assembly.parent_chain),
            dependencies=dependencies,
            repositories=list(assembly.repositories),
        )
        logger.info(
            "Resolved %s: %d dependencies, %d failures",
            document.display_name,
            len(dependencies),
            len(failures),
            extra=extra_context(
                event="resolve", component="resolver", action="resolve",
                outcome="failed" if failures else "success",
                count=len(failures), duration_ms=timer.duration_ms()
            ),
        )
        return ResolutionReport(model=model, failures=failures, touched=touched)

    def inherited_scope(self, document: PomDocument) -> Tuple[RepositoryRegistry, PropertyResolver, Dict[str, str]]:
        """Registry, property resolver and merged properties of ``document``'s parent chain."""
        assembly = self._assemble(document, own=False)
        return assembly.registry, assembly.resolver, dict(assembly.properties)

    def validate(self, coordinate: Coordinate, registry: RepositoryRegistry) -> Optional[str]:
        """Return a failure message when ``coordinate``'s POM cannot be fetched."""
        if self.context.workspace_document(coordinate) is not None:
            return None
        outcome = self.context.fetch(DescriptorRequest(coordinate), registry)
        if isinstance(outcome, Failed):
            return outcome.render()
        return None

    # -- assembly -------------------------------------------------------

    def _assemble(self, document: PomDocument, own: bool, lineage: Tuple[str, ...] = ()) -> _Assembly:
        """Walk the parent chain of ``document`` and merge its sections.

        Args:
            document: Document to assemble.
            own: True for the document being annotated; failures then carry
                node references. Fetched POMs use False.
            lineage: BOM coordinates already being imported above this one.
        """
        failures: List[ResolutionFailure] = []
        touched: List[str] = []
        group_id, artifact_id, version = document.coordinate()
        declared_parent = document.parent()
        parent_fields = None
        if declared_parent is not None:
            parent_fields = (declared_parent.group_id, declared_parent.artifact_id, declared_parent.version)
            if own:
                touched.append(PARENT_REF)
        builtins = project_builtins(group_id, artifact_id, version, parent_fields)

        current_resolver = PropertyResolver(document.properties(), builtins)
        repositories = self._declared_repositories(document, current_resolver)
        registry = self.context.registry.with_document_repositories(repositories)

        chain = [document]
        parent_chain: List[Coordinate] = []
        seen = {str(Coordinate(group_id or "", artifact_id or "", version))}
        current = document
        while current.parent() is not None and len(chain) <= Constants.MAX_PARENT_DEPTH:
            declared = current.parent()
            prefix = "" if current is document else f"{self._coordinate_of(current)} failed. "
            coordinate, problem = self._parent_coordinate(declared, current_resolver)
            if problem is not None:
                failures.append(self._failure(
                    FailureKind.PARENT_UNRESOLVABLE, PARENT_REF if own else None, prefix + problem
                ))
                break
            if str(coordinate) in seen:
                failures.append(self._failure(
                    FailureKind.PARENT_UNRESOLVABLE, PARENT_REF if own else None,
                    f"{prefix}Parent cycle at {coordinate}",
                ))
                break
            parent_doc, message = self._load(coordinate, registry)
            if parent_doc is None:
                failures.append(self._failure(
                    FailureKind.PARENT_UNRESOLVABLE, PARENT_REF if own else None, prefix + message
                ))
                break
            seen.add(str(coordinate))
            chain.append(parent_doc)
            parent_chain.insert(0, coordinate)
            p_group, p_artifact, p_version = parent_doc.coordinate()
            p_parent = parent_doc.parent()
            current_resolver = PropertyResolver(
                parent_doc.properties(),
                project_builtins(
                    p_group, p_artifact, p_version,
                    (p_parent.group_id, p_parent.artifact_id, p_parent.version) if p_parent else None,
                ),
            )
            repositories.extend(self._declared_repositories(parent_doc, current_resolver))
            registry = self.context.registry.with_document_repositories(repositories)
            current = parent_doc

        properties: Dict[str, str] = {}
        for member in reversed(chain):
            properties.update(member.properties())
        resolver = PropertyResolver(properties, builtins)

        assembly = _Assembly(
            document=document,
            chain=chain,
            parent_chain=parent_chain,
            resolver=resolver,
            properties=properties,
            management=OrderedDict(),
            repositories=repositories,
            registry=registry,
            failures=failures,
            touched=touched,
        )
        self._merge_management(assembly, own, lineage)
        return assembly

    def _merge_management(self, assembly: _Assembly, own: bool, lineage: Tuple[str, ...]) -> None:
        """Merge dependencyManagement root-first, then expand BOM imports."""
        imports: List[ManagedDependency] = []
        for member in reversed(assembly.chain):
            is_own = own and member is assembly.document
            for declared in member.managed_dependencies():
                node = declared.node if is_own else None
                if node:
                    assembly.touched.append(node)
                managed, failure = self._managed_entry(declared, assembly.resolver, node)
                if failure is not None:
                    if node is None:
                        logger.debug("Ignoring unresolvable inherited managed entry: %s", failure.message)
                    else:
                        assembly.failures.append(failure)
                if managed is None:
                    continue
                if (managed.scope or "") == "import" and managed.type == "pom":
                    imports.append(managed)
                    continue
                key = management_key(
                    managed.coordinate.group_id, managed.coordinate.artifact_id,
                    managed.type, managed.classifier,
                )
                assembly.management[key] = managed

        for bom in imports:
            if not bom.coordinate.is_complete or str(bom.coordinate) in lineage:
                continue
            bom_doc, message = self._load(bom.coordinate, assembly.registry)
            if bom_doc is None:
                if bom.node:
                    assembly.failures.append(
                        self._failure(FailureKind.DESCRIPTOR_UNAVAILABLE, bom.node, message)
                    )
                else:
                    logger.warning("Imported BOM %s unavailable", bom.coordinate)
                continue
            imported = self._fetched_assembly(
                bom_doc, bom.coordinate, assembly.registry, lineage + (str(bom.coordinate),)
            )
            for key, managed in imported.management.items():
                # Local entries win over imported ones
                if key not in assembly.management:
                    assembly.management[key] = ManagedDependency(
                        coordinate=managed.coordinate,
                        type=managed.type,
                        classifier=managed.classifier,
                        scope=managed.scope,
                        node=None,
                    )

    def _managed_entry(
        self, declared: DeclaredDependency, resolver: PropertyResolver, node: Optional[str]
    ) -> Tuple[Optional[ManagedDependency], Optional[ResolutionFailure]]:
        try:
            group_id = resolver.substitute(declared.group_id)
            artifact_id = resolver.substitute(declared.artifact_id)
            version = resolver.substitute(declared.version)
            type_ = resolver.substitute(declared.type) or "jar"
            classifier = resolver.substitute(declared.classifier)
            scope = resolver.substitute(declared.scope)
        except PropertyResolutionError as exc:
            return None, self._failure(exc.kind, node, Constants.MSG_UNRESOLVED_PROPERTY, str(exc))
        if not (group_id and artifact_id):
            return None, None
        managed = ManagedDependency(
            coordinate=Coordinate(group_id, artifact_id, version),
            type=type_,
            classifier=classifier,
            scope=scope,
            node=node,
        )
        return managed, None

    def _declared_repositories(self, document: PomDocument, resolver: PropertyResolver) -> List[Repository]:
        entries = []
        for raw in document.repositories():
            url = resolver.try_substitute(raw.get("url"))
            if not url or has_references(url):
                continue
            entry = {"id": resolver.try_substitute(raw.get("id")) or url, "url": url}
            for policy in ("releases", "snapshots"):
                if policy in raw:
                    entry[policy] = raw[policy]
            entries.append(entry)
        return repositories_from_dicts(entries)

    @staticmethod
    def _parent_coordinate(declared, resolver: PropertyResolver) -> Tuple[Optional[Coordinate], Optional[str]]:
        try:
            group_id = resolver.substitute(declared.group_id)
            artifact_id = resolver.substitute(declared.artifact_id)
            version = resolver.substitute(declared.version)
        except PropertyResolutionError:
            return None, Constants.MSG_UNRESOLVED_PROPERTY
        if not version:
            return None, Constants.MSG_NO_VERSION
        if not (group_id and artifact_id):
            return None, "Parent groupId and artifactId are required"
        return Coordinate(group_id, artifact_id, version), None

    @staticmethod
    def _coordinate_of(document: PomDocument) -> str:
        return ":".join(part or "" for part in document.coordinate())

    # -- fetching -------------------------------------------------------

    def _load(self, coordinate: Coordinate, registry: RepositoryRegistry) -> Tuple[Optional[PomDocument], str]:
        """Workspace document or fetched POM for ``coordinate``; message on failure."""
        workspace_doc = self.context.workspace_document(coordinate)
        if workspace_doc is not None:
            return workspace_doc, ""
        outcome = self.context.fetch(DescriptorRequest(coordinate), registry)
        if isinstance(outcome, Failed):
            return None, outcome.render()
        return outcome.value, ""

    def _fetched_assembly(self, document: PomDocument, coordinate: Coordinate,
                          registry: RepositoryRegistry, lineage: Tuple[str, ...] = ()) -> _Assembly:
        key = (str(coordinate), registry.key())
        with self._lock:
            cached = self._assemblies.get(key)
        if cached is not None and cached.document is document:
            return cached
        assembly = self._assemble(document, own=False, lineage=lineage)
        with self._lock:
            self._assemblies[key] = assembly
        return assembly

    # -- dependencies ---------------------------------------------------

    def _declared_dependencies(self, assembly: _Assembly) -> List[DeclaredDependency]:
        """Own dependencies plus inherited ones; a child entry replaces the parent's."""
        merged: "OrderedDict[str, DeclaredDependency]" = OrderedDict()
        for member in reversed(assembly.chain):
            is_own = member is assembly.document
            for declared in member.dependencies():
                key = management_key(
                    assembly.resolver.try_substitute(declared.group_id) or declared.group_id or "",
                    assembly.resolver.try_substitute(declared.artifact_id) or declared.artifact_id or "",
                    declared.type,
                    declared.classifier,
                )
                if not is_own:
                    declared = DeclaredDependency(
                        group_id=declared.group_id,
                        artifact_id=declared.artifact_id,
                        version=declared.version,
                        type=declared.type,
                        classifier=declared.classifier,
                        scope=declared.scope,
                        optional=declared.optional,
                        node="",
                    )
                merged.pop(key, None)
                merged[key] = declared
        own_nodes = [d for d in merged.values() if d.node]
        inherited = [d for d in merged.values() if not d.node]
        return inherited + own_nodes

    def _resolve_dependencies(self, assembly: _Assembly,
                              declared: List[DeclaredDependency]) -> List[_DependencyResult]:
        if len(declared) <= 1 or self.context.max_workers <= 1:
            return [self._resolve_dependency(assembly, dep) for dep in declared]
        with ThreadPoolExecutor(max_workers=self.context.max_workers) as pool:
            # map() keeps declaration order regardless of completion order
            return list(pool.map(lambda dep: self._resolve_dependency(assembly, dep), declared))

    def _resolve_dependency(self, assembly: _Assembly, dep: DeclaredDependency) -> _DependencyResult:
        node = dep.node or None
        resolver = assembly.resolver
        coordinate, failure, managed = self._dependency_coordinate(dep, resolver, assembly.management, node)
        if failure is not None:
            if node is None:
                logger.warning("Inherited dependency unresolvable: %s", failure.message)
            return _DependencyResult(None, [failure])

        scope = resolver.try_substitute(dep.scope) or (managed.scope if managed else None) or "compile"
        resolved = ResolvedDependency(
            coordinate=coordinate,
            scope=scope,
            type=resolver.try_substitute(dep.type) or "jar",
            classifier=resolver.try_substitute(dep.classifier),
            optional=dep.is_optional,
            node=node,
        )

        fetched, message = self._load(coordinate, assembly.registry)
        if fetched is None:
            return _DependencyResult(None, [
                self._failure(FailureKind.DESCRIPTOR_UNAVAILABLE, node, message, str(coordinate))
            ])

        transitive, problems = self._closure(coordinate, fetched, assembly)
        resolved.transitive = transitive
        failures = [
            self._failure(FailureKind.DESCRIPTOR_UNAVAILABLE, node, problem, str(coordinate))
            for problem in problems
        ]
        if is_debug_enabled(logger):
            logger.debug("Dependency resolved", extra=extra_context(
                event="resolve_dependency", component="resolver", action="resolve",
                outcome="failed" if failures else "success",
                coordinate=str(coordinate), count=len(transitive), node=node
            ))
        return _DependencyResult(resolved, failures)

    def _dependency_coordinate(
        self,
        dep: DeclaredDependency,
        resolver: PropertyResolver,
        management: "OrderedDict[str, ManagedDependency]",
        node: Optional[str],
    ) -> Tuple[Optional[Coordinate], Optional[ResolutionFailure], Optional[ManagedDependency]]:
        """Substitute a dependency's fields: version first, then group and artifact."""
        group_hint = resolver.try_substitute(dep.group_id)
        artifact_hint = resolver.try_substitute(dep.artifact_id)
        managed = None
        if group_hint and artifact_hint:
            managed = management.get(management_key(
                group_hint, artifact_hint,
                resolver.try_substitute(dep.type), resolver.try_substitute(dep.classifier),
            ))

        try:
            version = resolver.substitute(dep.version)
        except PropertyResolutionError as exc:
            return None, self._failure(exc.kind, node, Constants.MSG_UNRESOLVED_PROPERTY, str(exc)), managed
        if not version and managed is not None:
            version = managed.coordinate.version
        if not version:
            return None, self._failure(FailureKind.MISSING_VERSION, node, Constants.MSG_NO_VERSION), managed

        try:
            group_id = resolver.substitute(dep.group_id)
            artifact_id = resolver.substitute(dep.artifact_id)
        except PropertyResolutionError as exc:
            return None, self._failure(exc.kind, node, Constants.MSG_UNRESOLVED_PROPERTY, str(exc)), managed
        if not (group_id and artifact_id):
            return None, self._failure(
                FailureKind.UNRESOLVED_PROPERTY, node, "Dependency groupId and artifactId are required"
            ), managed
        return Coordinate(group_id, artifact_id, version), None, managed

    def _closure(self, root: Coordinate, fetched: PomDocument,
                 assembly: _Assembly) -> Tuple[List[Coordinate], List[str]]:
        """Breadth-first transitive closure of one direct dependency.

        Returns:
            Resolved transitive coordinates and one failure message per failing
            transitive coordinate, both in discovery order.
        """
        key = (str(root), assembly.registry.key())
        with self._lock:
            memo = self._closures.get(key)
        if memo is not None:
            return list(memo[0]), list(memo[1])

        resolved: List[Coordinate] = []
        problems: List[str] = []
        visited = {root.key}
        queue: List[Tuple[Coordinate, PomDocument, int]] = [(root, fetched, 1)]
        while queue:
            current, document, depth = queue.pop(0)
            sub = self._fetched_assembly(document, current, assembly.registry)
            for failure in sub.failures:
                if failure.kind == FailureKind.PARENT_UNRESOLVABLE:
                    problems.append(f"{current} failed. {failure.message}")
            if depth > self.context.max_transitive_depth:
                continue
            for dep in self._declared_dependencies(sub):
                scope = sub.resolver.try_substitute(dep.scope) or "compile"
                if scope in _NON_TRANSITIVE_SCOPES or dep.is_optional:
                    continue
                label = ":".join(
                    part for part in (
                        sub.resolver.try_substitute(dep.group_id) or dep.group_id or "",
                        sub.resolver.try_substitute(dep.artifact_id) or dep.artifact_id or "",
                    )
                )
                if label in visited:
                    continue
                visited.add(label)
                coordinate, failure = self._transitive_coordinate(dep, sub, assembly)
                if failure is not None:
                    problems.append(f"{label} failed. {failure}")
                    continue
                child, message = self._load(coordinate, assembly.registry)
                if child is None:
                    problems.append(f"{coordinate} failed. {message}")
                    continue
                resolved.append(coordinate)
                queue.append((coordinate, child, depth + 1))

        with self._lock:
            self._closures[key] = (resolved, problems)
        return list(resolved), list(problems)

    def _transitive_coordinate(self, dep: DeclaredDependency, sub: _Assembly,
                               assembly: _Assembly) -> Tuple[Optional[Coordinate], Optional[str]]:
        """Coordinate of a transitive dependency; the root's management wins."""
        group_id = sub.resolver.try_substitute(dep.group_id)
        artifact_id = sub.resolver.try_substitute(dep.artifact_id)
        if group_id and artifact_id:
            key = management_key(group_id, artifact_id,
                                 sub.resolver.try_substitute(dep.type), sub.resolver.try_substitute(dep.classifier))
            root_managed = assembly.management.get(key)
            if root_managed is not None and root_managed.coordinate.version:
                return root_managed.coordinate, None
        coordinate, failure, _ = self._dependency_coordinate(dep, sub.resolver, sub.management, None)
        if failure is not None:
            return None, failure.message
        return coordinate, None

    @staticmethod
    def _failure(kind: FailureKind, target: Optional[str], message: str,
                 detail: Optional[str] = None) -> ResolutionFailure:
        return ResolutionFailure(kind=kind, target=target, message=message, detail=detail)
