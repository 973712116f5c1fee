"""Resolution context: registry, cache, fetcher and selector for one phase.

A parse-time context and a transform-time context are built separately by
the caller and passed explicitly; nothing here is process-global.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Mapping, Optional

from constants import Constants, _apply_env_overrides, _load_yaml_config
from errors import ConfigurationError
from registry.maven.client import MavenRepositoryClient
from registry.maven.fetcher import ArtifactFetcher
from registry.repositories import Repository, RepositoryRegistry
from resolution.cache import InMemoryResolutionCache, ResolutionCache
from resolution.models import ArtifactRequest, Coordinate, ResolutionOutcome
from versioning.selector import MavenVersionSelector, VersionSelector

logger = logging.getLogger(__name__)


@dataclass
class ResolutionContext:
    """Everything one resolution phase needs, passed explicitly."""

    registry: RepositoryRegistry
    cache: ResolutionCache = field(default_factory=InMemoryResolutionCache)
    fetcher: ArtifactFetcher = field(default_factory=ArtifactFetcher)
    selector: VersionSelector = field(default_factory=MavenVersionSelector)
    workspace: Dict[str, Any] = field(default_factory=dict)
    max_workers: int = Constants.MAX_WORKERS
    max_transitive_depth: int = Constants.MAX_TRANSITIVE_DEPTH

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "ResolutionContext":
        """Build a context from a configuration mapping.

        Args:
            config: Mapping with ``repositories``, ``local_repository``,
                ``request_timeout``, ``max_workers``, ``write_through``,
                ``include_central``. When None, YAML config is loaded from the
                default locations.
            **overrides: Field values that replace the derived ones (e.g. ``cache``).
        """
        cfg = dict(_load_yaml_config() if config is None else config)
        cfg = _apply_env_overrides(cfg)
        registry = RepositoryRegistry.from_config(cfg)
        try:
            timeout = float(cfg.get("request_timeout", Constants.REQUEST_TIMEOUT))
            max_workers = int(cfg.get("max_workers", Constants.MAX_WORKERS))
            max_depth = int(cfg.get("max_transitive_depth", Constants.MAX_TRANSITIVE_DEPTH))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
        if timeout <= 0 or max_workers < 1:
            raise ConfigurationError("request_timeout must be > 0 and max_workers >= 1")
        client = MavenRepositoryClient(
            timeout=timeout,
            write_through=bool(cfg.get("write_through", Constants.WRITE_THROUGH)),
        )
        values: Dict[str, Any] = {
            "registry": registry,
            "fetcher": ArtifactFetcher(client),
            "max_workers": max_workers,
            "max_transitive_depth": max_depth,
        }
        values.update(overrides)
        return cls(**values)

    def with_local_repository(self, local: Repository) -> "ResolutionContext":
        """Copy using a different local repository; cache and workspace are shared."""
        return replace(self, registry=self.registry.with_local(local))

    def with_workspace(self, documents: Iterable[Any]) -> "ResolutionContext":
        """Copy whose workspace also contains ``documents`` keyed by their coordinate."""
        workspace = dict(self.workspace)
        for document in documents:
            group_id, artifact_id, version = document.coordinate()
            if group_id and artifact_id and version and "${" not in version:
                workspace[str(Coordinate(group_id, artifact_id, version))] = document
        return replace(self, workspace=workspace)

    def workspace_document(self, coordinate: Coordinate):
        return self.workspace.get(str(coordinate))

    def fetch(self, request: ArtifactRequest, registry: Optional[RepositoryRegistry] = None) -> ResolutionOutcome:
        """Fetch through this context's cache; the key includes the registry order."""
        effective = registry or self.registry
        key = (request, effective.key())
        return self.cache.resolve(key, lambda: self.fetcher.fetch(request, effective))
