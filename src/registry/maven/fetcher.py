"""Artifact fetcher: ordered repository fallback with aggregated failures."""
from __future__ import annotations

import logging
from typing import List, Optional

from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import FailureReason
from registry.repositories import RepositoryRegistry
from resolution.models import (
    ArtifactRequest,
    Failed,
    MetadataRequest,
    RepositoryFailure,
    ResolutionOutcome,
    Resolved,
)

from .client import MavenRepositoryClient
from .discovery import _merge_metadata

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """Try each repository of a registry in order until one serves the request.

    A repository is skipped when its release/snapshot policy excludes the
    request, and recorded as unreachable without a network call when it is
    configured as known-unreachable. For POMs the first success wins; metadata
    listings from every repository that answers are merged. Otherwise the
    outcome lists every attempted repository with its reason, in registry
    order. There are no retries here.
    """

    def __init__(self, client: Optional[MavenRepositoryClient] = None):
        self.client = client or MavenRepositoryClient()

    def fetch(self, request: ArtifactRequest, registry: RepositoryRegistry) -> ResolutionOutcome:
        """Fetch ``request`` from ``registry``.

        Descriptors come from the first repository that serves them. Metadata
        is collected from every eligible repository and merged, so a local
        copy never hides versions published remotely.
        """
        failures: List[RepositoryFailure] = []
        found: List[Resolved] = []
        with Timer() as timer:
            for repository in registry:
                if not repository.accepts(request.snapshot):
                    if is_debug_enabled(logger):
                        logger.debug("Skipping repository by policy", extra=extra_context(
                            event="fetch_skip", component="fetcher", action="fetch",
                            repository=repository.id, request=str(request)
                        ))
                    continue
                if repository.known_reachable is False:
                    failures.append(RepositoryFailure(
                        repository=repository,
                        reason=FailureReason.UNREACHABLE,
                        status="Unreachable",
                    ))
                    continue

                attempt = self.client.download(request, repository, local=registry.local)
                if isinstance(attempt, Resolved) and isinstance(request, MetadataRequest):
                    found.append(attempt)
                    continue
                if isinstance(attempt, Resolved):
                    if is_debug_enabled(logger):
                        logger.debug("Artifact resolved", extra=extra_context(
                            event="fetch", component="fetcher", action="fetch",
                            outcome="success", repository=repository.id,
                            request=str(request), duration_ms=timer.duration_ms(),
                            attempt=len(failures) + 1
                        ))
                    return attempt
                failures.append(attempt)

        if found:
            if is_debug_enabled(logger):
                logger.debug("Metadata merged", extra=extra_context(
                    event="fetch", component="fetcher", action="merge_metadata",
                    outcome="success", request=str(request), count=len(found),
                    duration_ms=timer.duration_ms()
                ))
            merged = _merge_metadata([attempt.value for attempt in found])
            return Resolved(request=request, repository=found[0].repository, value=merged)

        logger.info(
            "Unable to download %s from %d repositories",
            request,
            len(failures),
            extra=extra_context(
                event="fetch", component="fetcher", action="fetch",
                outcome="failed", request=str(request), count=len(failures),
                duration_ms=timer.duration_ms()
            ),
        )
        return Failed(request=request, failures=tuple(failures))
