"""Single-repository Maven client: one attempt against one repository.

Remote repositories are read over HTTP through ``common.http_client``;
the local repository is read straight from disk on every call so that
external rewrites are always observed. Outcome caching happens one layer
up, in the resolution cache, never here.
"""
from __future__ import annotations

import logging
import os
import tempfile
import xml.etree.ElementTree as ET
from typing import Optional, Union

import requests

from common import http_client
from common.logging_utils import extra_context, is_debug_enabled, Timer, safe_url
from constants import Constants, FailureReason
from document.pom import PomDocument
from errors import DocumentParseError
from registry.repositories import Repository
from resolution.models import (
    ArtifactMetadata,
    ArtifactRequest,
    DescriptorRequest,
    MetadataRequest,
    RepositoryFailure,
    Resolved,
)

from .discovery import (
    _artifact_pom_path,
    _join_url,
    _local_metadata_text,
    _local_versions_from_layout,
    _metadata_path,
    _parse_metadata,
)

logger = logging.getLogger(__name__)

Attempt = Union[Resolved, RepositoryFailure]


class MavenRepositoryClient:
    """Performs a single download attempt against one repository."""

    def __init__(self, timeout: float = Constants.REQUEST_TIMEOUT, write_through: bool = Constants.WRITE_THROUGH):
        self.timeout = timeout
        self.write_through = write_through

    def download(self, request: ArtifactRequest, repository: Repository,
                 local: Optional[Repository] = None) -> Attempt:
        """Try ``request`` against ``repository``.

        Args:
            request: Metadata or descriptor request.
            repository: Repository to attempt.
            local: Local repository that receives write-through copies.

        Returns:
            Resolved on success, otherwise a RepositoryFailure describing why.
        """
        if repository.local:
            return self._download_local(request, repository)
        return self._download_remote(request, repository, local)

    # -- remote ---------------------------------------------------------

    def _download_remote(self, request: ArtifactRequest, repository: Repository,
                         local: Optional[Repository]) -> Attempt:
        url = _join_url(repository.url, _request_path(request))
        auth = repository.credentials
        with Timer() as timer:
            try:
                response = http_client.safe_get(
                    url,
                    context=repository.id,
                    timeout=self.timeout,
                    auth=auth,
                )
            except requests.Timeout:
                return self._failed(request, repository, FailureReason.UNREACHABLE, "Timed out")
            except requests.RequestException:
                return self._failed(request, repository, FailureReason.UNREACHABLE, "Connection error")

        if response.status_code != 200:
            reason = FailureReason.NOT_FOUND if response.status_code in (404, 410) else FailureReason.HTTP_ERROR
            if reason == FailureReason.HTTP_ERROR:
                logger.warning(
                    "HTTP non-2xx handled",
                    extra=extra_context(
                        event="http_response",
                        outcome="handled_non_2xx",
                        status_code=response.status_code,
                        duration_ms=timer.duration_ms(),
                        target=safe_url(url),
                        repository=repository.id,
                    )
                )
            return self._failed(request, repository, reason, f"HTTP {response.status_code}")

        try:
            value = _parse_payload(request, response.text, source=safe_url(url))
        except (ET.ParseError, ValueError, DocumentParseError):
            return self._failed(request, repository, FailureReason.MALFORMED, "Malformed response")

        if (self.write_through and local is not None and isinstance(request, DescriptorRequest)
                and not request.coordinate.is_snapshot):
            self._write_through(request, response.text, local)
        return Resolved(request=request, repository=repository, value=value)

    # -- local ----------------------------------------------------------

    def _download_local(self, request: ArtifactRequest, repository: Repository) -> Attempt:
        root_dir = repository.path
        try:
            if isinstance(request, MetadataRequest):
                text = _local_metadata_text(root_dir, request.group_id, request.artifact_id)
                if text is None:
                    versions = _local_versions_from_layout(root_dir, request.group_id, request.artifact_id)
                    if not versions:
                        return self._failed(request, repository, FailureReason.NOT_FOUND, "Not found")
                    value = ArtifactMetadata(request.group_id, request.artifact_id, tuple(versions))
                    return Resolved(request=request, repository=repository, value=value)
                value = _parse_metadata(text, request.group_id, request.artifact_id)
                return Resolved(request=request, repository=repository, value=value)

            path = os.path.join(root_dir, *_artifact_pom_path(request.coordinate).split("/"))
            if not os.path.isfile(path):
                return self._failed(request, repository, FailureReason.NOT_FOUND, "Not found")
            with open(path, "r", encoding="utf-8") as fh:
                text = fh.read()
            return Resolved(request=request, repository=repository, value=PomDocument.parse(text, source_path=path))
        except (ET.ParseError, ValueError, DocumentParseError, UnicodeDecodeError):
            return self._failed(request, repository, FailureReason.MALFORMED, "Malformed response")
        except OSError as exc:
            logger.warning("Local repository read failed: %s", exc)
            return self._failed(request, repository, FailureReason.UNREACHABLE, "Unreadable")

    def _write_through(self, request: DescriptorRequest, text: str, local: Repository) -> None:
        """Store a downloaded release POM in the local repository.

        Written to a temporary file and renamed so concurrent readers never
        observe a partial POM.
        """
        target = os.path.join(local.path, *_artifact_pom_path(request.coordinate).split("/"))
        directory = os.path.dirname(target)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_path, target)
        except OSError as exc:
            logger.warning("Could not cache %s locally: %s", request.coordinate, exc)
            return
        if is_debug_enabled(logger):
            logger.debug("Cached POM in local repository", extra=extra_context(
                event="write_through", component="client", action="write_pom",
                outcome="success", coordinate=str(request.coordinate)
            ))

    @staticmethod
    def _failed(request: ArtifactRequest, repository: Repository, reason: FailureReason, status: str) -> RepositoryFailure:
        if is_debug_enabled(logger):
            logger.debug("Repository attempt failed", extra=extra_context(
                event="fetch_attempt", component="client", action="download",
                outcome=reason.value, repository=repository.id, request=str(request)
            ))
        return RepositoryFailure(repository=repository, reason=reason, status=status)


def _request_path(request: ArtifactRequest) -> str:
    if isinstance(request, MetadataRequest):
        return _metadata_path(request.group_id, request.artifact_id)
    return _artifact_pom_path(request.coordinate)


def _parse_payload(request: ArtifactRequest, text: str, source: Optional[str] = None):
    if isinstance(request, MetadataRequest):
        return _parse_metadata(text, request.group_id, request.artifact_id)
    return PomDocument.parse(text, source_path=source)
