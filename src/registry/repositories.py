"""Repository definitions and the ordered repository registry.

The registry is the fallback order used by the artifact fetcher: the local
repository first, then any repositories declared by the document being
resolved, then the repositories configured on the resolution context.
Order is fixed at construction and never changes based on outcomes.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit
from urllib.request import url2pathname

from constants import Constants
from errors import ConfigurationError


def normalize_repository_url(url: str) -> str:
    """Normalize a repository URL for identity comparisons.

    Lowercases scheme and host and drops trailing slashes so that
    ``https://Repo.Example/maven2/`` and ``https://repo.example/maven2`` are
    the same repository.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    parts = urlsplit(raw)
    if not parts.scheme:
        return raw.rstrip("/\\")
    netloc = parts.netloc.lower()
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), netloc, path, parts.query, ""))


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Repository:
    """A remote or local source of artifact metadata and descriptors."""

    id: str
    url: str
    releases: bool = True
    snapshots: bool = True
    known_reachable: Optional[bool] = None
    username: Optional[str] = field(default=None, repr=False, compare=False)
    password: Optional[str] = field(default=None, repr=False, compare=False)
    local: bool = False

    @property
    def normalized_url(self) -> str:
        return normalize_repository_url(self.url)

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        if self.username is None:
            return None
        return self.username, self.password or ""

    @property
    def path(self) -> str:
        """Filesystem root of a local repository."""
        if not self.local:
            raise ValueError(f"Repository {self.id} is not local")
        parts = urlsplit(self.url)
        if parts.scheme == "file":
            return url2pathname(parts.path)
        return self.url

    def accepts(self, snapshot: Optional[bool]) -> bool:
        """Return True when the repository may serve the request.

        Args:
            snapshot: True for snapshot versions, False for releases, None when
                the request is version-agnostic (metadata).
        """
        if snapshot is None:
            return self.releases or self.snapshots
        return self.snapshots if snapshot else self.releases

    @classmethod
    def local_repository(cls, location: str, repo_id: str = Constants.LOCAL_REPOSITORY_ID) -> "Repository":
        """Build the local repository from a path or ``file:`` URL."""
        if not location:
            raise ConfigurationError("Local repository location must not be empty")
        if location.startswith("file:"):
            url = location
        else:
            url = "file://" + os.path.abspath(os.path.expanduser(location)).replace(os.sep, "/")
        return cls(id=repo_id, url=url, known_reachable=True, local=True)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Repository":
        """Build a remote repository from a configuration mapping."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Repository entry must be a mapping, got {type(data).__name__}")
        url = str(data.get("url") or "").strip()
        if not url:
            raise ConfigurationError("Repository entry is missing 'url'")
        repo_id = str(data.get("id") or url)
        known = data.get("known_reachable")
        return cls(
            id=repo_id,
            url=url,
            releases=_as_bool(data.get("releases"), True),
            snapshots=_as_bool(data.get("snapshots"), True),
            known_reachable=None if known is None else _as_bool(known, True),
            username=data.get("username"),
            password=data.get("password"),
        )


MAVEN_CENTRAL = Repository(
    id=Constants.MAVEN_CENTRAL_ID,
    url=Constants.MAVEN_CENTRAL_URL,
    releases=True,
    snapshots=False,
    known_reachable=True,
)


class RepositoryRegistry:
    """Ordered, deduplicated repositories with exactly one local repository."""

    def __init__(self, repositories: Iterable[Repository], local: Repository):
        if not local.local:
            raise ConfigurationError(f"Repository {local.id} is not a local repository")
        ordered: List[Repository] = [local]
        seen = {local.normalized_url}
        for repo in repositories:
            if repo.local:
                raise ConfigurationError(
                    f"Only one local repository is allowed; got extra {repo.id}"
                )
            key = repo.normalized_url
            if not key or key in seen:
                continue
            seen.add(key)
            ordered.append(repo)
        self._repositories: Tuple[Repository, ...] = tuple(ordered)

    @property
    def local(self) -> Repository:
        return self._repositories[0]

    @property
    def remotes(self) -> Tuple[Repository, ...]:
        return self._repositories[1:]

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._repositories)

    def __len__(self) -> int:
        return len(self._repositories)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryRegistry):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __repr__(self) -> str:
        return f"RepositoryRegistry({[r.id for r in self._repositories]!r})"

    def key(self) -> Tuple[Tuple[str, str], ...]:
        """Ordered repository identities used in resolution cache keys."""
        return tuple((repo.id, repo.normalized_url) for repo in self._repositories)

    def with_document_repositories(self, repositories: Iterable[Repository]) -> "RepositoryRegistry":
        """Return a registry with document-declared repositories ahead of the configured ones."""
        declared = [repo for repo in repositories if not repo.local]
        if not declared:
            return self
        return RepositoryRegistry(declared + list(self.remotes), self.local)

    def with_local(self, local: Repository) -> "RepositoryRegistry":
        """Return a registry using a different local repository."""
        return RepositoryRegistry(self.remotes, local)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RepositoryRegistry":
        """Build a registry from the ``repositories``/``local_repository`` config keys.

        Maven Central is appended unless ``include_central`` is false.
        """
        entries = config.get("repositories") or []
        if not isinstance(entries, list):
            raise ConfigurationError("'repositories' must be a list")
        remotes = [Repository.from_mapping(entry) for entry in entries]
        if _as_bool(config.get("include_central"), True):
            remotes.append(MAVEN_CENTRAL)
        local = Repository.local_repository(
            str(config.get("local_repository") or Constants.LOCAL_REPOSITORY)
        )
        return cls(remotes, local)


def repositories_from_dicts(entries: Iterable[Dict[str, Any]]) -> List[Repository]:
    """Build remote repositories from already-substituted document entries."""
    result = []
    for entry in entries:
        if not entry.get("url"):
            continue
        result.append(Repository.from_mapping(entry))
    return result
