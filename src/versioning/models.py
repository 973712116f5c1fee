"""Data models for version selection."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResolutionMode(Enum):
    """Selection strategy derived from the policy string."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"


class LatestScope(Enum):
    """How far a ``latest.*`` policy may move from the current version."""
    RELEASE = "release"
    INTEGRATION = "integration"
    MINOR = "minor"
    PATCH = "patch"


@dataclass
class VersionSpec:
    """Normalized representation of a policy string and derived behavior flags."""
    raw: str
    mode: ResolutionMode
    include_prerelease: bool
    scope: Optional[LatestScope] = None


@dataclass
class SelectionResult:
    """Selection outcome, kept for logging and diagnostics."""
    identifier: str
    policy: str
    selected_version: Optional[str]
    candidate_count: int
    error: Optional[str]
