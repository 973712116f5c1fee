"""Policy string parsing for version selection."""

from typing import Optional

from .models import LatestScope, ResolutionMode, VersionSpec

_LATEST_ALIASES = {
    "latest": LatestScope.RELEASE,
    "release": LatestScope.RELEASE,
    "latest.release": LatestScope.RELEASE,
    "latest.integration": LatestScope.INTEGRATION,
    "latest.minor": LatestScope.MINOR,
    "latest.patch": LatestScope.PATCH,
}


def _determine_resolution_mode(spec: str) -> ResolutionMode:
    """Determine resolution mode from spec string."""
    range_ops = ['[', ']', '(', ')', ',']
    if any(op in spec for op in range_ops):
        return ResolutionMode.RANGE
    return ResolutionMode.EXACT


def _determine_include_prerelease(spec: str) -> bool:
    """Snapshots and other pre-releases are only eligible when asked for."""
    lowered = spec.lower()
    return "snapshot" in lowered or lowered == "latest.integration"


def parse_policy(policy: Optional[str]) -> VersionSpec:
    """Parse a selection policy such as ``latest.patch`` or ``[1.0,2.0)``.

    A blank policy means ``latest.release``.
    """
    raw = (policy or "").strip()
    if not raw:
        raw = "latest.release"
    scope = _LATEST_ALIASES.get(raw.lower())
    if scope is not None:
        return VersionSpec(
            raw=raw,
            mode=ResolutionMode.LATEST,
            include_prerelease=scope == LatestScope.INTEGRATION,
            scope=scope,
        )
    return VersionSpec(
        raw=raw,
        mode=_determine_resolution_mode(raw),
        include_prerelease=_determine_include_prerelease(raw),
    )
