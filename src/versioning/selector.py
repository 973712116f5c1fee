"""Version selection: pick a target version from available candidates."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from resolution.models import Coordinate

from .comparable import is_prerelease, is_snapshot, release_prefix, version_key
from .models import LatestScope, ResolutionMode, SelectionResult, VersionSpec
from .parser import parse_policy

logger = logging.getLogger(__name__)


class VersionSelector(ABC):
    """Chooses a version for a coordinate; the resolver re-validates the choice."""

    @abstractmethod
    def select(self, coordinate: Coordinate, available_versions: Sequence[str], policy: str) -> Optional[str]:
        """Return the selected version, or None when nothing qualifies.

        Args:
            coordinate: group/artifact plus the current version, if any.
            available_versions: Candidates from repository metadata.
            policy: Policy string, e.g. ``latest.patch`` or ``[1.0,2.0)``.
        """


class MavenVersionSelector(VersionSelector):
    """Selector using Maven version ordering and bracket ranges."""

    def select(self, coordinate: Coordinate, available_versions: Sequence[str], policy: str) -> Optional[str]:
        result = self.pick(coordinate, list(available_versions), parse_policy(policy))
        if is_debug_enabled(logger):
            logger.debug("Version selected", extra=extra_context(
                event="select", component="selector", action="select",
                outcome="selected" if result.selected_version else "none",
                coordinate=str(coordinate), count=result.candidate_count,
                reason=result.error
            ))
        return result.selected_version

    def pick(self, coordinate: Coordinate, candidates: List[str], spec: VersionSpec) -> SelectionResult:
        """Apply ``spec`` to ``candidates``.

        Returns:
            SelectionResult carrying the version (or None) and why.
        """
        if spec.mode == ResolutionMode.LATEST:
            version, error = self._pick_latest(coordinate.version, candidates, spec)
        elif spec.mode == ResolutionMode.EXACT:
            version, error = self._pick_exact(spec.raw, candidates)
        elif spec.mode == ResolutionMode.RANGE:
            version, error = self._pick_range(spec.raw, candidates, spec.include_prerelease)
        else:
            version, error = None, "Unsupported resolution mode"
        return SelectionResult(
            identifier=coordinate.key,
            policy=spec.raw,
            selected_version=version,
            candidate_count=len(candidates),
            error=error,
        )

    def _pick_latest(
        self, current: Optional[str], candidates: List[str], spec: VersionSpec
    ) -> Tuple[Optional[str], Optional[str]]:
        """Pick the highest candidate within the scope, newer than ``current``."""
        if not candidates:
            return None, "No versions available"

        eligible = []
        for candidate in candidates:
            if is_snapshot(candidate) and not spec.include_prerelease:
                continue
            if is_prerelease(candidate) and not spec.include_prerelease:
                continue
            if current and not self._in_scope(current, candidate, spec.scope):
                continue
            eligible.append(candidate)

        if current:
            floor = version_key(current)
            eligible = [v for v in eligible if version_key(v) > floor]
        if not eligible:
            return None, "No newer version available"
        return max(eligible, key=version_key), None

    @staticmethod
    def _in_scope(current: str, candidate: str, scope: Optional[LatestScope]) -> bool:
        if scope == LatestScope.PATCH:
            return release_prefix(candidate, 2) == release_prefix(current, 2)
        if scope == LatestScope.MINOR:
            return release_prefix(candidate, 1) == release_prefix(current, 1)
        return True

    def _pick_exact(self, version_str: str, candidates: List[str]) -> Tuple[Optional[str], Optional[str]]:
        """Check if exact version exists in candidates."""
        if version_str in candidates:
            return version_str, None
        return None, f"Version {version_str} not found"

    def _pick_range(
        self, range_spec: str, candidates: List[str], include_prerelease: bool
    ) -> Tuple[Optional[str], Optional[str]]:
        """Apply Maven version range and pick highest matching version."""
        matching = self._filter_by_range(range_spec, candidates)
        if not include_prerelease:
            matching = [v for v in matching if not is_prerelease(v)]
        if not matching:
            return None, f"No versions match range '{range_spec}'"
        return max(matching, key=version_key), None

    def _filter_by_range(self, range_spec: str, candidates: List[str]) -> List[str]:
        """Filter candidates by Maven version range specification."""
        range_spec = range_spec.strip()
        matching = set()
        for single in self._split_ranges(range_spec):
            matching.update(self._parse_bracket_range(single, candidates))
        # Keep metadata order for determinism
        return [v for v in candidates if v in matching]

    @staticmethod
    def _split_ranges(range_spec: str) -> List[str]:
        """Split unions like ``[1.0,2.0),[3.0,4.0]`` into single ranges."""
        ranges = []
        current = ""
        depth = 0
        for char in range_spec:
            if char in "[(":
                if depth == 0:
                    current = ""
                depth += 1
                current += char
            elif char in "])":
                depth -= 1
                current += char
                if depth == 0:
                    ranges.append(current)
                    current = ""
            elif depth > 0:
                current += char
        return ranges

    def _parse_bracket_range(self, range_spec: str, candidates: List[str]) -> List[str]:
        """Parse Maven bracket range notation like [1.0,2.0), (1.0,], or [1.2]."""
        if len(range_spec) < 2:
            return []
        inner = range_spec[1:-1]
        parts = inner.split(",")

        if len(parts) == 1:
            base = parts[0].strip()
            if not base:
                return []
            target = version_key(base)
            return [v for v in candidates if version_key(v) == target]

        lower_str, upper_str = parts[0].strip(), parts[1].strip()
        lower_inclusive = range_spec.startswith("[")
        upper_inclusive = range_spec.endswith("]")
        lower = version_key(lower_str) if lower_str else None
        upper = version_key(upper_str) if upper_str else None

        matching = []
        for v in candidates:
            key = version_key(v)
            if lower is not None:
                if lower_inclusive and key < lower:
                    continue
                if not lower_inclusive and key <= lower:
                    continue
            if upper is not None:
                if upper_inclusive and key > upper:
                    continue
                if not upper_inclusive and key >= upper:
                    continue
            matching.append(v)
        return matching
