"""``${name}`` property substitution with cycle detection."""
from __future__ import annotations

import re
from typing import Dict, Mapping, Optional, Tuple

from constants import FailureKind
from errors import PomResolverError

_REFERENCE = re.compile(r"\$\{([^}]*)\}")


class PropertyResolutionError(PomResolverError):
    """A reference could not be substituted: undefined name or a cycle."""

    def __init__(self, name: str, chain: Tuple[str, ...], cycle: bool):
        self.name = name
        self.chain = chain
        self.cycle = cycle
        if cycle:
            detail = " -> ".join(chain + (name,))
            super().__init__(f"Property cycle: {detail}")
        else:
            super().__init__(f"Undefined property: {name}")

    @property
    def kind(self) -> FailureKind:
        return FailureKind.PROPERTY_CYCLE if self.cycle else FailureKind.UNRESOLVED_PROPERTY


def has_references(value: Optional[str]) -> bool:
    return bool(value) and _REFERENCE.search(value) is not None


def project_builtins(
    group_id: Optional[str],
    artifact_id: Optional[str],
    version: Optional[str],
    parent: Optional[Tuple[Optional[str], Optional[str], Optional[str]]] = None,
) -> Dict[str, str]:
    """``project.*`` values; ``pom.*`` is accepted as a legacy alias at lookup time."""
    builtins: Dict[str, str] = {}
    for name, value in (("groupId", group_id), ("artifactId", artifact_id), ("version", version)):
        if value:
            builtins[f"project.{name}"] = value
    if parent is not None:
        for name, value in zip(("groupId", "artifactId", "version"), parent):
            if value:
                builtins[f"project.parent.{name}"] = value
    return builtins


class PropertyResolver:
    """Substitutes references against merged properties plus built-ins.

    Each substitution chain carries the names it is currently expanding; a
    name seen twice in one chain is a cycle and fails at once. Fully
    expanded values are memoized per resolver.
    """

    def __init__(self, properties: Mapping[str, str], builtins: Optional[Mapping[str, str]] = None):
        self._properties = dict(properties)
        self._builtins = dict(builtins or {})
        self._expanded: Dict[str, str] = {}

    def substitute(self, value: Optional[str]) -> Optional[str]:
        """Return ``value`` with every reference expanded.

        Raises:
            PropertyResolutionError: on an undefined name or a cycle.
        """
        if value is None:
            return None
        return self._expand(value, ())

    def try_substitute(self, value: Optional[str]) -> Optional[str]:
        """Like ``substitute`` but returns None instead of raising."""
        try:
            return self.substitute(value)
        except PropertyResolutionError:
            return None

    def _expand(self, value: str, chain: Tuple[str, ...]) -> str:
        if "${" not in value:
            return value
        parts = []
        position = 0
        for match in _REFERENCE.finditer(value):
            parts.append(value[position:match.start()])
            parts.append(self._lookup(match.group(1).strip(), chain))
            position = match.end()
        parts.append(value[position:])
        return "".join(parts)

    def _lookup(self, name: str, chain: Tuple[str, ...]) -> str:
        if name in chain:
            raise PropertyResolutionError(name, chain, cycle=True)
        if name in self._expanded:
            return self._expanded[name]
        raw = self._raw(name)
        if raw is None:
            raise PropertyResolutionError(name, chain, cycle=False)
        expanded = self._expand(raw, chain + (name,))
        self._expanded[name] = expanded
        return expanded

    def _raw(self, name: str) -> Optional[str]:
        if not name:
            return None
        if name in self._properties:
            return self._properties[name]
        if name.startswith("pom."):
            name = "project." + name[len("pom."):]
        return self._builtins.get(name)
