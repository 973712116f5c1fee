"""Ordering keys for Maven version strings.

PEP 440-compatible strings are read with ``packaging.version``; anything it
rejects (``1.0-SNAPSHOT``, ``29.0-jre``, ``5.3.1.Final``) goes through a small
Maven-style tokenizer. Both paths produce the same key shape::

    (release numbers without trailing zeros, qualifier rank, qualifier number, qualifier label)

Qualifier ranks follow Maven: alpha < beta < milestone < rc < snapshot <
release < sp, with unknown qualifiers after all known ones, ordered lexically.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Tuple

from packaging.version import InvalidVersion, Version

VersionKey = Tuple[Tuple[int, ...], int, int, str]

RANK_ALPHA = 1
RANK_BETA = 2
RANK_MILESTONE = 3
RANK_RC = 4
RANK_SNAPSHOT = 5
RANK_RELEASE = 6
RANK_SP = 7
RANK_UNKNOWN = 8

_QUALIFIERS = {
    "alpha": RANK_ALPHA,
    "a": RANK_ALPHA,
    "beta": RANK_BETA,
    "b": RANK_BETA,
    "milestone": RANK_MILESTONE,
    "m": RANK_MILESTONE,
    "rc": RANK_RC,
    "cr": RANK_RC,
    "snapshot": RANK_SNAPSHOT,
    "": RANK_RELEASE,
    "ga": RANK_RELEASE,
    "final": RANK_RELEASE,
    "release": RANK_RELEASE,
    "sp": RANK_SP,
}

_NUMERIC_PREFIX = re.compile(r"^(\d+(?:\.\d+)*)(.*)$")
_QUALIFIER = re.compile(r"^([a-z]*)[-.]?(\d*)(.*)$")


def _trim(release: Tuple[int, ...]) -> Tuple[int, ...]:
    values = list(release)
    while values and values[-1] == 0:
        values.pop()
    return tuple(values)


def _from_packaging(parsed: Version) -> VersionKey:
    release = _trim(parsed.release)
    if parsed.dev is not None:
        return release, RANK_SNAPSHOT, parsed.dev, ""
    if parsed.pre is not None:
        label, number = parsed.pre
        rank = {"a": RANK_ALPHA, "b": RANK_BETA, "rc": RANK_RC}[label]
        return release, rank, number, ""
    if parsed.post is not None:
        return release, RANK_SP, parsed.post, ""
    return release, RANK_RELEASE, 0, ""


def _from_tokens(raw: str) -> VersionKey:
    text = raw.strip().lower()
    match = _NUMERIC_PREFIX.match(text)
    if match is None:
        return (), RANK_UNKNOWN, 0, text
    release = _trim(tuple(int(part) for part in match.group(1).split(".")))
    rest = match.group(2).lstrip("-.")
    qualifier = _QUALIFIER.match(rest)
    label, number, remainder = qualifier.group(1), qualifier.group(2), qualifier.group(3)
    rank = _QUALIFIERS.get(label)
    if rank is None or remainder:
        return release, RANK_UNKNOWN, 0, rest
    return release, rank, int(number) if number else 0, ""


@lru_cache(maxsize=4096)
def version_key(raw: str) -> VersionKey:
    """Sort key for a Maven version string."""
    try:
        return _from_packaging(Version(raw))
    except InvalidVersion:
        return _from_tokens(raw)


def is_snapshot(raw: str) -> bool:
    return raw.upper().endswith("-SNAPSHOT")


def is_prerelease(raw: str) -> bool:
    """True for snapshots and alpha/beta/milestone/rc qualifiers."""
    return version_key(raw)[1] < RANK_RELEASE


def release_prefix(raw: str, length: int) -> Tuple[int, ...]:
    """Leading release numbers padded with zeros to ``length``."""
    release = version_key(raw)[0]
    return tuple(release[i] if i < len(release) else 0 for i in range(length))
