"""Maven repository layout and metadata parsing helpers."""
from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from resolution.models import ArtifactMetadata, Coordinate
from versioning.comparable import version_key

logger = logging.getLogger(__name__)

# maven-metadata.xml is usually served without a namespace, but some
# repository managers emit one; strip it before lookups.
_LOCAL_METADATA_FILES = ("maven-metadata-local.xml", Constants.METADATA_FILE)


def _strip_namespace(root: ET.Element) -> ET.Element:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.rsplit("}", 1)[-1]
    return root


def _group_path(group: str) -> str:
    return group.replace(".", "/")


def _metadata_path(group: str, artifact: str, filename: str = Constants.METADATA_FILE) -> str:
    """Repository-relative path of the artifact-level metadata file."""
    return f"{_group_path(group)}/{artifact}/{filename}"


def _artifact_pom_path(coordinate: Coordinate) -> str:
    """Repository-relative path of a coordinate's POM.

    Args:
        coordinate: Complete coordinate

    Returns:
        Path such as ``com/example/lib/1.0/lib-1.0.pom``
    """
    return (
        f"{_group_path(coordinate.group_id)}/{coordinate.artifact_id}/{coordinate.version}/"
        f"{coordinate.artifact_id}-{coordinate.version}.pom"
    )


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


def _parse_metadata(text: str, group: str, artifact: str) -> ArtifactMetadata:
    """Parse maven-metadata.xml into an ArtifactMetadata.

    Raises:
        ET.ParseError: when the document is not XML.
        ValueError: when the root element is not <metadata>.
    """
    root = _strip_namespace(ET.fromstring(text))
    if root.tag != "metadata":
        raise ValueError(f"Unexpected metadata root <{root.tag}>")

    versions: List[str] = []
    versioning = root.find("versioning")
    latest = release = None
    if versioning is not None:
        versions_elem = versioning.find("versions")
        if versions_elem is not None:
            for item in versions_elem.findall("version"):
                if isinstance(item.text, str) and item.text.strip():
                    versions.append(item.text.strip())
        latest_elem = versioning.find("latest")
        if latest_elem is not None and latest_elem.text:
            latest = latest_elem.text.strip()
        release_elem = versioning.find("release")
        if release_elem is not None and release_elem.text:
            release = release_elem.text.strip()
    # Single-version metadata written by older tools
    top_version = root.find("version")
    if not versions and top_version is not None and top_version.text:
        versions.append(top_version.text.strip())

    if is_debug_enabled(logger):
        logger.debug("Parsed Maven metadata", extra=extra_context(
            event="parse", component="discovery", action="parse_metadata",
            outcome="success", count=len(versions), coordinate=f"{group}:{artifact}"
        ))
    return ArtifactMetadata(
        group_id=group,
        artifact_id=artifact,
        versions=tuple(versions),
        latest=latest,
        release=release,
    )


def _local_metadata_text(root_dir: str, group: str, artifact: str) -> Optional[str]:
    """Read the first local metadata file present, or None."""
    for filename in _LOCAL_METADATA_FILES:
        path = os.path.join(root_dir, *_metadata_path(group, artifact, filename).split("/"))
        if os.path.isfile(path):
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
    return None


def _local_versions_from_layout(root_dir: str, group: str, artifact: str) -> List[str]:
    """Versions installed in a local repository, derived from directory layout.

    Used when no metadata file exists; a version counts only when its POM is present.
    """
    artifact_dir = os.path.join(root_dir, *_group_path(group).split("/"), artifact)
    if not os.path.isdir(artifact_dir):
        return []
    versions = []
    for entry in sorted(os.listdir(artifact_dir)):
        pom = os.path.join(artifact_dir, entry, f"{artifact}-{entry}.pom")
        if os.path.isfile(pom):
            versions.append(entry)
    return versions


def _merge_metadata(parts: List[ArtifactMetadata]) -> ArtifactMetadata:
    """Union of version listings from several repositories.

    Versions keep first-seen order; ``latest`` and ``release`` are the
    highest values any repository reported.
    """
    first = parts[0]
    versions: List[str] = []
    seen = set()
    for part in parts:
        for version in part.versions:
            if version not in seen:
                seen.add(version)
                versions.append(version)
    latest = [p.latest for p in parts if p.latest]
    release = [p.release for p in parts if p.release]
    return ArtifactMetadata(
        group_id=first.group_id,
        artifact_id=first.artifact_id,
        versions=tuple(versions),
        latest=max(latest, key=version_key) if latest else None,
        release=max(release, key=version_key) if release else None,
    )
