"""POM document: parsed build descriptor with node references and markers.

Parsing and printing go through ``xml.etree.ElementTree`` with comments kept,
so whitespace inside the root element survives a round-trip. Markers are held
in a map keyed by node reference and are only turned into comments when the
document is printed; marker comments found while parsing are lifted back into
that map, which keeps re-annotation idempotent.
"""
from __future__ import annotations

import copy
import logging
import re
import uuid
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from constants import Constants
from document.markers import Marker, parse_comment_text
from errors import DocumentParseError

logger = logging.getLogger(__name__)

ET.register_namespace("", Constants.POM_NAMESPACE)
ET.register_namespace("xsi", "http://www.w3.org/2001/XMLSchema-instance")

_ROOT_START = re.compile(r"<(?![?!])")

PARENT_REF = "/project/parent"


def local_name(tag) -> str:
    """Tag name without its ``{namespace}`` prefix."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if local_name(child.tag) == name:
            return child
    return None


def _children(elem: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in elem if local_name(child.tag) == name]


def _text(elem: Optional[ET.Element], name: str) -> Optional[str]:
    if elem is None:
        return None
    child = _child(elem, name)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _index_nodes(root: ET.Element) -> Dict[str, ET.Element]:
    """Assign a stable path reference to every element.

    Repeated sibling tags get a 1-based index (``dependency[2]``); a tag that
    occurs once keeps its bare name.
    """
    refs: Dict[str, ET.Element] = {}

    def walk(elem: ET.Element, path: str) -> None:
        refs[path] = elem
        counts: Dict[str, int] = {}
        for child in elem:
            name = local_name(child.tag)
            if name:
                counts[name] = counts.get(name, 0) + 1
        seen: Dict[str, int] = {}
        for child in elem:
            name = local_name(child.tag)
            if not name:
                continue
            seen[name] = seen.get(name, 0) + 1
            suffix = f"[{seen[name]}]" if counts[name] > 1 or name in _LIST_TAGS else ""
            walk(child, f"{path}/{name}{suffix}")

    walk(root, "/" + local_name(root.tag))
    return refs


# Tags that always carry an index so references stay stable when siblings are added.
_LIST_TAGS = frozenset({"dependency", "repository", "pluginRepository", "exclusion"})


@dataclass(frozen=True)
class DeclaredParent:
    group_id: Optional[str]
    artifact_id: Optional[str]
    version: Optional[str]
    relative_path: Optional[str]
    node: str


@dataclass(frozen=True)
class DeclaredDependency:
    """Raw, unsubstituted fields of a ``<dependency>`` element."""

    group_id: Optional[str]
    artifact_id: Optional[str]
    version: Optional[str]
    type: Optional[str]
    classifier: Optional[str]
    scope: Optional[str]
    optional: Optional[str]
    node: str

    @property
    def is_optional(self) -> bool:
        return (self.optional or "").strip().lower() == "true"


class PomDocument:
    """A parsed POM with node references, edits and a marker map."""

    def __init__(
        self,
        root: ET.Element,
        prolog: str = "",
        epilog: str = "",
        source_path: Optional[str] = None,
        markers: Optional[Dict[str, List[Marker]]] = None,
    ):
        self._root = root
        self._prolog = prolog
        self._epilog = epilog
        self.source_path = source_path
        self.identity = uuid.uuid4().hex
        self._markers: Dict[str, List[Marker]] = markers or {}
        self._refs = _index_nodes(root)
        self._ref_by_id = {id(elem): ref for ref, elem in self._refs.items()}
        # Memo slot used by resolution.refresh: (identity, model)
        self.cached_model = None

    @classmethod
    def parse(cls, text: str, source_path: Optional[str] = None) -> "PomDocument":
        """Parse POM text, lifting existing marker comments into the marker map."""
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        match = _ROOT_START.search(text)
        prolog = text[: match.start()] if match else ""
        epilog = text[len(text.rstrip()):]
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
        try:
            root = ET.fromstring(text, parser=parser)
        except ET.ParseError as exc:
            raise DocumentParseError(f"Unable to parse {source_path or 'POM'}: {exc}") from exc
        if local_name(root.tag) != "project":
            raise DocumentParseError(
                f"Unable to parse {source_path or 'POM'}: root element is <{local_name(root.tag)}>"
            )
        lifted = _lift_marker_comments(root)
        document = cls(root, prolog=prolog, epilog=epilog, source_path=source_path)
        for elem, messages in lifted:
            ref = document.ref_of(elem)
            if ref is not None:
                document._markers[ref] = [Marker(None, m, ref) for m in messages]
        return document

    # -- identity -------------------------------------------------------

    @property
    def display_name(self) -> str:
        if self.source_path:
            return self.source_path
        coordinate = self.coordinate()
        return ":".join(part or "?" for part in coordinate)

    def copy(self) -> "PomDocument":
        """Deep copy with a new identity and no memoized model."""
        markers = {ref: list(items) for ref, items in self._markers.items()}
        return PomDocument(
            copy.deepcopy(self._root),
            prolog=self._prolog,
            epilog=self._epilog,
            source_path=self.source_path,
            markers=markers,
        )

    # -- node access ----------------------------------------------------

    def node(self, ref: str) -> Optional[ET.Element]:
        return self._refs.get(ref)

    def ref_of(self, elem: ET.Element) -> Optional[str]:
        ref = self._ref_by_id.get(id(elem))
        if ref is not None and self._refs[ref] is elem:
            return ref
        return None

    def coordinate(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Own (groupId, artifactId, version), inheriting group/version from the parent."""
        parent = _child(self._root, "parent")
        group_id = _text(self._root, "groupId") or _text(parent, "groupId")
        version = _text(self._root, "version") or _text(parent, "version")
        return group_id, _text(self._root, "artifactId"), version

    def packaging(self) -> str:
        return _text(self._root, "packaging") or "jar"

    def parent(self) -> Optional[DeclaredParent]:
        elem = _child(self._root, "parent")
        if elem is None:
            return None
        return DeclaredParent(
            group_id=_text(elem, "groupId"),
            artifact_id=_text(elem, "artifactId"),
            version=_text(elem, "version"),
            relative_path=_text(elem, "relativePath"),
            node=PARENT_REF,
        )

    def properties(self) -> Dict[str, str]:
        """Declared ``<properties>`` in document order."""
        elem = _child(self._root, "properties")
        if elem is None:
            return {}
        result: Dict[str, str] = {}
        for child in elem:
            name = local_name(child.tag)
            if name:
                result[name] = (child.text or "").strip()
        return result

    def dependencies(self) -> List[DeclaredDependency]:
        return self._dependencies_under(_child(self._root, "dependencies"))

    def managed_dependencies(self) -> List[DeclaredDependency]:
        management = _child(self._root, "dependencyManagement")
        if management is None:
            return []
        return self._dependencies_under(_child(management, "dependencies"))

    def repositories(self) -> List[Dict[str, object]]:
        """Declared ``<repositories>`` as raw mappings (id, url, releases, snapshots)."""
        container = _child(self._root, "repositories")
        if container is None:
            return []
        result = []
        for elem in _children(container, "repository"):
            entry: Dict[str, object] = {
                "id": _text(elem, "id"),
                "url": _text(elem, "url"),
                "node": self.ref_of(elem),
            }
            for policy in ("releases", "snapshots"):
                enabled = _text(_child(elem, policy), "enabled")
                if enabled is not None:
                    entry[policy] = enabled
            result.append(entry)
        return result

    def _dependencies_under(self, container: Optional[ET.Element]) -> List[DeclaredDependency]:
        if container is None:
            return []
        result = []
        for elem in _children(container, "dependency"):
            result.append(
                DeclaredDependency(
                    group_id=_text(elem, "groupId"),
                    artifact_id=_text(elem, "artifactId"),
                    version=_text(elem, "version"),
                    type=_text(elem, "type"),
                    classifier=_text(elem, "classifier"),
                    scope=_text(elem, "scope"),
                    optional=_text(elem, "optional"),
                    node=self.ref_of(elem) or "",
                )
            )
        return result

    # -- edits ----------------------------------------------------------

    def field(self, ref: str, name: str) -> Optional[str]:
        return _text(self.node(ref), name)

    def set_field(self, ref: str, name: str, value: str) -> bool:
        """Replace the text of ``<name>`` under node ``ref``; returns True on change."""
        elem = self.node(ref)
        child = _child(elem, name) if elem is not None else None
        if child is None:
            raise KeyError(f"{ref} has no <{name}> element")
        if (child.text or "").strip() == value:
            return False
        child.text = value
        return True

    def set_property(self, name: str, value: str) -> bool:
        """Replace a declared property value; returns False when it is not declared here."""
        elem = _child(self._root, "properties")
        prop = _child(elem, name) if elem is not None else None
        if prop is None:
            return False
        if (prop.text or "").strip() == value:
            return False
        prop.text = value
        return True

    def override_property(self, name: str, value: str) -> bool:
        """Declare ``name`` in this document's ``<properties>``, adding the section when absent.

        Used when the property is inherited from a parent: the local
        declaration shadows the parent's value.
        """
        container = _child(self._root, "properties")
        if container is not None and _child(container, name) is not None:
            return self.set_property(name, value)
        namespace = self._root.tag[: self._root.tag.index("}") + 1] if self._root.tag.startswith("{") else ""
        if container is None:
            container = ET.Element(namespace + "properties")
            anchor = _child(self._root, "dependencyManagement")
            if anchor is None:
                anchor = _child(self._root, "dependencies")
            _insert_indented(self._root, container, list(self._root).index(anchor) if anchor is not None else None)
        prop = ET.Element(namespace + name)
        prop.text = value
        _insert_indented(container, prop)
        self._refs = _index_nodes(self._root)
        self._ref_by_id = {id(elem): ref for ref, elem in self._refs.items()}
        return True

    # -- markers --------------------------------------------------------

    def markers(self, ref: Optional[str] = None) -> List[Marker]:
        """Markers for one node, or all markers in document order."""
        if ref is not None:
            return list(self._markers.get(ref, ()))
        ordered = []
        for node_ref in self._refs:
            ordered.extend(self._markers.get(node_ref, ()))
        return ordered

    def replace_markers(self, ref: str, markers: Sequence[Marker]) -> None:
        """Replace every marker bound to ``ref``; an empty sequence clears them."""
        if ref not in self._refs:
            raise KeyError(f"Unknown node {ref}")
        if self._refs[ref] is self._root:
            raise ValueError("Markers bind to a node preceded by a sibling slot, not the root")
        if markers:
            self._markers[ref] = list(markers)
        else:
            self._markers.pop(ref, None)

    # -- printing -------------------------------------------------------

    def print_all(self) -> str:
        """Render the document with markers as comments preceding their nodes."""
        return self._prolog + self._render_root() + self._epilog

    def print_trimmed(self) -> str:
        return self.print_all().strip()

    def _render_root(self) -> str:
        if not self._markers:
            return ET.tostring(self._root, encoding="unicode")
        root = copy.deepcopy(self._root)
        refs = _index_nodes(root)
        parents = {child: parent for parent in root.iter() for child in parent}
        for ref, markers in self._markers.items():
            target = refs.get(ref)
            if target is None or not markers:
                continue
            parent = parents[target]
            position = list(parent).index(target)
            for offset, marker in enumerate(markers):
                comment = ET.Comment(marker.comment_text())
                comment.tail = ""
                parent.insert(position + offset, comment)
        return ET.tostring(root, encoding="unicode")

    def __repr__(self) -> str:
        return f"PomDocument({self.display_name!r}, markers={len(self.markers())})"


def _lift_marker_comments(root: ET.Element) -> List[Tuple[ET.Element, List[str]]]:
    """Remove marker comments from the tree and return them per following element."""
    lifted: List[Tuple[ET.Element, List[str]]] = []
    for parent in list(root.iter()):
        pending: List[str] = []
        for child in list(parent):
            if child.tag is ET.Comment:
                message = parse_comment_text(child.text)
                if message is None:
                    continue
                _remove_preserving_tail(parent, child)
                pending.append(message)
                continue
            if pending:
                lifted.append((child, pending))
                pending = []
        if pending:
            logger.debug("Dropping trailing marker comments with no following node")
    return lifted


def _remove_preserving_tail(parent: ET.Element, child: ET.Element) -> None:
    tail = child.tail or ""
    siblings = list(parent)
    index = siblings.index(child)
    if tail:
        if index > 0:
            previous = siblings[index - 1]
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(child)


def _insert_indented(parent: ET.Element, child: ET.Element, index: Optional[int] = None) -> None:
    """Insert ``child`` with the indentation its new siblings use."""
    siblings = list(parent)
    if not siblings:
        outer = parent.tail if parent.tail and not parent.tail.strip() else "\n"
        parent.text = outer + "  "
        child.tail = outer
        parent.append(child)
        return
    indent = parent.text if parent.text and not parent.text.strip() else "\n"
    if index is None or index >= len(siblings):
        last = siblings[-1]
        child.tail = last.tail
        last.tail = indent
        parent.append(child)
        return
    child.tail = indent
    parent.insert(index, child)
