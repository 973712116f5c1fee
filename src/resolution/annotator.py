"""Failure annotator: project resolution failures onto document nodes.

Two projections share one failure list. With an attachment context the
document's marker map is updated in place; without one the failures are
raised as ``UnresolvedDocumentError`` carrying an annotated copy.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from common.logging_utils import extra_context, is_debug_enabled
from document.markers import Marker
from document.pom import PomDocument
from errors import UnresolvedDocumentError
from resolution.context import ResolutionContext
from resolution.models import ResolutionFailure, ResolutionReport
from resolution.resolver import EffectiveModelResolver

logger = logging.getLogger(__name__)


class FailureAnnotator:
    """Turns ResolutionFailures into markers bound to the nodes they concern."""

    def annotate(
        self,
        document: PomDocument,
        failures: Sequence[ResolutionFailure],
        touched: Optional[Iterable[str]] = None,
        keep: Optional[Callable[[Marker], bool]] = None,
    ) -> PomDocument:
        """Replace the markers of every node the pass looked at.

        Args:
            document: Document to annotate in place.
            failures: Failures from one resolution pass, in discovery order.
            touched: Node references evaluated by the pass. Those without a
                failure lose any marker they carried; nodes outside this set
                keep theirs.
            keep: Existing markers on a replaced node for which this returns
                True are kept ahead of the new ones. By default the pass
                owns every marker on the nodes it replaces.

        Returns:
            The same document.
        """
        grouped = self._group(failures)
        for ref in touched or ():
            grouped.setdefault(ref, [])

        for ref, node_failures in grouped.items():
            if document.node(ref) is None:
                logger.warning("Failure target %s not found in %s", ref, document.display_name)
                continue
            markers = [m for m in document.markers(ref) if keep(m)] if keep else []
            known = {m.message for m in markers}
            markers.extend(Marker(f.kind, f.message, ref, f.detail) for f in node_failures if f.message not in known)
            if markers == document.markers(ref):
                continue
            document.replace_markers(ref, markers)
            if is_debug_enabled(logger):
                logger.debug("Markers replaced", extra=extra_context(
                    event="annotate", component="annotator", action="replace_markers",
                    node=ref, count=len(markers)
                ))
        return document

    def raise_for(self, document: PomDocument, failures: Sequence[ResolutionFailure],
                  touched: Optional[Iterable[str]] = None,
                  keep: Optional[Callable[[Marker], bool]] = None) -> None:
        """Raise UnresolvedDocumentError with an annotated copy when anything failed."""
        if not failures:
            return
        annotated = self.annotate(document.copy(), failures, touched, keep)
        raise UnresolvedDocumentError(annotated, failures)

    @staticmethod
    def _group(failures: Sequence[ResolutionFailure]) -> "OrderedDict[str, List[ResolutionFailure]]":
        grouped: "OrderedDict[str, List[ResolutionFailure]]" = OrderedDict()
        seen: Dict[str, set] = {}
        for failure in failures:
            if failure.target is None:
                logger.warning(
                    "Unattached resolution failure: %s", failure.message.splitlines()[0],
                    extra=extra_context(event="annotate", component="annotator",
                                        action="skip", kind=failure.kind.value),
                )
                continue
            # The same message twice on one node is one marker
            messages = seen.setdefault(failure.target, set())
            if failure.message in messages:
                continue
            messages.add(failure.message)
            grouped.setdefault(failure.target, []).append(failure)
        return grouped


def resolve_document(document: PomDocument, context: ResolutionContext,
                     attach: bool = True) -> ResolutionReport:
    """Resolve ``document`` and project its failures.

    Args:
        document: Document to resolve.
        context: Resolution context (registry, cache, selector).
        attach: When True, markers are attached to ``document``. When False
            the document is left untouched and any failure raises.

    Raises:
        UnresolvedDocumentError: when ``attach`` is False and a node failed.
    """
    report = EffectiveModelResolver(context).resolve(document)
    annotator = FailureAnnotator()
    if attach:
        annotator.annotate(document, report.failures, report.touched)
    else:
        annotator.raise_for(document, report.failures, report.touched)
    return report
