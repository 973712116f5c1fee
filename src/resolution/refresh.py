"""Per-document effective model memo and its explicit refresh."""
from __future__ import annotations

import logging

from common.logging_utils import extra_context
from document.pom import PomDocument
from resolution.annotator import resolve_document
from resolution.context import ResolutionContext
from resolution.models import EffectiveModel, ResolutionReport
from resolution.resolver import EffectiveModelResolver

logger = logging.getLogger(__name__)


def _memo(document: PomDocument, context: ResolutionContext):
    cached = document.cached_model
    if cached is None:
        return None
    identity, owner, report = cached
    if identity != document.identity or owner is not context:
        return None
    return report


def effective_model(document: PomDocument, context: ResolutionContext) -> EffectiveModel:
    """Effective model of ``document``, built on first access and memoized on it.

    The memo is tied to the document identity and to ``context``; building
    does not annotate the document.
    """
    report = _memo(document, context)
    if report is None:
        report = EffectiveModelResolver(context).resolve(document)
        document.cached_model = (document.identity, context, report)
    return report.model


def refresh(document: PomDocument, context: ResolutionContext, attach: bool = True) -> ResolutionReport:
    """Discard the memoized model of ``document`` and rebuild it with ``context``.

    Only the per-document memo is dropped. Outcomes already settled in
    ``context``'s cache are reused; pass a context with a fresh cache (or a
    different local repository) to observe changed repository content.

    Raises:
        UnresolvedDocumentError: when ``attach`` is False and a node failed.
    """
    document.cached_model = None
    logger.info(
        "Refreshing effective model of %s", document.display_name,
        extra=extra_context(event="refresh", component="refresh", action="refresh"),
    )
    report = resolve_document(document, context, attach=attach)
    document.cached_model = (document.identity, context, report)
    return report
