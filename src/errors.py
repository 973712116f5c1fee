"""Exception hierarchy for the resolver."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from document.pom import PomDocument
    from resolution.models import ResolutionFailure


class PomResolverError(Exception):
    """Base class for all resolver errors."""


class ConfigurationError(PomResolverError):
    """Invalid repository or context configuration."""


class DocumentParseError(PomResolverError):
    """A build descriptor could not be parsed."""


class UnresolvedDocumentError(PomResolverError):
    """Resolution failed on one or more nodes and no attachment context was given.

    The payload is the fully annotated document so callers can print or log
    every marker discovered in the pass.
    """

    def __init__(self, document: "PomDocument", failures: Sequence["ResolutionFailure"]):
        self.document = document
        self.failures: List["ResolutionFailure"] = list(failures)
        summary = "; ".join(f.message.splitlines()[0] for f in self.failures[:3])
        more = "" if len(self.failures) <= 3 else f" (+{len(self.failures) - 3} more)"
        super().__init__(
            f"{len(self.failures)} unresolved node(s) in {document.display_name}: {summary}{more}"
        )
