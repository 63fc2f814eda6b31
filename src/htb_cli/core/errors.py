"""Error taxonomy.

Every failure the core raises derives from `HTBError`, so the CLI can catch
a single type and print it verbatim. Expected outcomes (timeout, already
owned, cancelled) are result values in `core.domain.models`, not exceptions.
"""

from __future__ import annotations

from typing import Sequence


class HTBError(Exception):
    """Base class for errors surfaced to the user."""


class NotFoundError(HTBError):
    def __init__(self, term: str, kind: str | None = None) -> None:
        self.term = term
        self.kind = kind
        label = f"{kind} " if kind else ""
        super().__init__(f"No {label}found matching '{term}'")


class AmbiguousError(HTBError):
    """Several search hits matched and none of them is an exact name match."""

    def __init__(self, term: str, candidates: Sequence[object]) -> None:
        self.term = term
        self.candidates = list(candidates)
        super().__init__(
            f"'{term}' matches {len(self.candidates)} results, please use a more precise name"
        )


class TransportError(HTBError):
    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ShapeError(HTBError):
    """The API answered, but not with the JSON structure we expected."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        self.url = url
        super().__init__(message)


class ValidationError(HTBError):
    pass
