"""Transport contract for the labs API.

The services only need two verbs. Paths are relative to the API base URL;
`envelope` names the key (dotted for nested keys, e.g. ``data.labs``) that
wraps the useful part of the response.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from htb_cli.core.errors import ShapeError

ModelT = TypeVar("ModelT", bound=BaseModel)


@runtime_checkable
class LabTransport(Protocol):
    """Minimal contract for talking to the API.

    Rules:
    - both calls are async because they do network I/O;
    - failures raise `TransportError` (network or HTTP status) or
      `ShapeError` (missing envelope), never return sentinel values.
    """

    async def get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        envelope: str | None = None,
    ) -> Any:
        ...

    async def post(
        self,
        path: str,
        payload: Mapping[str, Any] | None = None,
        *,
        envelope: str | None = None,
    ) -> Any:
        ...


def extract_envelope(document: Any, envelope: str | None, *, url: str | None = None) -> Any:
    """Walk `envelope` into `document`. A missing key is a `ShapeError`; a null value is returned as is."""

    if not envelope:
        return document
    current = document
    for part in envelope.split("."):
        if not isinstance(current, dict) or part not in current:
            raise ShapeError(f"Response has no '{envelope}' field", url=url)
        current = current[part]
    return current


def decode_as(model: type[ModelT], value: Any, *, url: str | None = None) -> ModelT:
    if not isinstance(value, dict):
        raise ShapeError(
            f"Expected an object for {model.__name__}, got {type(value).__name__}",
            url=url,
        )
    try:
        return model.model_validate(value)
    except PydanticValidationError as exc:
        raise ShapeError(f"Unexpected {model.__name__} format: {exc.error_count()} invalid field(s)", url=url) from exc
