"""Flag submission.

`dispatch` turns a mode and a target into a `SubmissionRequest`, or stops
early with `AlreadyOwnedResult` / `UserCancelled`. `submit` posts the request.

Per mode:
- challenge: difficulty (1-10) checked before any call, sent as rating * 10.
- machine / active: both flags already owned -> nothing is submitted;
  otherwise the own endpoint depends on the machine type.
- fortress / prolab: `/<kind>/<id>/flag`.
The flag is read last, through the masked prompt in the context.
"""

from __future__ import annotations

import logging

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    AlreadyOwnedResult,
    MachineProfile,
    MessageResponse,
    OperationKind,
    ResourceKind,
    ResourceRef,
    SubmissionMode,
    SubmissionRequest,
    UserCancelled,
)
from htb_cli.core.errors import ValidationError
from htb_cli.core.interfaces.transport import decode_as
from htb_cli.core.services import routing
from htb_cli.core.services.account import AccountStateProbe
from htb_cli.core.services.resolver import ResourceResolver

logger = logging.getLogger(__name__)

CHALLENGE_OWN_PATH = "/challenge/own"
ACTIVE_CONFIRMATION = "Would you like to submit a flag for the active machine ?"
FLAG_PROMPT = "Flag"

DispatchResult = SubmissionRequest | AlreadyOwnedResult | UserCancelled


def validate_difficulty(difficulty: int | None) -> int | None:
    """Scaled difficulty for the API (rating * 10), or None when no rating was given."""

    if difficulty is None:
        return None
    if difficulty < 1 or difficulty > 10:
        raise ValidationError("difficulty must be set between 1 and 10")
    return difficulty * 10


def clean_flag(raw: str) -> str:
    flag = "".join(raw.split())
    if not flag:
        raise ValidationError("The flag cannot be empty")
    return flag


class SubmissionDispatcher:
    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx
        self._resolver = ResourceResolver(ctx)
        self._probe = AccountStateProbe(ctx)

    async def dispatch(
        self,
        mode: SubmissionMode,
        target: str | None = None,
        *,
        difficulty: int | None = None,
    ) -> DispatchResult:
        logger.info("%s submit requested", mode.value.capitalize())

        if mode is SubmissionMode.CHALLENGE:
            scaled = validate_difficulty(difficulty)
            ref = await self._resolver.resolve(_require(target, mode), ResourceKind.CHALLENGE)
            payload: dict[str, object] = {"challenge_id": ref.id}
            if scaled is not None:
                payload["difficulty"] = scaled
            request = SubmissionRequest(endpoint=CHALLENGE_OWN_PATH, payload=payload)
        elif mode is SubmissionMode.MACHINE:
            ref = await self._resolver.resolve(_require(target, mode), ResourceKind.MACHINE)
            outcome = await self._machine_request(ref)
            if isinstance(outcome, AlreadyOwnedResult):
                return outcome
            request = outcome
        elif mode is SubmissionMode.ACTIVE:
            if not self._ctx.confirm(ACTIVE_CONFIRMATION):
                return UserCancelled()
            ref = await self._resolver.resolve_active_machine()
            outcome = await self._machine_request(ref)
            if isinstance(outcome, AlreadyOwnedResult):
                return outcome
            request = outcome
        elif mode is SubmissionMode.FORTRESS:
            ref = await self._resolver.resolve(_require(target, mode), ResourceKind.FORTRESS)
            request = SubmissionRequest(endpoint=f"/fortress/{ref.id}/flag", payload={}, resolved_resource_id=ref.id)
        elif mode is SubmissionMode.PROLAB:
            ref = await self._resolver.resolve(_require(target, mode), ResourceKind.PROLAB)
            request = SubmissionRequest(endpoint=f"/prolab/{ref.id}/flag", payload={}, resolved_resource_id=ref.id)
        else:
            raise AssertionError(f"unhandled submission mode: {mode!r}")

        flag = clean_flag(self._ctx.read_secret(FLAG_PROMPT))
        logger.debug("Flag read (%d characters)", len(flag))
        return request.model_copy(update={"payload": {**request.payload, "flag": flag}})

    async def submit(self, request: SubmissionRequest) -> str:
        document = await self._ctx.transport.post(request.endpoint, request.payload)
        return decode_as(MessageResponse, document, url=request.endpoint).message

    async def _machine_request(self, ref: ResourceRef) -> SubmissionRequest | AlreadyOwnedResult:
        path = f"/machine/profile/{ref.id}"
        profile = decode_as(MachineProfile, await self._ctx.transport.get(path, envelope="info"), url=path)
        if profile.fully_owned:
            logger.info("Machine %s is already owned (user and root)", ref.id)
            return AlreadyOwnedResult(resource_id=ref.id)

        state = await self._probe.probe(ref)
        route = routing.select(OperationKind.OWN, ref, state)
        return SubmissionRequest(endpoint=route.path, payload=dict(route.payload), resolved_resource_id=ref.id)


def _require(target: str | None, mode: SubmissionMode) -> str:
    if not target or not target.strip():
        raise ValidationError(f"A {mode.value} name is required")
    return target
