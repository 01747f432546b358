"""Caller-facing entry points of the voting engine.

Every expected rejection comes back as a typed result carrying a
`RejectionReason`; only infrastructure failures propagate as exceptions.
Admin operations require a `VotingContext` with the admin role.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from django.db import DatabaseError, models

from voting import rounds_lifecycle
from voting.device_identity import identify, short_device_id
from voting.models import Candidate, Round
from voting.rounds_errors import (
    NotAuthorizedError,
    RejectionReason,
    RoundError,
    RoundNotFoundError,
)
from voting.rounds_services import list_candidates, record_ballot, stage_results

logger = logging.getLogger(__name__)


class Role(models.TextChoices):
    admin = "admin", "Administrator"
    voter = "voter", "Voter"


@dataclass(frozen=True)
class VotingContext:
    role: Role = Role.voter
    actor: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    @classmethod
    def for_admin(cls, actor: str = "") -> VotingContext:
        return cls(role=Role.admin, actor=actor)


VOTER = VotingContext()


@dataclass(frozen=True)
class BallotResult:
    ok: bool
    round_id: int | None = None
    stage: int | None = None
    vote_ids: list[int] = field(default_factory=list)
    reason: RejectionReason | None = None
    message: str = ""


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    round: Round | None = None
    reason: RejectionReason | None = None
    message: str = ""
    stage: int | None = None


@dataclass(frozen=True)
class FinalizeResult:
    ok: bool
    eliminated: list[int] = field(default_factory=list)
    selected: list[int] = field(default_factory=list)
    next_ballot_limit: int | None = None
    stage: int | None = None
    reason: RejectionReason | None = None
    message: str = ""


def _get_round(round_id: int) -> Round:
    found = Round.objects.filter(pk=round_id).first()
    if found is None:
        raise RoundNotFoundError()
    return found


def _require_admin(context: VotingContext) -> None:
    if not context.is_admin:
        raise NotAuthorizedError()


def get_open_round() -> Round | None:
    return Round.objects.filter(is_open=True, is_closed=False).first()


def get_round(round_id: int) -> Round | None:
    return Round.objects.filter(pk=round_id).first()


def get_candidates(round_id: int, *, include_eliminated: bool = False) -> list[Candidate]:
    found = get_round(round_id)
    if found is None:
        return []
    return list_candidates(round=found, include_eliminated=include_eliminated)


def submit_ballot(
    round_id: int,
    candidate_ids: Iterable[object],
    device_signals: Mapping[str, Any],
    *,
    stage: int | None = None,
    client_metadata: Mapping[str, Any] | None = None,
) -> BallotResult:
    device_id = identify(round_id, device_signals)
    try:
        voting_round = _get_round(round_id)
        receipt = record_ballot(
            round=voting_round,
            device_id=device_id,
            candidate_ids=list(candidate_ids),
            stage=stage,
            client_metadata=client_metadata,
        )
    except RoundError as exc:
        logger.info(
            "submit_ballot: rejected round=%s device=%s reason=%s",
            round_id,
            short_device_id(device_id),
            exc.reason,
        )
        return BallotResult(ok=False, round_id=round_id, stage=stage, reason=exc.reason, message=exc.message)
    except DatabaseError:
        logger.exception("submit_ballot: store failure round=%s device=%s", round_id, short_device_id(device_id))
        raise

    return BallotResult(
        ok=True,
        round_id=round_id,
        stage=int(receipt.ballot.stage),
        vote_ids=list(receipt.vote_ids),
    )


def _run_admin_action(
    round_id: int,
    context: VotingContext,
    action: Callable[..., object],
) -> ActionResult:
    try:
        _require_admin(context)
        outcome = action(round=_get_round(round_id))
    except RoundError as exc:
        logger.info(
            "%s: rejected round=%s actor=%r reason=%s",
            getattr(action, "__name__", "action"),
            round_id,
            context.actor,
            exc.reason,
        )
        return ActionResult(ok=False, reason=exc.reason, message=exc.message)
    except DatabaseError:
        logger.exception(
            "%s: store failure round=%s actor=%r",
            getattr(action, "__name__", "action"),
            round_id,
            context.actor,
        )
        raise

    if isinstance(outcome, Round):
        return ActionResult(ok=True, round=outcome, stage=int(outcome.current_stage))
    if isinstance(outcome, int):
        return ActionResult(ok=True, round=Round.objects.get(pk=round_id), stage=outcome)
    return ActionResult(ok=True, round=Round.objects.get(pk=round_id))


def activate_round(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.activate_round)


def pause_round(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.pause_round)


def resume_round(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.resume_round)


def close_round(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.close_round)


def compute_results(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.compute_stage_results)


def reveal_results(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.reveal_results)


def hide_results(round_id: int, context: VotingContext) -> ActionResult:
    return _run_admin_action(round_id, context, rounds_lifecycle.hide_results)


def finalize_stage(round_id: int, context: VotingContext) -> FinalizeResult:
    try:
        _require_admin(context)
        outcome = rounds_lifecycle.finalize_stage(round=_get_round(round_id))
    except RoundError as exc:
        logger.info(
            "finalize_stage: rejected round=%s actor=%r reason=%s",
            round_id,
            context.actor,
            exc.reason,
        )
        return FinalizeResult(ok=False, reason=exc.reason, message=exc.message)
    except DatabaseError:
        logger.exception("finalize_stage: store failure round=%s actor=%r", round_id, context.actor)
        raise

    return FinalizeResult(
        ok=True,
        eliminated=sorted(outcome.decision.eliminate),
        selected=sorted(outcome.decision.select),
        next_ballot_limit=outcome.decision.next_ballot_limit,
        stage=outcome.stage,
    )


def get_results(round_id: int, stage: int, context: VotingContext = VOTER) -> list[dict[str, int]]:
    found = get_round(round_id)
    if found is None:
        return []
    return stage_results(round=found, stage=int(stage), visible_only=not context.is_admin)
