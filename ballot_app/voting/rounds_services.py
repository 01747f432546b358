from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from voting.device_identity import short_device_id
from voting.models import AuditLogEntry, Ballot, Candidate, Round, RoundResult, Vote
from voting.rounds_errors import (
    AlreadyVotedError,
    BallotLimitExceededError,
    DuplicateSelectionError,
    InvalidCandidateError,
    NoOpenRoundError,
    RoundClosedError,
    RoundError,
    RoundPausedError,
    StageMismatchError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BallotReceipt:
    ballot: Ballot
    vote_ids: list[int]


# Upper bound of a BigAutoField primary key.
MAX_ID = 2**63 - 1


def parse_id(raw: object) -> int | None:
    """Strict positive-id parser: ints (not bools) or strings of digits, else None."""

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        return None
    if not 1 <= value <= MAX_ID:
        return None
    return value


def _normalize_candidate_ids(candidate_ids: Iterable[object]) -> list[int]:
    normalized: list[int] = []
    for raw in candidate_ids:
        value = parse_id(raw)
        if value is None:
            raise InvalidCandidateError(f"invalid candidate id: {raw!r}")
        normalized.append(value)
    return normalized


def validate_ballot(
    *,
    round: Round | None,
    stage: int,
    device_id: str,
    candidate_ids: Iterable[object],
) -> list[Candidate]:
    """Check a proposed ballot against the round's current rules.

    Returns the chosen candidates. Raises the `RoundError` subclass for the
    first failing check. The already-voted check is advisory here; callers
    that persist must go through `record_ballot`, which re-checks under lock.
    """

    if not str(device_id or "").strip():
        raise ValueError("device_id is required")

    if round is None:
        raise NoOpenRoundError()
    if round.is_closed:
        raise RoundClosedError()
    if not round.is_open:
        raise NoOpenRoundError("This round is not open for voting.")
    if round.is_paused:
        raise RoundPausedError()

    if int(stage) != int(round.current_stage):
        raise StageMismatchError(
            f"Ballot is for stage {stage} but the round is at stage {round.current_stage}."
        )

    ids = list(candidate_ids)
    limit = int(round.stage_ballot_limit)
    if not 1 <= len(ids) <= limit:
        raise BallotLimitExceededError(f"Select between 1 and {limit} candidate(s).")

    normalized = _normalize_candidate_ids(ids)
    wanted = set(normalized)
    candidates = list(
        Candidate.objects.filter(
            round=round,
            pk__in=wanted,
            is_eliminated=False,
            is_removed=False,
        )
    )
    found = {c.pk for c in candidates}
    if found != wanted:
        raise InvalidCandidateError()

    if len(wanted) != len(normalized):
        raise DuplicateSelectionError()

    if Ballot.objects.filter(round=round, device_id=device_id, stage=stage).exists():
        raise AlreadyVotedError()

    by_id = {c.pk: c for c in candidates}
    return [by_id[cid] for cid in normalized]


def check_ballot(
    *,
    round: Round | None,
    stage: int,
    device_id: str,
    candidate_ids: Iterable[object],
) -> RoundError | None:
    """Non-raising form of `validate_ballot`: the rejection, or None when valid."""

    try:
        validate_ballot(round=round, stage=stage, device_id=device_id, candidate_ids=candidate_ids)
    except RoundError as exc:
        return exc
    return None


@transaction.atomic
def record_ballot(
    *,
    round: Round,
    device_id: str,
    candidate_ids: Iterable[object],
    stage: int | None = None,
    client_metadata: Mapping[str, Any] | None = None,
) -> BallotReceipt:
    # Lock the round row: finalize_stage takes the same lock, so a ballot can
    # never land in a stage that is being tallied or has been finalized.
    locked = Round.objects.select_for_update().filter(pk=round.pk).first()
    if locked is None:
        raise NoOpenRoundError("Round not found.")

    target_stage = int(locked.current_stage if stage is None else stage)
    candidates = validate_ballot(
        round=locked,
        stage=target_stage,
        device_id=device_id,
        candidate_ids=candidate_ids,
    )

    metadata = dict(client_metadata or {})
    try:
        with transaction.atomic():
            ballot = Ballot.objects.create(
                round=locked,
                stage=target_stage,
                device_id=device_id,
                client_metadata=metadata,
            )
    except IntegrityError as exc:
        # A concurrent submission for the same (round, device, stage) won the race.
        logger.info(
            "record_ballot: duplicate rejected by constraint round=%s stage=%s device=%s",
            locked.pk,
            target_stage,
            short_device_id(device_id),
        )
        raise AlreadyVotedError() from exc

    vote_ids: list[int] = []
    for candidate in candidates:
        vote = Vote.objects.create(
            ballot=ballot,
            round=locked,
            candidate=candidate,
            stage=target_stage,
            device_id=device_id,
            client_metadata=metadata,
        )
        vote_ids.append(int(vote.pk))

    AuditLogEntry.objects.create(
        round=locked,
        event_type="ballot_submitted",
        payload={"stage": target_stage, "selections": len(vote_ids)},
        is_public=False,
    )

    logger.debug(
        "record_ballot: accepted round=%s stage=%s device=%s selections=%s",
        locked.pk,
        target_stage,
        short_device_id(device_id),
        len(vote_ids),
    )
    return BallotReceipt(ballot=ballot, vote_ids=vote_ids)


def candidates_in_contention(*, round: Round, stage: int):
    """Candidates that could receive votes in `stage`."""

    return Candidate.objects.filter(round=round, is_removed=False).filter(
        Q(is_eliminated=False) | Q(eliminated_at_stage__gte=stage)
    )


def tally_stage(*, round: Round, stage: int) -> dict[int, int]:
    """Count the Vote rows of (round, stage) per candidate.

    Every candidate in contention appears, with zero when nobody chose it.
    """

    counts: dict[int, int] = {
        int(cid): 0 for cid in candidates_in_contention(round=round, stage=stage).values_list("id", flat=True)
    }
    rows = (
        Vote.objects.filter(round=round, stage=stage)
        .values("candidate_id")
        .annotate(votes=Count("id"))
        .order_by("candidate_id")
    )
    for row in rows:
        counts[int(row["candidate_id"])] = int(row["votes"])
    return counts


def refresh_stage_results(*, round: Round, stage: int) -> dict[int, int]:
    """Recompute the cached RoundResult rows for a stage.

    Visibility of existing rows is left as it is; new rows start hidden.
    """

    tally = tally_stage(round=round, stage=stage)
    for candidate_id, vote_count in tally.items():
        RoundResult.objects.update_or_create(
            round=round,
            stage=stage,
            candidate_id=candidate_id,
            defaults={"vote_count": vote_count},
        )
    return tally


def list_candidates(*, round: Round, include_eliminated: bool = False) -> list[Candidate]:
    qs = Candidate.objects.filter(round=round, is_removed=False)
    if not include_eliminated:
        qs = qs.filter(is_eliminated=False)
    return list(qs.order_by("ordering", "id"))


def stage_results(*, round: Round, stage: int, visible_only: bool) -> list[dict[str, int]]:
    qs = RoundResult.objects.filter(round=round, stage=stage)
    if visible_only:
        qs = qs.filter(is_visible=True)
    return [
        {"candidate_id": int(row["candidate_id"]), "vote_count": int(row["vote_count"])}
        for row in qs.order_by("-vote_count", "candidate__ordering", "candidate_id").values(
            "candidate_id", "vote_count"
        )
    ]


def round_participation(*, round: Round) -> dict[str, object]:
    """Turnout figures for the admin monitoring view."""

    ballots_by_stage = {
        int(row["stage"]): int(row["ballots"])
        for row in Ballot.objects.filter(round=round).values("stage").annotate(ballots=Count("id")).order_by("stage")
    }
    current_ballots = ballots_by_stage.get(int(round.current_stage), 0)
    expected = int(round.expected_voters or 0)

    participation_percent: int | None = None
    if expected > 0:
        participation_percent = _rounded_percent(current_ballots, expected)

    return {
        "round_id": round.pk,
        "status": str(round.status),
        "current_stage": int(round.current_stage),
        "expected_voters": expected,
        "current_stage_ballots": current_ballots,
        "ballots_by_stage": ballots_by_stage,
        "participation_percent": participation_percent,
        "selected_count": int(round.selected_count),
        "target_winner_count": int(round.target_winner_count),
    }


def _rounded_percent(part: int, whole: int) -> int:
    # Half-up rounding with integer arithmetic.
    return (200 * part + whole) // (2 * whole)
