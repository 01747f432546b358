from __future__ import annotations

import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone

from voting.models import AuditLogEntry, Ballot, Candidate, Round, RoundResult, Vote
from voting.rounds_elimination import (
    EliminationDecision,
    ballot_limit_for_remaining,
    decide_for_round,
    explain_decision,
)
from voting.rounds_errors import (
    InvalidTransitionError,
    RoundClosedError,
    RoundNotFoundError,
)
from voting.rounds_services import refresh_stage_results
from voting.signals import emit_round_changed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageOutcome:
    round: Round
    stage: int
    tally: dict[int, int]
    decision: EliminationDecision


def _lock_round(round: Round | int) -> Round:
    pk = round.pk if isinstance(round, Round) else int(round)
    locked = Round.objects.select_for_update().filter(pk=pk).first()
    if locked is None:
        raise RoundNotFoundError()
    return locked


def _ensure_not_closed(locked: Round, action: str) -> None:
    if locked.is_closed:
        raise RoundClosedError(f"Cannot {action} a closed round.")


def _save_transition(locked: Round, event_type: str, fields: list[str], payload: dict[str, object] | None = None) -> None:
    locked.revision += 1
    locked.save(update_fields=[*fields, "revision", "updated_at"])
    AuditLogEntry.objects.create(
        round=locked,
        event_type=event_type,
        payload=payload or {},
        is_public=True,
    )
    emit_round_changed(round=locked, event=event_type)


@transaction.atomic
def create_round(
    *,
    title: str,
    description: str = "",
    category: str = Round.Category.ece,
    year: int | None = None,
    expected_voters: int = 100,
    target_winner_count: int = 1,
) -> Round:
    title = str(title or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    if int(target_winner_count) < 1:
        raise ValidationError("At least one winner must be targeted.")

    created = Round.objects.create(
        title=title,
        description=str(description or "").strip(),
        category=category,
        year=year if year is not None else timezone.now().year,
        expected_voters=int(expected_voters),
        target_winner_count=int(target_winner_count),
        stage_ballot_limit=ballot_limit_for_remaining(int(target_winner_count)),
    )
    AuditLogEntry.objects.create(
        round=created,
        event_type="round_created",
        payload={"target_winner_count": created.target_winner_count},
        is_public=True,
    )
    logger.info("create_round: round=%s title=%r", created.pk, created.title)
    return created


_EDITABLE_ROUND_FIELDS = frozenset({"title", "description", "category", "year", "expected_voters"})


@transaction.atomic
def update_round(*, round: Round, target_winner_count: int | None = None, **fields: object) -> Round:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "edit")

    unknown = set(fields) - _EDITABLE_ROUND_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    changed: list[str] = []
    for name, value in fields.items():
        if name == "title":
            value = str(value or "").strip()
            if not value:
                raise ValidationError("Title is required.")
        setattr(locked, name, value)
        changed.append(name)

    if target_winner_count is not None and int(target_winner_count) != locked.target_winner_count:
        started = locked.is_open or locked.current_stage > 1 or Ballot.objects.filter(round=locked).exists()
        if started:
            raise InvalidTransitionError("The number of winners can only change before voting starts.")
        if int(target_winner_count) < max(1, locked.selected_count):
            raise ValidationError("At least one winner must be targeted.")
        locked.target_winner_count = int(target_winner_count)
        locked.stage_ballot_limit = ballot_limit_for_remaining(locked.remaining_winner_slots)
        changed.extend(["target_winner_count", "stage_ballot_limit"])

    if changed:
        _save_transition(locked, "round_updated", changed, {"fields": sorted(changed)})
    return locked


@transaction.atomic
def delete_round(*, round: Round) -> None:
    locked = _lock_round(round)
    if locked.is_open or locked.is_closed:
        raise InvalidTransitionError("Only draft rounds can be deleted.")
    if Ballot.objects.filter(round=locked).exists():
        raise InvalidTransitionError("Rounds with ballots cannot be deleted.")
    logger.info("delete_round: round=%s", locked.pk)
    locked.delete()


@transaction.atomic
def add_candidate(*, round: Round, name: str, **display: object) -> Candidate:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "add candidates to")

    name = str(name or "").strip()
    if not name:
        raise ValidationError("Name is required.")

    max_ordering = Candidate.objects.filter(round=locked).aggregate(m=Max("ordering"))["m"] or 0
    candidate = Candidate.objects.create(round=locked, name=name, ordering=int(max_ordering) + 1, **display)
    _save_transition(locked, "candidate_added", [], {"candidate_id": candidate.pk})
    return candidate


_EDITABLE_CANDIDATE_FIELDS = frozenset(
    {"name", "surname", "location", "group_name", "age", "description", "image_url", "ordering"}
)


@transaction.atomic
def update_candidate(*, candidate: Candidate, **fields: object) -> Candidate:
    """Edit a candidate's display fields; engine flags are never touched here."""

    locked = _lock_round(candidate.round_id)
    _ensure_not_closed(locked, "edit candidates of")

    unknown = set(fields) - _EDITABLE_CANDIDATE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    current = Candidate.objects.select_for_update().get(pk=candidate.pk)
    changed: list[str] = []
    for name, value in fields.items():
        if name == "name":
            value = str(value or "").strip()
            if not value:
                raise ValidationError("Name is required.")
        if getattr(current, name) != value:
            setattr(current, name, value)
            changed.append(name)

    if changed:
        current.save(update_fields=[*changed, "updated_at"])
        _save_transition(locked, "candidate_updated", [], {"candidate_id": current.pk, "fields": sorted(changed)})
    return current


@transaction.atomic
def remove_candidate(*, candidate: Candidate) -> bool:
    """Remove a candidate; returns True when the row was deleted.

    Candidates referenced by votes are only flagged as removed so the
    audit trail keeps pointing at them.
    """

    locked = _lock_round(candidate.round_id)
    _ensure_not_closed(locked, "remove candidates from")

    current = Candidate.objects.select_for_update().get(pk=candidate.pk)
    if current.is_selected:
        raise InvalidTransitionError("Selected candidates cannot be removed.")

    deleted = not Vote.objects.filter(candidate=current).exists()
    if deleted:
        current.delete()
    else:
        current.is_removed = True
        current.save(update_fields=["is_removed", "updated_at"])

    _save_transition(locked, "candidate_removed", [], {"candidate_id": candidate.pk, "deleted": deleted})
    return deleted


@transaction.atomic
def activate_round(*, round: Round) -> Round:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "activate")
    if locked.is_open:
        raise InvalidTransitionError("Round is already open.")

    previously_open = list(Round.objects.select_for_update().filter(is_open=True).exclude(pk=locked.pk))
    for other in previously_open:
        other.is_open = False
        other.is_paused = False
        _save_transition(other, "round_deactivated", ["is_open", "is_paused"], {"activated_round_id": locked.pk})

    locked.is_open = True
    locked.is_paused = False
    try:
        with transaction.atomic():
            _save_transition(
                locked,
                "round_activated",
                ["is_open", "is_paused"],
                {"deactivated_round_ids": [r.pk for r in previously_open]},
            )
    except IntegrityError as exc:
        # Another activation committed between our lock and write.
        raise InvalidTransitionError("Another round was activated concurrently.") from exc

    logger.info(
        "activate_round: round=%s deactivated=%s",
        locked.pk,
        [r.pk for r in previously_open],
    )
    return locked


@transaction.atomic
def pause_round(*, round: Round) -> Round:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "pause")
    if not locked.is_open:
        raise InvalidTransitionError("Only open rounds can be paused.")
    if locked.is_paused:
        raise InvalidTransitionError("Round is already paused.")

    locked.is_paused = True
    _save_transition(locked, "round_paused", ["is_paused"], {"stage": locked.current_stage})
    logger.info("pause_round: round=%s stage=%s", locked.pk, locked.current_stage)
    return locked


@transaction.atomic
def resume_round(*, round: Round) -> Round:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "resume")
    if not locked.is_open or not locked.is_paused:
        raise InvalidTransitionError("Only paused rounds can be resumed.")

    locked.is_paused = False
    _save_transition(locked, "round_resumed", ["is_paused"], {"stage": locked.current_stage})
    logger.info("resume_round: round=%s stage=%s", locked.pk, locked.current_stage)
    return locked


@transaction.atomic
def compute_stage_results(*, round: Round) -> dict[int, int]:
    """Tally the current stage into RoundResult rows without advancing it."""

    locked = _lock_round(round)
    _ensure_not_closed(locked, "compute results for")
    if not locked.is_open:
        raise InvalidTransitionError("Results can only be computed for an open round.")

    tally = refresh_stage_results(round=locked, stage=locked.current_stage)
    _save_transition(locked, "stage_results_computed", [], {"stage": locked.current_stage})
    logger.info("compute_stage_results: round=%s stage=%s", locked.pk, locked.current_stage)
    return tally


@transaction.atomic
def finalize_stage(*, round: Round) -> StageOutcome:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "finalize a stage of")
    if not locked.is_open:
        raise InvalidTransitionError("Only an open round can finalize a stage.")
    if locked.remaining_winner_slots == 0:
        raise InvalidTransitionError("All winners have already been selected.")

    stage = int(locked.current_stage)
    tally = refresh_stage_results(round=locked, stage=stage)

    contending_ids = set(
        Candidate.objects.filter(round=locked, is_eliminated=False, is_removed=False).values_list("id", flat=True)
    )
    decision = decide_for_round(
        round=locked,
        tally={cid: n for cid, n in tally.items() if cid in contending_ids},
    )

    Candidate.objects.filter(
        round=locked,
        pk__in=decision.eliminate,
        is_eliminated=False,
        is_selected=False,
    ).update(is_eliminated=True, eliminated_at_stage=stage, updated_at=timezone.now())
    newly_selected = Candidate.objects.filter(
        round=locked,
        pk__in=decision.select,
        is_selected=False,
        is_eliminated=False,
    ).update(is_selected=True, updated_at=timezone.now())

    locked.selected_count = min(locked.target_winner_count, locked.selected_count + newly_selected)
    locked.stage_ballot_limit = decision.next_ballot_limit
    locked.current_stage = stage + 1

    # Revealing the finalized stage is always a separate, explicit step.
    RoundResult.objects.filter(round=locked, stage__lte=stage).update(is_visible=False)

    names = {
        c.pk: c.full_name
        for c in Candidate.objects.filter(round=locked, pk__in=set(tally)).only("id", "name", "surname")
    }
    _save_transition(
        locked,
        "stage_finalized",
        ["selected_count", "stage_ballot_limit", "current_stage"],
        {
            "stage": stage,
            "tally": {str(cid): n for cid, n in sorted(tally.items())},
            "eliminated": sorted(decision.eliminate),
            "selected": sorted(decision.select),
            "next_ballot_limit": decision.next_ballot_limit,
            "summary_text": explain_decision(decision, stage=stage, candidate_name_by_id=names),
        },
    )
    logger.info(
        "finalize_stage: round=%s stage=%s eliminated=%s selected=%s next_limit=%s",
        locked.pk,
        stage,
        sorted(decision.eliminate),
        sorted(decision.select),
        decision.next_ballot_limit,
    )
    return StageOutcome(round=locked, stage=stage, tally=tally, decision=decision)


def _latest_tallied_stage(locked: Round) -> int:
    stage = RoundResult.objects.filter(round=locked).aggregate(s=Max("stage"))["s"]
    if stage is None:
        raise InvalidTransitionError("No results have been computed for this round yet.")
    return int(stage)


def _set_results_visibility(*, round: Round, visible: bool) -> int:
    locked = _lock_round(round)
    _ensure_not_closed(locked, "reveal results of" if visible else "hide results of")

    stage = _latest_tallied_stage(locked)
    updated = RoundResult.objects.filter(round=locked, stage=stage).update(is_visible=visible)
    event_type = "results_revealed" if visible else "results_hidden"
    _save_transition(locked, event_type, [], {"stage": stage})
    logger.info("%s: round=%s stage=%s rows=%s", event_type, locked.pk, stage, updated)
    return stage


@transaction.atomic
def reveal_results(*, round: Round) -> int:
    """Make the most recently tallied stage's results public; returns the stage."""

    return _set_results_visibility(round=round, visible=True)


@transaction.atomic
def hide_results(*, round: Round) -> int:
    return _set_results_visibility(round=round, visible=False)


@transaction.atomic
def close_round(*, round: Round) -> Round:
    locked = _lock_round(round)
    if locked.is_closed:
        raise InvalidTransitionError("Cannot close an already-closed round.")

    locked.is_closed = True
    locked.is_open = False
    locked.is_paused = False
    locked.closed_at = timezone.now()
    _save_transition(
        locked,
        "round_closed",
        ["is_closed", "is_open", "is_paused", "closed_at"],
        {"stage": locked.current_stage, "selected_count": locked.selected_count},
    )
    logger.info("close_round: round=%s stage=%s", locked.pk, locked.current_stage)
    return locked
