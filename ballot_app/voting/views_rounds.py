from __future__ import annotations

import json

from django.http import Http404, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from voting import rounds_api
from voting.device_identity import client_signals_from_request, has_voted_cookie, mark_voted
from voting.models import Candidate, Round
from voting.permissions import VOTING_MANAGE_ROUNDS, json_permission_required
from voting.rounds_api import VotingContext
from voting.rounds_errors import RejectionReason
from voting.rounds_services import parse_id, round_participation

_STATUS_BY_REASON: dict[str, int] = {
    RejectionReason.not_authorized: 403,
    RejectionReason.round_not_found: 404,
}


def _status_for(reason: str | None) -> int:
    if reason is None:
        return 200
    return _STATUS_BY_REASON.get(reason, 409)


def _context(request) -> VotingContext:
    return getattr(request, "voting_context", rounds_api.VOTER)


def _round_payload(voting_round: Round) -> dict[str, object]:
    return {
        "id": voting_round.pk,
        "title": voting_round.title,
        "description": voting_round.description,
        "category": voting_round.category,
        "year": voting_round.year,
        "status": str(voting_round.status),
        "is_open": voting_round.is_open,
        "is_paused": voting_round.is_paused,
        "is_closed": voting_round.is_closed,
        "current_stage": voting_round.current_stage,
        "stage_ballot_limit": voting_round.stage_ballot_limit,
        "target_winner_count": voting_round.target_winner_count,
        "selected_count": voting_round.selected_count,
        "revision": voting_round.revision,
    }


def _candidate_payload(candidate: Candidate) -> dict[str, object]:
    return {
        "id": candidate.pk,
        "name": candidate.name,
        "surname": candidate.surname,
        "location": candidate.location,
        "group_name": candidate.group_name,
        "age": candidate.age,
        "description": candidate.description,
        "image_url": candidate.image_url,
        "ordering": candidate.ordering,
        "is_eliminated": candidate.is_eliminated,
        "is_selected": candidate.is_selected,
        "eliminated_at_stage": candidate.eliminated_at_stage,
    }


def _get_round_or_404(round_id: int) -> Round:
    voting_round = rounds_api.get_round(round_id)
    if voting_round is None:
        raise Http404
    return voting_round


@require_GET
def round_open(request):
    voting_round = rounds_api.get_open_round()
    if voting_round is None:
        return JsonResponse({"ok": True, "round": None})

    return JsonResponse(
        {
            "ok": True,
            "round": _round_payload(voting_round),
            "has_voted": has_voted_cookie(
                request,
                round_id=voting_round.pk,
                stage=voting_round.current_stage,
            ),
        }
    )


@require_GET
def round_status(request, round_id: int):
    voting_round = _get_round_or_404(round_id)
    return JsonResponse({"ok": True, "round": _round_payload(voting_round)})


@require_GET
def round_candidates(request, round_id: int):
    _get_round_or_404(round_id)
    include_eliminated = str(request.GET.get("include_eliminated") or "").strip().lower() in {"1", "true", "yes"}
    candidates = rounds_api.get_candidates(round_id, include_eliminated=include_eliminated)
    return JsonResponse({"ok": True, "candidates": [_candidate_payload(c) for c in candidates]})


def _parse_ballot_payload(request) -> tuple[list[object], int | None, dict[str, object]]:
    raw = request.body.decode("utf-8") if request.body else "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("payload must be a JSON object")

    candidate_ids = data.get("candidate_ids")
    if not isinstance(candidate_ids, list):
        raise ValueError("candidate_ids must be a list")

    stage_raw = data.get("stage")
    stage = None
    if stage_raw is not None:
        stage = parse_id(stage_raw)
        if stage is None:
            raise ValueError("stage must be a positive integer")

    device = data.get("device") or {}
    if not isinstance(device, dict):
        raise ValueError("device must be an object")

    return candidate_ids, stage, device


@require_POST
def round_ballot_submit(request, round_id: int):
    try:
        candidate_ids, stage, device = _parse_ballot_payload(request)
    except (ValueError, TypeError, json.JSONDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    signals = client_signals_from_request(request, device)
    result = rounds_api.submit_ballot(
        round_id,
        candidate_ids,
        signals,
        stage=stage,
        client_metadata={
            "user_agent": signals.get("user_agent", ""),
            "ip_address": signals.get("ip_address", ""),
        },
    )
    if not result.ok:
        response = JsonResponse(
            {"ok": False, "reason": str(result.reason), "error": result.message},
            status=_status_for(result.reason),
        )
        if result.reason == RejectionReason.already_voted and stage is not None:
            mark_voted(response, round_id=round_id, stage=stage)
        return response

    response = JsonResponse(
        {"ok": True, "round_id": round_id, "stage": result.stage, "vote_ids": result.vote_ids}
    )
    mark_voted(response, round_id=round_id, stage=int(result.stage))
    return response


@require_GET
def round_results(request, round_id: int, stage: int):
    _get_round_or_404(round_id)
    rows = rounds_api.get_results(round_id, stage, _context(request))
    return JsonResponse({"ok": True, "round_id": round_id, "stage": stage, "results": rows})


@require_GET
@json_permission_required(VOTING_MANAGE_ROUNDS)
def round_participation_view(request, round_id: int):
    voting_round = _get_round_or_404(round_id)
    return JsonResponse({"ok": True, **round_participation(round=voting_round)})


_ADMIN_ACTIONS = {
    "activate": rounds_api.activate_round,
    "pause": rounds_api.pause_round,
    "resume": rounds_api.resume_round,
    "close": rounds_api.close_round,
    "compute-results": rounds_api.compute_results,
    "reveal-results": rounds_api.reveal_results,
    "hide-results": rounds_api.hide_results,
}


@require_POST
@json_permission_required(VOTING_MANAGE_ROUNDS)
def round_admin_action(request, round_id: int, action: str):
    handler = _ADMIN_ACTIONS.get(action)
    if handler is None:
        raise Http404

    result = handler(round_id, _context(request))
    if not result.ok:
        return JsonResponse(
            {"ok": False, "reason": str(result.reason), "error": result.message},
            status=_status_for(result.reason),
        )
    return JsonResponse({"ok": True, "stage": result.stage, "round": _round_payload(result.round)})


@require_POST
@json_permission_required(VOTING_MANAGE_ROUNDS)
def round_finalize_stage(request, round_id: int):
    result = rounds_api.finalize_stage(round_id, _context(request))
    if not result.ok:
        return JsonResponse(
            {"ok": False, "reason": str(result.reason), "error": result.message},
            status=_status_for(result.reason),
        )
    return JsonResponse(
        {
            "ok": True,
            "stage": result.stage,
            "eliminated": result.eliminated,
            "selected": result.selected,
            "next_ballot_limit": result.next_ballot_limit,
        }
    )
