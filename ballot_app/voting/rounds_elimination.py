from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from voting.models import Round


@dataclass(frozen=True, slots=True)
class EliminationDecision:
    eliminate: frozenset[int]
    select: frozenset[int]
    next_ballot_limit: int
    max_votes: int
    majority_cut_applied: bool


def ballot_limit_for_remaining(remaining: int) -> int:
    """Ballot size for the next stage given the number of open winner slots.

    The ballot shrinks as the field narrows so voters cannot spread
    selections over more slots than remain contestable.
    """

    if remaining <= 1:
        return 1
    if remaining <= 2:
        return 2
    return 3


def decide(
    *,
    target_winner_count: int,
    selected_count: int,
    tally: Mapping[int, int],
    selected_ids: Iterable[int] = (),
) -> EliminationDecision:
    """Decide eliminations and selections for one finished stage.

    `tally` maps every candidate still in contention to its vote count for the
    stage. Two cuts are applied, each exactly once:

    1. every candidate with zero votes is eliminated;
    2. if more than `target_winner_count` candidates survive the first cut,
       candidates holding at most half of the stage's highest count are
       eliminated as well. The leader can never fall under this cut.

    A stage in which nobody voted changes nothing. Already-selected
    candidates are never eliminated. When the survivors that are not yet
    selected fit into the open winner slots, all of them are selected.
    """

    counts = {int(cid): int(n) for cid, n in tally.items()}
    already_selected = frozenset(int(cid) for cid in selected_ids)
    max_votes = max(counts.values(), default=0)

    eliminate: set[int] = set()
    majority_cut_applied = False

    if max_votes > 0:
        eliminate = {cid for cid, n in counts.items() if n == 0 and cid not in already_selected}

        survivors = [cid for cid in counts if cid not in eliminate]
        if len(survivors) > target_winner_count:
            majority_cut_applied = True
            # Integer form of `n <= max_votes / 2`; a count of exactly half is cut.
            eliminate |= {
                cid
                for cid in survivors
                if 2 * counts[cid] <= max_votes and cid not in already_selected
            }

    open_slots = max(0, target_winner_count - selected_count)
    contenders = [cid for cid in counts if cid not in eliminate and cid not in already_selected]

    select: frozenset[int] = frozenset()
    if max_votes > 0 and contenders and len(contenders) <= open_slots:
        select = frozenset(contenders)

    remaining = max(0, target_winner_count - (selected_count + len(select)))

    return EliminationDecision(
        eliminate=frozenset(eliminate),
        select=select,
        next_ballot_limit=ballot_limit_for_remaining(remaining),
        max_votes=max_votes,
        majority_cut_applied=majority_cut_applied,
    )


def decide_for_round(*, round: Round, tally: Mapping[int, int]) -> EliminationDecision:
    selected_ids = round.candidates.filter(is_selected=True).values_list("id", flat=True)
    return decide(
        target_winner_count=int(round.target_winner_count),
        selected_count=int(round.selected_count),
        tally=tally,
        selected_ids=list(selected_ids),
    )


def _format_list(items: Iterable[str]) -> str:
    items_list = list(items)
    if not items_list:
        return "none"
    if len(items_list) == 1:
        return items_list[0]
    return ", ".join(items_list[:-1]) + f" and {items_list[-1]}"


def explain_decision(
    decision: EliminationDecision,
    *,
    stage: int,
    candidate_name_by_id: Mapping[int, str],
) -> str:
    def names(ids: Iterable[int]) -> str:
        return _format_list(candidate_name_by_id.get(cid, f"#{cid}") for cid in sorted(ids))

    parts = [f"Stage {stage}: highest count was {decision.max_votes}."]
    parts.append(f"Eliminated: {names(decision.eliminate)}.")
    if decision.majority_cut_applied:
        parts.append("Candidates at or below half of the highest count were cut.")
    if decision.select:
        parts.append(f"Selected: {names(decision.select)}.")
    parts.append(f"Next ballot limit: {decision.next_ballot_limit}.")
    return " ".join(parts)
