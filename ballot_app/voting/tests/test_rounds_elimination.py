import pytest

from voting.rounds_elimination import ballot_limit_for_remaining, decide, explain_decision


@pytest.mark.parametrize(
    ("remaining", "expected"),
    [(0, 1), (1, 1), (2, 2), (3, 3), (4, 3), (10, 3)],
)
def test_ballot_limit_schedule(remaining: int, expected: int):
    assert ballot_limit_for_remaining(remaining) == expected


def test_zero_votes_then_half_of_max_cut():
    # X=1, Y=2, Z=3
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 2, 2: 1, 3: 0})

    assert decision.eliminate == {2, 3}
    assert decision.select == {1}
    assert decision.next_ballot_limit == 1
    assert decision.max_votes == 2
    assert decision.majority_cut_applied is True


def test_half_of_max_cut_skipped_when_survivors_fit_target():
    decision = decide(target_winner_count=2, selected_count=0, tally={1: 5, 2: 1, 3: 0})

    assert decision.eliminate == {3}
    assert decision.select == {1, 2}
    assert decision.majority_cut_applied is False


def test_count_exactly_half_of_max_is_cut():
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 4, 2: 2, 3: 2})
    assert decision.eliminate == {2, 3}


def test_count_just_above_half_of_max_survives():
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 5, 2: 3, 3: 3})

    assert decision.eliminate == set()
    assert decision.select == frozenset()
    assert decision.next_ballot_limit == 1


def test_leaders_tied_at_max_are_never_cut():
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 3, 2: 3, 3: 1})

    assert decision.eliminate == {3}
    assert decision.select == frozenset()


def test_stage_without_votes_changes_nothing():
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 0, 2: 0})

    assert decision.eliminate == frozenset()
    assert decision.select == frozenset()
    assert decision.max_votes == 0
    assert decision.next_ballot_limit == 1


def test_selected_candidates_are_never_eliminated():
    decision = decide(
        target_winner_count=3,
        selected_count=1,
        tally={1: 0, 2: 6, 3: 5, 4: 5, 5: 1},
        selected_ids=[1],
    )

    assert 1 not in decision.eliminate
    assert 1 not in decision.select
    assert decision.eliminate == {5}
    assert decision.select == frozenset()
    assert decision.next_ballot_limit == 2


def test_selection_fills_open_slots_and_shrinks_the_limit():
    decision = decide(target_winner_count=3, selected_count=0, tally={1: 3, 2: 2, 3: 1, 4: 1, 5: 0})

    # 5 is cut for zero votes, 3 and 4 for holding at most half of 3.
    assert decision.eliminate == {3, 4, 5}
    assert decision.select == {1, 2}
    assert decision.next_ballot_limit == 1


def test_explain_decision_names_candidates():
    decision = decide(target_winner_count=1, selected_count=0, tally={1: 2, 2: 1, 3: 0})
    text = explain_decision(decision, stage=1, candidate_name_by_id={1: "Ana", 2: "Bea", 3: "Cris"})

    assert "Stage 1" in text
    assert "Eliminated: Bea and Cris." in text
    assert "Selected: Ana." in text
    assert "Next ballot limit: 1." in text
