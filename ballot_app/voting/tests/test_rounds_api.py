from __future__ import annotations

from django.test import TestCase

from voting import rounds_api
from voting.models import Vote
from voting.rounds_api import VOTER, VotingContext
from voting.rounds_errors import RejectionReason
from voting.tests.round_builders import make_round

ADMIN = VotingContext.for_admin("alice")


def _signals(n: int) -> dict[str, str]:
    return {
        "user_agent": f"Browser/{n}",
        "language": "es-ES",
        "platform": "Linux",
        "screen_resolution": "1920x1080",
        "timezone": "Europe/Madrid",
        "ip_address": "203.0.113.10",
    }


class SubmitBallotTests(TestCase):
    def setUp(self) -> None:
        self.round, (self.x, self.y, self.z) = make_round()

    def test_accepted_ballot(self) -> None:
        result = rounds_api.submit_ballot(self.round.pk, [self.x.pk], _signals(1))

        self.assertTrue(result.ok)
        self.assertEqual(result.stage, 1)
        self.assertEqual(len(result.vote_ids), 1)
        self.assertIsNone(result.reason)

    def test_same_device_twice_is_already_voted(self) -> None:
        self.assertTrue(rounds_api.submit_ballot(self.round.pk, [self.x.pk], _signals(1)).ok)

        again = rounds_api.submit_ballot(self.round.pk, [self.y.pk], _signals(1))

        self.assertFalse(again.ok)
        self.assertEqual(again.reason, RejectionReason.already_voted)
        self.assertEqual(Vote.objects.filter(round=self.round).count(), 1)

    def test_different_devices_each_vote(self) -> None:
        for n in range(3):
            self.assertTrue(rounds_api.submit_ballot(self.round.pk, [self.x.pk], _signals(n)).ok)
        self.assertEqual(Vote.objects.filter(round=self.round).count(), 3)

    def test_stale_stage_is_rejected(self) -> None:
        result = rounds_api.submit_ballot(self.round.pk, [self.x.pk], _signals(1), stage=2)
        self.assertEqual(result.reason, RejectionReason.stage_mismatch)

    def test_unknown_round(self) -> None:
        result = rounds_api.submit_ballot(987654, [self.x.pk], _signals(1))
        self.assertEqual(result.reason, RejectionReason.round_not_found)

    def test_duplicate_selection_persists_nothing(self) -> None:
        voting_round, (a, _b, _c) = make_round(target_winner_count=2, title="Two seats")

        result = rounds_api.submit_ballot(voting_round.pk, [a.pk, a.pk], _signals(1))

        self.assertFalse(result.ok)
        self.assertEqual(result.reason, RejectionReason.duplicate_selection)
        self.assertEqual(Vote.objects.filter(round=voting_round).count(), 0)


class ReadOperationTests(TestCase):
    def test_open_round_and_candidates(self) -> None:
        self.assertIsNone(rounds_api.get_open_round())

        voting_round, (x, y, z) = make_round()
        for n, choice in enumerate((x, x, y)):
            rounds_api.submit_ballot(voting_round.pk, [choice.pk], _signals(n))
        rounds_api.finalize_stage(voting_round.pk, ADMIN)

        self.assertEqual(rounds_api.get_open_round(), voting_round)
        self.assertEqual(rounds_api.get_candidates(voting_round.pk), [x])
        self.assertEqual(rounds_api.get_candidates(voting_round.pk, include_eliminated=True), [x, y, z])
        self.assertEqual(rounds_api.get_candidates(987654), [])

    def test_voters_only_see_revealed_results(self) -> None:
        voting_round, (x, _y, _z) = make_round()
        rounds_api.submit_ballot(voting_round.pk, [x.pk], _signals(1))
        self.assertTrue(rounds_api.compute_results(voting_round.pk, ADMIN).ok)

        self.assertEqual(rounds_api.get_results(voting_round.pk, 1, VOTER), [])
        self.assertEqual(len(rounds_api.get_results(voting_round.pk, 1, ADMIN)), 3)

        revealed = rounds_api.reveal_results(voting_round.pk, ADMIN)
        self.assertTrue(revealed.ok)
        self.assertEqual(revealed.stage, 1)
        self.assertEqual(rounds_api.get_results(voting_round.pk, 1)[0], {"candidate_id": x.pk, "vote_count": 1})


class AdminActionTests(TestCase):
    def test_voters_cannot_run_admin_actions(self) -> None:
        voting_round, _ = make_round()

        for action in (
            rounds_api.activate_round,
            rounds_api.pause_round,
            rounds_api.resume_round,
            rounds_api.close_round,
            rounds_api.compute_results,
            rounds_api.reveal_results,
            rounds_api.hide_results,
            rounds_api.finalize_stage,
        ):
            with self.subTest(action=action.__name__):
                result = action(voting_round.pk, VOTER)
                self.assertFalse(result.ok)
                self.assertEqual(result.reason, RejectionReason.not_authorized)

        voting_round.refresh_from_db()
        self.assertTrue(voting_round.is_open)

    def test_close_twice(self) -> None:
        voting_round, _ = make_round()

        first = rounds_api.close_round(voting_round.pk, ADMIN)
        second = rounds_api.close_round(voting_round.pk, ADMIN)

        self.assertTrue(first.ok)
        self.assertTrue(first.round.is_closed)
        self.assertFalse(second.ok)
        self.assertEqual(second.reason, RejectionReason.invalid_transition)

    def test_paused_round_rejects_ballots_until_resumed(self) -> None:
        voting_round, (x, _y, _z) = make_round()

        self.assertTrue(rounds_api.pause_round(voting_round.pk, ADMIN).ok)
        paused = rounds_api.submit_ballot(voting_round.pk, [x.pk], _signals(1))
        self.assertEqual(paused.reason, RejectionReason.round_paused)

        self.assertTrue(rounds_api.resume_round(voting_round.pk, ADMIN).ok)
        self.assertTrue(rounds_api.submit_ballot(voting_round.pk, [x.pk], _signals(1)).ok)

    def test_finalize_reports_decision(self) -> None:
        voting_round, (x, y, z) = make_round()
        for n, choice in enumerate((x, x, y)):
            rounds_api.submit_ballot(voting_round.pk, [choice.pk], _signals(n))

        result = rounds_api.finalize_stage(voting_round.pk, ADMIN)

        self.assertTrue(result.ok)
        self.assertEqual(result.stage, 1)
        self.assertEqual(result.eliminated, sorted([y.pk, z.pk]))
        self.assertEqual(result.selected, [x.pk])
        self.assertEqual(result.next_ballot_limit, 1)

        # The stage-1 ballot no longer matches the round.
        late = rounds_api.submit_ballot(voting_round.pk, [x.pk], _signals(9), stage=1)
        self.assertEqual(late.reason, RejectionReason.stage_mismatch)
        self.assertFalse(late.ok)
        self.assertEqual(Vote.objects.filter(round=voting_round).count(), 3)

    def test_unknown_round_action(self) -> None:
        result = rounds_api.activate_round(987654, ADMIN)
        self.assertEqual(result.reason, RejectionReason.round_not_found)

    def test_closed_round_rejects_ballots(self) -> None:
        voting_round, (x, _y, _z) = make_round()
        rounds_api.close_round(voting_round.pk, ADMIN)

        result = rounds_api.submit_ballot(voting_round.pk, [x.pk], _signals(1))
        self.assertEqual(result.reason, RejectionReason.round_closed)
