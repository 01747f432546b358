from __future__ import annotations

import json

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.test import TestCase
from django.urls import reverse

from voting.device_identity import voted_cookie_name
from voting.models import Vote
from voting.tests.round_builders import cast, make_round


class VoterEndpointTests(TestCase):
    def setUp(self) -> None:
        self.round, (self.x, self.y, self.z) = make_round()

    def _submit(self, candidate_ids, **extra):
        payload = {
            "candidate_ids": candidate_ids,
            "device": {"platform": "Linux", "screen_resolution": "1920x1080", "timezone": "UTC"},
            **extra,
        }
        return self.client.post(
            reverse("round-ballot-submit", args=[self.round.pk]),
            data=json.dumps(payload),
            content_type="application/json",
            HTTP_USER_AGENT="Browser/1.0",
        )

    def test_open_round_payload(self) -> None:
        resp = self.client.get(reverse("round-open"))

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["round"]["id"], self.round.pk)
        self.assertEqual(data["round"]["status"], "open")
        self.assertEqual(data["round"]["stage_ballot_limit"], 1)
        self.assertFalse(data["has_voted"])

    def test_no_open_round(self) -> None:
        self.round.is_open = False
        self.round.save(update_fields=["is_open"])

        resp = self.client.get(reverse("round-open"))
        self.assertEqual(resp.json(), {"ok": True, "round": None})

    def test_submit_sets_voted_cookie_and_rejects_repeat(self) -> None:
        resp = self._submit([self.x.pk], stage=1)

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["ok"])
        self.assertIn(voted_cookie_name(self.round.pk, 1), resp.cookies)
        self.assertTrue(self.client.get(reverse("round-open")).json()["has_voted"])

        again = self._submit([self.y.pk], stage=1)
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["reason"], "already_voted")

    def test_cookie_is_not_trusted_for_acceptance(self) -> None:
        # A stale cookie from another browser does not stop a fresh device.
        self.client.cookies[voted_cookie_name(self.round.pk, 1)] = "forged"
        self.assertEqual(self._submit([self.x.pk]).status_code, 200)

    def test_rejections_map_to_conflict(self) -> None:
        resp = self._submit([self.x.pk, self.y.pk])
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["reason"], "ballot_limit_exceeded")

    def test_malformed_payload_is_bad_request(self) -> None:
        url = reverse("round-ballot-submit", args=[self.round.pk])
        for body in ("not json", json.dumps([1, 2]), json.dumps({"candidate_ids": 5})):
            with self.subTest(body=body):
                resp = self.client.post(url, data=body, content_type="application/json")
                self.assertEqual(resp.status_code, 400)
                self.assertFalse(resp.json()["ok"])

    def test_non_integer_stage_is_bad_request(self) -> None:
        for stage in (1.9, "abc", 0, True):
            with self.subTest(stage=stage):
                resp = self._submit([self.x.pk], stage=stage)
                self.assertEqual(resp.status_code, 400)
                self.assertFalse(resp.json()["ok"])
        self.assertFalse(Vote.objects.filter(round=self.round).exists())

    def test_out_of_range_candidate_id_is_a_rejection(self) -> None:
        for candidate_id in (10**30, self.x.pk + 0.9):
            with self.subTest(candidate_id=candidate_id):
                resp = self._submit([candidate_id], stage=1)
                self.assertEqual(resp.status_code, 409)
                self.assertEqual(resp.json()["reason"], "invalid_candidate")
        self.assertFalse(Vote.objects.filter(round=self.round).exists())

    def test_candidates_listing(self) -> None:
        resp = self.client.get(reverse("round-candidates", args=[self.round.pk]))
        self.assertEqual([c["name"] for c in resp.json()["candidates"]], ["X", "Y", "Z"])

        missing = self.client.get(reverse("round-candidates", args=[987654]))
        self.assertEqual(missing.status_code, 404)

    def test_round_status_exposes_revision(self) -> None:
        resp = self.client.get(reverse("round-status", args=[self.round.pk]))
        self.assertEqual(resp.json()["round"]["revision"], self.round.revision)

    def test_voters_only_see_revealed_results(self) -> None:
        cast(self.round, "d1", self.x)
        resp = self.client.get(reverse("round-results", args=[self.round.pk, 1]))
        self.assertEqual(resp.json()["results"], [])

    def test_admin_endpoints_require_permission(self) -> None:
        for url in (
            reverse("round-admin-action", args=[self.round.pk, "close"]),
            reverse("round-finalize", args=[self.round.pk]),
        ):
            with self.subTest(url=url):
                resp = self.client.post(url)
                self.assertEqual(resp.status_code, 403)
                self.assertEqual(resp.json()["reason"], "not_authorized")

        self.assertEqual(self.client.get(reverse("round-participation", args=[self.round.pk])).status_code, 403)
        self.round.refresh_from_db()
        self.assertTrue(self.round.is_open)


class AdminEndpointTests(TestCase):
    def setUp(self) -> None:
        self.round, (self.x, self.y, self.z) = make_round()
        user = get_user_model().objects.create_user(username="organizer", password="pw")
        user.user_permissions.add(Permission.objects.get(codename="manage_rounds", content_type__app_label="voting"))
        self.client.force_login(user)

    def test_lifecycle_actions(self) -> None:
        pause = self.client.post(reverse("round-admin-action", args=[self.round.pk, "pause"]))
        self.assertEqual(pause.status_code, 200)
        self.assertEqual(pause.json()["round"]["status"], "paused")

        resume = self.client.post(reverse("round-admin-action", args=[self.round.pk, "resume"]))
        self.assertEqual(resume.json()["round"]["status"], "open")

        close = self.client.post(reverse("round-admin-action", args=[self.round.pk, "close"]))
        self.assertEqual(close.status_code, 200)

        again = self.client.post(reverse("round-admin-action", args=[self.round.pk, "close"]))
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["reason"], "invalid_transition")

    def test_unknown_action_and_round(self) -> None:
        self.assertEqual(
            self.client.post(reverse("round-admin-action", args=[self.round.pk, "explode"])).status_code,
            404,
        )
        missing = self.client.post(reverse("round-admin-action", args=[987654, "close"]))
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["reason"], "round_not_found")

    def test_finalize_and_reveal(self) -> None:
        cast(self.round, "d1", self.x)
        cast(self.round, "d2", self.x)
        cast(self.round, "d3", self.y)

        resp = self.client.post(reverse("round-finalize", args=[self.round.pk]))
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["eliminated"], sorted([self.y.pk, self.z.pk]))
        self.assertEqual(data["selected"], [self.x.pk])
        self.assertEqual(data["next_ballot_limit"], 1)

        # Admins see hidden rows.
        hidden = self.client.get(reverse("round-results", args=[self.round.pk, 1])).json()["results"]
        self.assertEqual(hidden[0], {"candidate_id": self.x.pk, "vote_count": 2})

        reveal = self.client.post(reverse("round-admin-action", args=[self.round.pk, "reveal-results"]))
        self.assertEqual(reveal.json()["stage"], 1)

        self.client.logout()
        public = self.client.get(reverse("round-results", args=[self.round.pk, 1])).json()["results"]
        self.assertEqual(len(public), 3)

    def test_participation(self) -> None:
        self.round.expected_voters = 8
        self.round.save(update_fields=["expected_voters"])
        cast(self.round, "d1", self.x)
        cast(self.round, "d2", self.y)
        cast(self.round, "d3", self.y)

        data = self.client.get(reverse("round-participation", args=[self.round.pk])).json()

        self.assertEqual(data["current_stage_ballots"], 3)
        self.assertEqual(data["expected_voters"], 8)
        # 3 / 8 = 37.5%, rounded half up.
        self.assertEqual(data["participation_percent"], 38)
        self.assertEqual(data["ballots_by_stage"], {"1": 3})
