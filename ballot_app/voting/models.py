from __future__ import annotations

from typing import override

from django.db import models
from django.db.models import F, Q


class Round(models.Model):
    class Category(models.TextChoices):
        ece = "ECE", "ECE (Equipo Coordinador Europa)"
        ecl = "ECL", "ECL (Equipo Coordinador Local)"

    class Status(models.TextChoices):
        draft = "draft", "Draft"
        open = "open", "Open"
        paused = "paused", "Paused"
        closed = "closed", "Closed"

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=16, choices=Category.choices, default=Category.ece)
    year = models.PositiveIntegerField(blank=True, null=True)
    expected_voters = models.PositiveIntegerField(default=100)

    is_open = models.BooleanField(default=False)
    is_paused = models.BooleanField(default=False)
    is_closed = models.BooleanField(default=False)

    current_stage = models.PositiveIntegerField(default=1)
    stage_ballot_limit = models.PositiveIntegerField(default=1)
    target_winner_count = models.PositiveIntegerField(default=1)
    selected_count = models.PositiveIntegerField(default=0)

    # Bumped on every lifecycle mutation so polling clients can cheaply detect changes.
    revision = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    closed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["is_open"],
                condition=Q(is_open=True),
                name="uniq_round_single_open",
            ),
            models.CheckConstraint(
                condition=~(Q(is_closed=True) & Q(is_open=True)),
                name="chk_round_closed_not_open",
            ),
            models.CheckConstraint(
                condition=Q(selected_count__lte=F("target_winner_count")),
                name="chk_round_selected_within_target",
            ),
            models.CheckConstraint(
                condition=Q(current_stage__gte=1) & Q(stage_ballot_limit__gte=1) & Q(target_winner_count__gte=1),
                name="chk_round_positive_counters",
            ),
        ]
        indexes = [
            models.Index(fields=["is_open", "is_closed"], name="round_open_closed"),
        ]
        ordering = ("-created_at", "-id")
        permissions = [
            ("manage_rounds", "Can run round lifecycle actions"),
        ]

    def __str__(self) -> str:
        return f"{self.title}"

    @property
    def status(self) -> str:
        if self.is_closed:
            return self.Status.closed
        if self.is_open:
            return self.Status.paused if self.is_paused else self.Status.open
        return self.Status.draft

    @property
    def remaining_winner_slots(self) -> int:
        return max(0, int(self.target_winner_count) - int(self.selected_count))

    @property
    def accepts_ballots(self) -> bool:
        return self.is_open and not self.is_paused and not self.is_closed


class Candidate(models.Model):
    round = models.ForeignKey(Round, on_delete=models.CASCADE, related_name="candidates")

    name = models.CharField(max_length=255)
    surname = models.CharField(max_length=255, blank=True, default="")
    location = models.CharField(max_length=255, blank=True, default="")
    group_name = models.CharField(max_length=255, blank=True, default="")
    age = models.PositiveIntegerField(blank=True, null=True)
    description = models.TextField(blank=True, default="")
    image_url = models.URLField(blank=True, default="", max_length=2048)
    ordering = models.PositiveIntegerField(default=0)

    is_eliminated = models.BooleanField(default=False)
    is_selected = models.BooleanField(default=False)
    eliminated_at_stage = models.PositiveIntegerField(blank=True, null=True)
    # Soft removal for candidates that already have votes referencing them.
    is_removed = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=~(Q(is_selected=True) & Q(is_eliminated=True)),
                name="chk_candidate_selected_not_eliminated",
            ),
        ]
        indexes = [
            models.Index(fields=["round", "is_eliminated"], name="cand_round_elim"),
        ]
        ordering = ("ordering", "id")

    def __str__(self) -> str:
        return f"{self.full_name}"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.name, self.surname) if part)

    @override
    def save(self, *args, **kwargs) -> None:
        if not self._state.adding and not self.is_eliminated:
            if Candidate.objects.filter(pk=self.pk, is_eliminated=True).exists():
                raise ValueError("an eliminated candidate cannot be reinstated")
        super().save(*args, **kwargs)


class Ballot(models.Model):
    """One device's submission for a round stage.

    The unique constraint on (round, device_id, stage) is the serialization
    point for duplicate submissions; the individual choices live in `Vote`.
    """

    round = models.ForeignKey(Round, on_delete=models.PROTECT, related_name="ballots")
    stage = models.PositiveIntegerField()
    device_id = models.CharField(max_length=128)
    client_metadata = models.JSONField(blank=True, default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["round", "device_id", "stage"],
                name="uniq_ballot_round_device_stage",
            ),
        ]
        ordering = ("created_at", "id")

    def __str__(self) -> str:
        return f"{self.round_id}/{self.stage}/{self.device_id[:8]}"


class Vote(models.Model):
    ballot = models.ForeignKey(Ballot, on_delete=models.PROTECT, related_name="votes")
    round = models.ForeignKey(Round, on_delete=models.PROTECT, related_name="votes")
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, related_name="votes")
    stage = models.PositiveIntegerField()
    device_id = models.CharField(max_length=128)
    client_metadata = models.JSONField(blank=True, default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["ballot", "candidate"],
                name="uniq_vote_ballot_candidate",
            ),
        ]
        indexes = [
            models.Index(fields=["round", "stage", "candidate"], name="vote_round_stage_cand"),
        ]
        ordering = ("created_at", "id")

    def __str__(self) -> str:
        return f"{self.round_id}/{self.stage} → {self.candidate_id}"

    @override
    def save(self, *args, **kwargs) -> None:
        # Votes are an append-only audit trail.
        if not self._state.adding:
            raise ValueError("votes are immutable once recorded")
        super().save(*args, **kwargs)

    @override
    def delete(self, *args, **kwargs):
        raise ValueError("votes cannot be deleted")


class RoundResult(models.Model):
    round = models.ForeignKey(Round, on_delete=models.CASCADE, related_name="results")
    stage = models.PositiveIntegerField()
    candidate = models.ForeignKey(Candidate, on_delete=models.CASCADE, related_name="results")
    vote_count = models.PositiveIntegerField(default=0)
    is_visible = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["round", "stage", "candidate"],
                name="uniq_roundresult_round_stage_candidate",
            ),
        ]
        indexes = [
            models.Index(fields=["round", "stage"], name="rr_round_stage"),
        ]
        ordering = ("-vote_count", "candidate__ordering", "candidate_id")

    def __str__(self) -> str:
        return f"{self.round_id}/{self.stage}: {self.candidate_id}={self.vote_count}"


class AuditLogEntry(models.Model):
    round = models.ForeignKey(Round, on_delete=models.CASCADE, related_name="audit_log")
    event_type = models.CharField(max_length=64)
    payload = models.JSONField(blank=True, default=dict)
    is_public = models.BooleanField(default=False)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["round", "timestamp"], name="audit_round_at"),
        ]
        ordering = ("timestamp", "id")

    def __str__(self) -> str:
        return f"{self.round_id}: {self.event_type}"
