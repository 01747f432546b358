from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Round",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "category",
                    models.CharField(
                        choices=[("ECE", "ECE (Equipo Coordinador Europa)"), ("ECL", "ECL (Equipo Coordinador Local)")],
                        default="ECE",
                        max_length=16,
                    ),
                ),
                ("year", models.PositiveIntegerField(blank=True, null=True)),
                ("expected_voters", models.PositiveIntegerField(default=100)),
                ("is_open", models.BooleanField(default=False)),
                ("is_paused", models.BooleanField(default=False)),
                ("is_closed", models.BooleanField(default=False)),
                ("current_stage", models.PositiveIntegerField(default=1)),
                ("stage_ballot_limit", models.PositiveIntegerField(default=1)),
                ("target_winner_count", models.PositiveIntegerField(default=1)),
                ("selected_count", models.PositiveIntegerField(default=0)),
                ("revision", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ("-created_at", "-id"),
                "permissions": [("manage_rounds", "Can run round lifecycle actions")],
                "indexes": [models.Index(fields=["is_open", "is_closed"], name="round_open_closed")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_open", True)),
                        fields=("is_open",),
                        name="uniq_round_single_open",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(models.Q(("is_closed", True), ("is_open", True)), _negated=True),
                        name="chk_round_closed_not_open",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("selected_count__lte", models.F("target_winner_count"))),
                        name="chk_round_selected_within_target",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("current_stage__gte", 1),
                            ("stage_ballot_limit__gte", 1),
                            ("target_winner_count__gte", 1),
                        ),
                        name="chk_round_positive_counters",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("surname", models.CharField(blank=True, default="", max_length=255)),
                ("location", models.CharField(blank=True, default="", max_length=255)),
                ("group_name", models.CharField(blank=True, default="", max_length=255)),
                ("age", models.PositiveIntegerField(blank=True, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("image_url", models.URLField(blank=True, default="", max_length=2048)),
                ("ordering", models.PositiveIntegerField(default=0)),
                ("is_eliminated", models.BooleanField(default=False)),
                ("is_selected", models.BooleanField(default=False)),
                ("eliminated_at_stage", models.PositiveIntegerField(blank=True, null=True)),
                ("is_removed", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "round",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="candidates",
                        to="voting.round",
                    ),
                ),
            ],
            options={
                "ordering": ("ordering", "id"),
                "indexes": [models.Index(fields=["round", "is_eliminated"], name="cand_round_elim")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(models.Q(("is_selected", True), ("is_eliminated", True)), _negated=True),
                        name="chk_candidate_selected_not_eliminated",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Ballot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stage", models.PositiveIntegerField()),
                ("device_id", models.CharField(max_length=128)),
                ("client_metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "round",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ballots",
                        to="voting.round",
                    ),
                ),
            ],
            options={
                "ordering": ("created_at", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("round", "device_id", "stage"),
                        name="uniq_ballot_round_device_stage",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Vote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stage", models.PositiveIntegerField()),
                ("device_id", models.CharField(max_length=128)),
                ("client_metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "ballot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="voting.ballot",
                    ),
                ),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="voting.candidate",
                    ),
                ),
                (
                    "round",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="voting.round",
                    ),
                ),
            ],
            options={
                "ordering": ("created_at", "id"),
                "indexes": [models.Index(fields=["round", "stage", "candidate"], name="vote_round_stage_cand")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("ballot", "candidate"),
                        name="uniq_vote_ballot_candidate",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RoundResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stage", models.PositiveIntegerField()),
                ("vote_count", models.PositiveIntegerField(default=0)),
                ("is_visible", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="voting.candidate",
                    ),
                ),
                (
                    "round",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="voting.round",
                    ),
                ),
            ],
            options={
                "ordering": ("-vote_count", "candidate__ordering", "candidate_id"),
                "indexes": [models.Index(fields=["round", "stage"], name="rr_round_stage")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("round", "stage", "candidate"),
                        name="uniq_roundresult_round_stage_candidate",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_type", models.CharField(max_length=64)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("is_public", models.BooleanField(default=False)),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                (
                    "round",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_log",
                        to="voting.round",
                    ),
                ),
            ],
            options={
                "ordering": ("timestamp", "id"),
                "indexes": [models.Index(fields=["round", "timestamp"], name="audit_round_at")],
            },
        ),
    ]
