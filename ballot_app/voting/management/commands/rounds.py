from __future__ import annotations

from typing import override

from django.core.management.base import BaseCommand, CommandError

from voting import rounds_lifecycle
from voting.models import Round
from voting.rounds_errors import RoundError
from voting.rounds_services import round_participation

_ACTIONS = {
    "activate": rounds_lifecycle.activate_round,
    "pause": rounds_lifecycle.pause_round,
    "resume": rounds_lifecycle.resume_round,
    "close": rounds_lifecycle.close_round,
    "compute-results": rounds_lifecycle.compute_stage_results,
    "finalize": rounds_lifecycle.finalize_stage,
    "reveal-results": rounds_lifecycle.reveal_results,
    "hide-results": rounds_lifecycle.hide_results,
}


class Command(BaseCommand):
    help = "Run a lifecycle action on a voting round, or show its status."

    def add_arguments(self, parser) -> None:
        parser.add_argument("action", choices=[*sorted(_ACTIONS), "status"])
        parser.add_argument("round_id", type=int)

    @override
    def handle(self, *args, **options) -> None:
        action: str = options["action"]
        round_id: int = options["round_id"]

        voting_round = Round.objects.filter(pk=round_id).first()
        if voting_round is None:
            raise CommandError(f"Round {round_id} does not exist.")

        if action == "status":
            stats = round_participation(round=voting_round)
            self.stdout.write(
                f"Round {voting_round.pk} ({voting_round.title}): {stats['status']}, "
                f"stage {stats['current_stage']}, "
                f"{stats['current_stage_ballots']} ballot(s) this stage, "
                f"{stats['selected_count']}/{stats['target_winner_count']} selected."
            )
            return

        try:
            outcome = _ACTIONS[action](round=voting_round)
        except RoundError as exc:
            raise CommandError(f"Failed to {action} round {round_id}: {exc.message}") from exc

        if isinstance(outcome, rounds_lifecycle.StageOutcome):
            self.stdout.write(
                f"Finalized stage {outcome.stage} of round {round_id}: "
                f"eliminated {sorted(outcome.decision.eliminate)}, "
                f"selected {sorted(outcome.decision.select)}, "
                f"next ballot limit {outcome.decision.next_ballot_limit}."
            )
            return

        self.stdout.write(f"Round {round_id}: {action} done.")
