from __future__ import annotations

from django.db import transaction
from django.dispatch import Signal

from voting.models import Round

# Sent after commit with `round_id`, `event` and `revision` keyword arguments.
round_changed = Signal()


def emit_round_changed(*, round: Round, event: str) -> None:
    round_id = int(round.pk)
    revision = int(round.revision)
    transaction.on_commit(
        lambda: round_changed.send(sender=Round, round_id=round_id, event=event, revision=revision)
    )
