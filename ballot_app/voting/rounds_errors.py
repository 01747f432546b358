from __future__ import annotations

from django.db import models


class RejectionReason(models.TextChoices):
    no_open_round = "no_open_round", "There is no open round."
    round_not_found = "round_not_found", "Round not found."
    round_closed = "round_closed", "The round is closed."
    round_paused = "round_paused", "Voting is paused for this round."
    stage_mismatch = "stage_mismatch", "This ballot is for a stage that is no longer current."
    ballot_limit_exceeded = "ballot_limit_exceeded", "The ballot has too many or too few selections."
    invalid_candidate = "invalid_candidate", "The ballot names an unknown or eliminated candidate."
    duplicate_selection = "duplicate_selection", "The same candidate was selected more than once."
    already_voted = "already_voted", "This device has already voted in this stage."
    invalid_transition = "invalid_transition", "The round cannot perform this action in its current state."
    not_authorized = "not_authorized", "Only administrators can perform this action."


class RoundError(Exception):
    reason: RejectionReason = RejectionReason.invalid_transition

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason.label)

    @property
    def message(self) -> str:
        return str(self)


class NoOpenRoundError(RoundError):
    reason = RejectionReason.no_open_round


class RoundNotFoundError(RoundError):
    reason = RejectionReason.round_not_found


class RoundClosedError(RoundError):
    reason = RejectionReason.round_closed


class RoundPausedError(RoundError):
    reason = RejectionReason.round_paused


class StageMismatchError(RoundError):
    reason = RejectionReason.stage_mismatch


class BallotLimitExceededError(RoundError):
    reason = RejectionReason.ballot_limit_exceeded


class InvalidCandidateError(RoundError):
    reason = RejectionReason.invalid_candidate


class DuplicateSelectionError(RoundError):
    reason = RejectionReason.duplicate_selection


class AlreadyVotedError(RoundError):
    reason = RejectionReason.already_voted


class InvalidTransitionError(RoundError):
    reason = RejectionReason.invalid_transition


class NotAuthorizedError(RoundError):
    reason = RejectionReason.not_authorized
