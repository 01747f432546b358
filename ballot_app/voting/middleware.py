from __future__ import annotations

from voting.permissions import can_manage_rounds
from voting.rounds_api import Role, VotingContext


class VotingContextMiddleware:
    """Attach an explicit per-request `VotingContext` to the request.

    The caller's role is derived from the authenticated user on every request
    and lives only as long as the request does.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, "user", None)
        if can_manage_rounds(user):
            request.voting_context = VotingContext(role=Role.admin, actor=user.get_username())
        else:
            request.voting_context = VotingContext(role=Role.voter)
        return self.get_response(request)
