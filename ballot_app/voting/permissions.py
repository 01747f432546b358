from __future__ import annotations

from collections.abc import Callable
from functools import wraps

from django.http import JsonResponse

VOTING_MANAGE_ROUNDS = "voting.manage_rounds"


def can_manage_rounds(user: object) -> bool:
    if not getattr(user, "is_authenticated", False):
        return False
    if not hasattr(user, "has_perm"):
        return False
    return bool(user.has_perm(VOTING_MANAGE_ROUNDS))


def json_permission_required(perm: str) -> Callable:
    """Like `permission_required`, but answers JSON endpoints with a JSON 403."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapped(request, *args, **kwargs):
            user = getattr(request, "user", None)
            if not getattr(user, "is_authenticated", False) or not user.has_perm(perm):
                return JsonResponse(
                    {"ok": False, "reason": "not_authorized", "error": "Permission denied."},
                    status=403,
                )
            return view(request, *args, **kwargs)

        return wrapped

    return decorator
