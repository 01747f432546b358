from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.utils.crypto import salted_hmac

_UNKNOWN = "unknown"


def _signal_value(signals: Mapping[str, Any], key: str) -> str:
    value = signals.get(key)
    if isinstance(value, (list, tuple)):
        value = "x".join(str(v) for v in value)
    text = str(value or "").strip()
    return text or _UNKNOWN


def identify(round_id: int | str, client_signals: Mapping[str, Any]) -> str:
    """Derive the pseudonymous device identifier for a round.

    The identifier is a keyed HMAC over the configured signal fields and the
    round id, so it is stable for the same browser and round but unrelated
    across rounds. It is a best-effort pseudonym: duplicate ballots are
    prevented by the ballot uniqueness constraint, not by this value.
    """

    fields: list[str] = list(settings.VOTING_DEVICE_SIGNAL_FIELDS)
    parts = [_signal_value(client_signals, key) for key in fields]
    parts.append(str(round_id))
    fingerprint = "|".join(parts)
    return salted_hmac(settings.VOTING_DEVICE_ID_SALT, fingerprint, algorithm="sha256").hexdigest()


def _client_ip(request: HttpRequest) -> str:
    if settings.VOTING_TRUST_X_FORWARDED_FOR:
        forwarded = str(request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
        if forwarded:
            return forwarded.split(",")[0].strip()
    return str(request.META.get("REMOTE_ADDR") or "").strip()


def client_signals_from_request(request: HttpRequest, payload_signals: Mapping[str, Any] | None = None) -> dict[str, str]:
    """Merge browser-reported signals with what the server observes.

    Server-observed values win for the user agent and the client address,
    since those are what the request actually carried.
    """

    signals: dict[str, str] = {}
    for key, value in (payload_signals or {}).items():
        if isinstance(key, str) and value is not None:
            signals[key] = str(value)

    user_agent = str(request.META.get("HTTP_USER_AGENT") or "").strip()
    if user_agent:
        signals["user_agent"] = user_agent
    if not signals.get("language"):
        accept_language = str(request.META.get("HTTP_ACCEPT_LANGUAGE") or "").strip()
        if accept_language:
            signals["language"] = accept_language.split(",")[0].strip()
    ip_address = _client_ip(request)
    if ip_address:
        signals["ip_address"] = ip_address
    return signals


def short_device_id(device_id: str) -> str:
    return f"{device_id[:8]}…" if device_id else ""


# The "already voted" cookie only lets the ballot page skip rendering the form.
# It is never consulted when a ballot is recorded.


def voted_cookie_name(round_id: int, stage: int) -> str:
    return f"voted_{round_id}_{stage}"


def mark_voted(response: HttpResponse, *, round_id: int, stage: int) -> None:
    response.set_signed_cookie(
        voted_cookie_name(round_id, stage),
        "1",
        salt=settings.VOTING_DEVICE_ID_SALT,
        max_age=settings.VOTING_VOTED_COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        samesite="Lax",
    )


def has_voted_cookie(request: HttpRequest, *, round_id: int, stage: int) -> bool:
    # A tampered or expired cookie reads as the default.
    value = request.get_signed_cookie(
        voted_cookie_name(round_id, stage),
        default=None,
        salt=settings.VOTING_DEVICE_ID_SALT,
        max_age=settings.VOTING_VOTED_COOKIE_MAX_AGE_SECONDS,
    )
    return value == "1"
