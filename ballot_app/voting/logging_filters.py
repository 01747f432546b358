import logging
import re
from typing import Any

_DEVICE_ID_RE = re.compile(r"\b[0-9a-f]{64}\b")


class SkipHealthzFilter(logging.Filter):
    """Drop log records produced by health probe requests."""

    def __init__(self, prefixes: tuple[str, ...] = ("/healthz", "/readyz")) -> None:
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        path = _request_path(getattr(record, "request", None))
        if path is None and isinstance(record.args, tuple):
            path = next((p for p in map(_request_path, record.args) if p), None)
        if path is not None:
            return not path.startswith(self.prefixes)
        message = record.getMessage()
        return not any(prefix in message for prefix in self.prefixes)


class RedactDeviceIdFilter(logging.Filter):
    """Mask full device identifiers that end up in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _DEVICE_ID_RE.sub(lambda m: f"{m.group(0)[:8]}…", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def _request_path(obj: Any) -> str | None:
    if obj is None:
        return None
    path = getattr(obj, "path", None) or getattr(obj, "path_info", None)
    if isinstance(path, str) and path:
        return path
    return None
