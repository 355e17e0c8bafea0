from __future__ import annotations

from typing import Any


_RETRYABLE_MARKERS = ("rate_limit", "429", "overloaded", "500", "503", "529")
_RETRYABLE_STATUSES = {429, 500, 502, 503, 529}


class NewsPipelineError(Exception):
    """Base error for the news pipeline."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | details: {self.details}"
        return self.message


class UnknownSourceError(NewsPipelineError, KeyError):
    """A source id that is not in the registry. This is a deployment defect."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"Unknown news source: {source_id!r}", {"source_id": source_id})
        self.source_id = source_id

    def __str__(self) -> str:
        return self.message


class ResponseParseError(NewsPipelineError, ValueError):
    """Text-generation output that could not be turned into a JSON object."""


def is_retryable_error(exc: BaseException) -> bool:
    """True for rate limiting and server-side overload (transient) failures."""

    # parse errors quote model output, which may contain any of the markers
    if isinstance(exc, ResponseParseError):
        return False
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status in _RETRYABLE_STATUSES:
        return True
    message = str(exc)
    return any(marker in message for marker in _RETRYABLE_MARKERS)
