"""Error taxonomy for calls against the knowledge-base service.

Every failure a flow can hit ends up as one of these, and every one of them
can be turned into a single user-facing line with `extract_error_detail`.
"""

from __future__ import annotations

import json

ASK_ERROR_TEMPLATE = (
    "There was a problem generating an answer.\n"
    "Possible causes: local model timeout or context size limits.\n"
    "Details: {detail}"
)

_DETAIL_FIELDS = ("error", "message", "detail")


class KnowledgeBaseError(Exception):
    """Base class for failures surfaced to the user."""

    @property
    def detail(self) -> str:
        return extract_error_detail(str(self))


class TransportFailure(KnowledgeBaseError):
    """The request never produced a usable HTTP response."""


class ServiceError(KnowledgeBaseError):
    """The service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(body or f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class CapabilityUnavailable(KnowledgeBaseError):
    """A host capability (microphone, watcher) is missing."""


class ValidationError(KnowledgeBaseError):
    """Input rejected before anything was dispatched."""


def extract_error_detail(raw: str) -> str:
    """Return the human-readable field of a JSON error body, else the raw text."""
    text = (raw or "").strip()
    if not text:
        return "Request failed"
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict):
        for key in _DETAIL_FIELDS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return text


def format_ask_error(detail: str) -> str:
    return ASK_ERROR_TEMPLATE.format(detail=detail)
