# src/core/errors.py — v1
"""Error taxonomy for capability failures.

Every raw failure coming back from a generation backend is mapped onto a
closed set of kinds. The kind drives retry decisions (transient vs. fatal)
and the single user-facing message shown when a run fails.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    AUTH = "auth"
    QUOTA = "quota"
    SERVER = "server"
    NETWORK = "network"
    SAFETY = "safety"
    PARSING = "parsing"
    UNKNOWN = "unknown"


class ClassifiedError(Exception):
    """A failure with a known kind. The original error is kept as ``cause``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value!r}, message={self.message!r})"


# Checked top to bottom; the first matching rule wins.
_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.AUTH, ("api key", "403", "unauthenticated", "key not valid")),
    (ErrorKind.QUOTA, ("429", "quota", "exhausted")),
    (ErrorKind.SERVER, ("503", "overloaded", "500", "internal")),
    (ErrorKind.NETWORK, ("fetch", "network", "failed to fetch")),
    (ErrorKind.SAFETY, ("safety", "blocked", "harmful", "candidate")),
    (ErrorKind.PARSING, ("parse", "json", "syntax")),
]

_FATAL = frozenset({ErrorKind.AUTH, ErrorKind.SAFETY})
_TRANSIENT = frozenset({ErrorKind.QUOTA, ErrorKind.SERVER, ErrorKind.NETWORK})

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH: (
        "Access Denied: Your API key appears to be invalid or expired. "
        "Please check your settings."
    ),
    ErrorKind.QUOTA: (
        "System Busy: Requests are arriving too fast for the AI service. "
        "Please wait a moment and try again shortly."
    ),
    ErrorKind.SERVER: (
        "AI Overload: The AI service is experiencing high traffic. "
        "Please try again shortly."
    ),
    ErrorKind.NETWORK: (
        "Connection Lost: Please check your internet connection and try again shortly."
    ),
    ErrorKind.SAFETY: (
        "Content Filter: This song cannot be generated because it may violate "
        "safety policies regarding sensitive topics."
    ),
    ErrorKind.PARSING: (
        "Formatting Issue: The AI generated the content but the format was "
        "broken. Please try again."
    ),
}

GENERIC_FAILURE_MESSAGE = "I encountered a musical block. Please try again."


def _message_of(error: BaseException) -> str:
    text = str(error)
    if not text and error.args:
        text = " ".join(str(a) for a in error.args)
    return text or type(error).__name__


def classify_message(message: str) -> ErrorKind:
    """Return the error kind for a raw failure message."""
    lowered = message.lower()
    for kind, needles in _RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ClassifiedError:
    """Map any exception onto a ClassifiedError.

    Already classified errors are returned unchanged so that a kind chosen
    closer to the failure (e.g. a timeout tagged as NETWORK) is never lost.
    """
    if isinstance(error, ClassifiedError):
        return error
    message = _message_of(error)
    return ClassifiedError(classify_message(message), message, cause=error)


def is_fatal(kind: ErrorKind) -> bool:
    """Fatal kinds abort immediately and are never retried."""
    return kind in _FATAL


def is_transient(kind: ErrorKind) -> bool:
    """Transient kinds are eligible for backoff retry."""
    return kind in _TRANSIENT


def user_message(error: BaseException | None) -> str:
    """One concise, human-readable sentence describing a run failure."""
    if error is None:
        return GENERIC_FAILURE_MESSAGE
    classified = classify_error(error)
    if classified.kind is ErrorKind.QUOTA and getattr(classified, "reset_in_ms", None):
        return classified.message
    if classified.kind is ErrorKind.UNKNOWN:
        return classified.message or GENERIC_FAILURE_MESSAGE
    return _USER_MESSAGES[classified.kind]
