# src/core/validation.py — v1
"""Input validation applied to the user's request before a run starts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MIN_INPUT_LENGTH = 3
MAX_INPUT_LENGTH = 2000
SPECIAL_CHAR_WARNING_RATIO = 0.15

# Phrases that usually indicate an attempt to hijack the prompt.
DANGEROUS_KEYWORDS: tuple[str, ...] = (
    "ignore previous instructions",
    "ignore above",
    "disregard",
    "forget everything",
    "new instructions",
    "system prompt",
    "reset instructions",
    "override instructions",
    "system:",
    "admin:",
    "sudo",
    "execute:",
    "eval(",
    "function(",
    "<script",
    "javascript:",
    "onerror=",
    "onload=",
)

_SPECIAL_CHARS_RE = re.compile(r"[{}\[\]<>\\/;`$]")
_REPETITION_RE = re.compile(r"(.)\1{20,}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


class InputValidationError(ValueError):
    """Raised when a request is rejected before any run starts."""


@dataclass
class ValidationResult:
    is_valid: bool
    sanitized: str = ""
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def sanitize_user_input(text: str, max_length: int = MAX_INPUT_LENGTH) -> ValidationResult:
    """Validate a free-text request and strip control characters."""
    if not isinstance(text, str) or not text:
        return ValidationResult(False, error="Input must be a non-empty string")

    if len(text) > max_length:
        return ValidationResult(
            False,
            error=(
                f"Input is too long. Maximum {max_length} characters allowed "
                f"(current: {len(text)})"
            ),
        )

    if len(text.strip()) < MIN_INPUT_LENGTH:
        return ValidationResult(
            False,
            error=f"Input is too short. Minimum {MIN_INPUT_LENGTH} characters required",
        )

    lowered = text.lower()
    if any(keyword in lowered for keyword in DANGEROUS_KEYWORDS):
        return ValidationResult(
            False,
            error=(
                "Input contains suspicious patterns that may indicate a security "
                "issue. Please rephrase your request."
            ),
        )

    if _REPETITION_RE.search(text):
        return ValidationResult(False, error="Input contains excessive character repetition")

    warnings: list[str] = []
    if len(_SPECIAL_CHARS_RE.findall(text)) / len(text) > SPECIAL_CHAR_WARNING_RATIO:
        warnings.append("Input contains many special characters")

    return ValidationResult(
        True,
        sanitized=_CONTROL_CHARS_RE.sub("", text).strip(),
        warnings=warnings,
    )


def validate_request_text(text: str, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Return the sanitized request text.

    Raises:
        InputValidationError: If the text is rejected.
    """
    result = sanitize_user_input(text, max_length=max_length)
    if not result.is_valid:
        raise InputValidationError(result.error)
    for warning in result.warnings:
        logger.warning("Request accepted with warning: %s", warning)
    return result.sanitized
