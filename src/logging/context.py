# src/logging/context.py — v2
"""Contextual logging support — attach run_id, stage and attempt to records.

Values live in context variables, so concurrent runs in separate tasks keep
their own context.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)


@dataclass(frozen=True)
class LogContext:
    """Snapshot of the current logging context."""

    run_id: str | None = None
    stage: str | None = None
    attempt: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Non-None fields, for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        attempt=_attempt.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (once per workflow run)."""
    _run_id.set(run_id)
    _stage.set(None)
    _attempt.set(None)


def set_stage_context(stage: str | None, attempt: int | None = None) -> None:
    """Set stage-level context (per stage, updated per attempt)."""
    _stage.set(stage)
    _attempt.set(attempt)


def clear_context() -> None:
    _run_id.set(None)
    _stage.set(None)
    _attempt.set(None)
