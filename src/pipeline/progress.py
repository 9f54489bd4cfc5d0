# src/pipeline/progress.py — v2
"""Run/step state machine and the progress events pushed to the caller.

``WorkflowRun`` is mutable and owned by the orchestrator. Everything sent
outward is an immutable snapshot (``AgentStatus``) or message, delivered in
production order through a single awaited hook.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Union

from pydantic import BaseModel, ConfigDict, Field

from songsmith.core.models import OutputMessage

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"
    DONE = "done"


class StepStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


_STEP_ORDER = {StepStatus.PENDING: 0, StepStatus.ACTIVE: 1, StepStatus.COMPLETED: 2}


class InvalidTransitionError(Exception):
    """Raised when a step or run would move backwards."""


class Step(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    status: StepStatus = StepStatus.PENDING


class AgentStatus(BaseModel):
    """Immutable progress snapshot."""

    model_config = ConfigDict(frozen=True)

    active: bool = False
    current_agent_label: str = "CHAT"
    message: str = "Ready"
    run_status: RunStatus = RunStatus.IDLE
    steps: tuple[Step, ...] = ()


IDLE_STATUS = AgentStatus()


class WorkflowRun:
    """The single run an orchestrator drives from idle to done or failed."""

    def __init__(self, steps: list[Step], run_id: str | None = None) -> None:
        self.id = run_id or str(uuid.uuid4())
        self.steps = list(steps)
        self.status = RunStatus.IDLE
        self.current_step_index = -1
        self.current_agent_label = "CHAT"
        self.message = "Ready"

    def _index(self, step_id: str) -> int:
        for i, step in enumerate(self.steps):
            if step.id == step_id:
                return i
        raise KeyError(f"Unknown step: {step_id!r}")

    def step(self, step_id: str) -> Step:
        return self.steps[self._index(step_id)]

    def start(self) -> None:
        if self.status is not RunStatus.IDLE:
            raise InvalidTransitionError(f"Cannot start a run in state {self.status.value}")
        self.status = RunStatus.RUNNING

    def set_step(self, step_id: str, status: StepStatus) -> None:
        """Move a step strictly forward: pending -> active -> completed."""
        if self.status is not RunStatus.RUNNING:
            raise InvalidTransitionError(f"Run is {self.status.value}, not running")
        index = self._index(step_id)
        current = self.steps[index]
        if _STEP_ORDER[status] <= _STEP_ORDER[current.status]:
            raise InvalidTransitionError(
                f"Step '{step_id}' cannot go from {current.status.value} to {status.value}"
            )
        self.steps[index] = current.model_copy(update={"status": status})
        if status is StepStatus.ACTIVE:
            self.current_step_index = index

    def finish(self, status: RunStatus) -> None:
        if status not in (RunStatus.DONE, RunStatus.FAILED):
            raise InvalidTransitionError(f"{status.value} is not a terminal state")
        if self.status is not RunStatus.RUNNING:
            raise InvalidTransitionError(f"Run is {self.status.value}, not running")
        self.status = status

    def snapshot(self) -> AgentStatus:
        return AgentStatus(
            active=self.status is RunStatus.RUNNING,
            current_agent_label=self.current_agent_label,
            message=self.message,
            run_status=self.status,
            steps=tuple(self.steps),
        )


# === EVENTS ===


class StatusUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = Field(default="status", frozen=True)
    status: AgentStatus


class MessageAdded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = Field(default="message_added", frozen=True)
    message: OutputMessage


class MessageUpdated(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = Field(default="message_updated", frozen=True)
    message: OutputMessage


ProgressEvent = Union[StatusUpdate, MessageAdded, MessageUpdated]
EventHook = Callable[[ProgressEvent], Awaitable[None]]


async def discard_event(event: ProgressEvent) -> None:
    """Hook used when the caller does not observe progress."""


class ProgressChannel:
    """Bounded queue of progress events with a single consumer.

    ``publish`` is an ``EventHook``; iterate the channel to consume events
    until ``close()`` is called.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def publish(self, event: ProgressEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s on closed channel", type(event).__name__)
            return
        await self._queue.put(event)

    def close(self) -> None:
        """Stop accepting events; readers finish once the queue drains."""
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(self._CLOSED)

    def discard(self) -> None:
        """Close the channel and drop everything still queued.

        Used when the reader goes away: draining releases a publisher
        blocked on a full queue.
        """
        self._closed = True
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            dropped += 1
        if dropped:
            logger.debug("Discarded %d unread progress events", dropped)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while not (self._closed and self._queue.empty()):
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item  # type: ignore[misc]
