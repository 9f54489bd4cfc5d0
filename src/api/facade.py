# src/api/facade.py — v3
"""Public API facade — single entry point for song generation.

Usage:
    from songsmith.api.facade import SongStudio
    studio = SongStudio()
    result = await studio.generate(SongRequest(text="A monsoon love song"))
    reply = await studio.chat("Something for a rainy evening?")

The studio owns the settings, the rate limiter shared by all runs and the
LLM client cache. At most one run is active at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Sequence, Union

from songsmith.api.models import ChatRequest, SongRequest, SongResult
from songsmith.config.settings import Settings, load_settings
from songsmith.core.errors import classify_error, user_message
from songsmith.core.models import (
    Attachment,
    ChatMessage,
    GenerationSettings,
    LanguageProfile,
    OutputMessage,
)
from songsmith.core.validation import validate_request_text
from songsmith.llm.config import LLMFactory
from songsmith.llm.rate_limiter import TieredRateLimiter
from songsmith.llm.retry import RetryPolicy, with_retry
from songsmith.pipeline.capabilities.chat import ChatAssistant
from songsmith.pipeline.orchestrator import WorkflowOrchestrator, WorkflowResult
from songsmith.pipeline.progress import EventHook, ProgressChannel, ProgressEvent, RunStatus
from songsmith.pipeline.state import WorkflowState

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient
    from songsmith.llm.rate_limiter import RateLimitStatus
    from songsmith.pipeline.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


class RunInProgressError(RuntimeError):
    """Raised when a run is requested while another one is active."""


class SongStudio:
    """Generate songs through the staged workflow.

    Args:
        settings: Global settings. Loaded from .env if None.
        rate_limiter: Shared limiter. Built from settings if None.
        llm_factory: Callable returning the client for a capability name.
        registry: Capability registry. Configured capabilities if None.
        sleep: Awaitable sleep used for delays and backoff.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        rate_limiter: TieredRateLimiter | None = None,
        llm_factory: Callable[[str], BaseLLMClient] | None = None,
        registry: CapabilityRegistry | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or load_settings()
        self._limiter = rate_limiter or TieredRateLimiter.from_settings(self._settings)
        self._llm_factory = llm_factory or LLMFactory(self._settings)
        self._sleep = sleep
        self._chat = ChatAssistant()
        self._orchestrator = WorkflowOrchestrator(
            settings=self._settings,
            rate_limiter=self._limiter,
            llm_factory=self._llm_factory,
            registry=registry,
            sleep=sleep,
        )
        self._active_run: str | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def busy(self) -> bool:
        return self._active_run is not None

    def quota_status(self) -> dict[str, RateLimitStatus]:
        """Current status of the global bucket and every capability bucket."""
        return self._limiter.status_all()

    def prepare(self, request: SongRequest) -> WorkflowState:
        """Validate the request and build the initial workflow state.

        Raises:
            InputValidationError: If the request text is rejected.
        """
        text = validate_request_text(request.text, self._settings.max_input_length)
        return WorkflowState(
            request=text,
            language=request.language,
            generation=request.generation,
            attachments=list(request.attachments),
        )

    async def generate(
        self,
        request: SongRequest,
        on_event: EventHook | None = None,
    ) -> SongResult:
        """Run the workflow for one request.

        Args:
            request: Text, language profile, settings and attachments.
            on_event: Awaited once per progress event, in production order.

        Returns:
            SongResult with status ``done`` or ``failed``.

        Raises:
            InputValidationError: If the request text is rejected.
            RunInProgressError: If another run is active.
        """
        if self._active_run is not None:
            raise RunInProgressError(f"Run {self._active_run} is still in progress")
        state = self.prepare(request)

        self._active_run = state.run_id
        logger.info("Generating song for run %s", state.run_id)
        try:
            outcome = await self._orchestrator.run(state, on_event)
        finally:
            self._active_run = None
        return _to_song_result(outcome)

    async def chat(
        self,
        text: str,
        history: Sequence[ChatMessage] = (),
        *,
        language: LanguageProfile | None = None,
        generation: GenerationSettings | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> OutputMessage:
        """Answer one chat turn, charged to the ``chat`` bucket.

        Chat does not start a run and may overlap with one.

        Raises:
            InputValidationError: If the text is rejected.
            ClassifiedError: If the call fails after retries.
        """
        request = ChatRequest(
            text=validate_request_text(text, self._settings.max_input_length),
            history=list(history),
            language=language,
            generation=generation,
            attachments=list(attachments),
        )
        capability = self._chat
        self._limiter.admit(capability.bucket)
        llm = self._llm_factory(capability.name)

        def on_attempt() -> None:
            self._limiter.record(capability.bucket)

        try:
            result = await with_retry(
                capability.invoke,
                request,
                llm,
                stage=capability.name,
                policy=RetryPolicy.from_settings(self._settings),
                on_attempt=on_attempt,
                sleep=self._sleep,
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.warning("Chat turn failed (%s): %s", error.kind.value, error.message)
            if error is exc:
                raise
            raise error from exc
        return OutputMessage(id=uuid.uuid4().hex, content=result.text, sender_agent="CHAT")

    async def stream(
        self, request: SongRequest,
    ) -> AsyncIterator[Union[ProgressEvent, SongResult]]:
        """Yield progress events as they happen, then the SongResult last.

        Closing the iterator early drops unread events and cancels the run.
        """
        channel = ProgressChannel(maxsize=self._settings.stream_buffer_size)

        async def produce() -> SongResult:
            try:
                return await self.generate(request, on_event=channel.publish)
            finally:
                channel.close()

        task = asyncio.create_task(produce())
        try:
            async for event in channel:
                yield event
            yield await task
        finally:
            if not task.done():
                channel.discard()
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task


def _to_song_result(outcome: WorkflowResult) -> SongResult:
    state = outcome.state
    done = outcome.status is RunStatus.DONE
    return SongResult(
        run_id=outcome.run_id,
        status=outcome.status,
        lyrics=outcome.lyrics,
        message=outcome.message,
        compliance=state.compliance if done else None,
        formatter=state.formatter,
        settings=state.resolved,
        error_kind=outcome.error.kind if outcome.error else None,
        error_message=user_message(outcome.error) if outcome.error else None,
        errors=list(state.errors),
        llm_calls=state.total_llm_calls,
        elapsed_s=outcome.elapsed_s,
    )
