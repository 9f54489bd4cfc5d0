# src/pipeline/orchestrator.py — v3
"""Workflow orchestrator — drives one song generation run through the plan.

Walks ``STAGE_PLAN`` in order:
  context_extraction -> emotion -> research -> draft -> compliance
  -> review -> format -> final

Only the draft stage is mandatory. Every other stage degrades to a default
on failure and the run continues. Progress is pushed to the caller as
immutable snapshots through a single awaited ``on_event`` hook.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from songsmith.config.stages import FINAL_STEP_ID, FINAL_STEP_LABEL, STAGE_PLAN, StageSpec
from songsmith.core import auto_settings
from songsmith.core.errors import ClassifiedError, ErrorKind, classify_error, user_message
from songsmith.core.models import (
    ComplianceReport,
    EmotionAnalysis,
    FormatterOutput,
    OutputMessage,
)
from songsmith.llm.retry import RetryPolicy, with_retry
from songsmith.logging.context import clear_context, set_run_context, set_stage_context
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.progress import (
    IDLE_STATUS,
    EventHook,
    MessageAdded,
    MessageUpdated,
    RunStatus,
    StatusUpdate,
    Step,
    StepStatus,
    WorkflowRun,
    discard_event,
)
from songsmith.pipeline.registry import CapabilityRegistry, RegistryError
from songsmith.pipeline.streaming import DraftStream, StreamFailed, StreamPartial

if TYPE_CHECKING:
    from songsmith.config.settings import Settings
    from songsmith.llm.base_client import BaseLLMClient
    from songsmith.llm.rate_limiter import TieredRateLimiter
    from songsmith.pipeline.state import WorkflowState

logger = logging.getLogger(__name__)

SOFT_FALLBACK_NOTE = "\n\n[Note: structured formatting failed, showing raw lyrics.]"
EMPTY_DRAFT_MESSAGE = "The lyricist could not generate any content."


@dataclass
class WorkflowResult:
    """Outcome of one run. Failures are returned here, never raised."""

    run_id: str
    status: RunStatus
    state: WorkflowState
    message: OutputMessage | None = None
    error: ClassifiedError | None = None
    elapsed_s: float = 0.0
    steps: list[Step] = field(default_factory=list)

    @property
    def lyrics(self) -> str:
        if self.status is RunStatus.DONE and self.message is not None:
            return self.message.content
        return ""


@dataclass
class _RunContext:
    run: WorkflowRun
    state: WorkflowState
    emit: EventHook
    message: OutputMessage | None = None

    @property
    def message_id(self) -> str:
        return f"{self.run.id}_final"

    async def publish_status(self) -> None:
        await self.emit(StatusUpdate(status=self.run.snapshot()))

    async def publish_message(self, **update: Any) -> None:
        """Create the outward message on first use, replace it afterwards."""
        if self.message is None:
            self.message = OutputMessage(id=self.message_id, **update)
            await self.emit(MessageAdded(message=self.message))
        else:
            self.message = self.message.model_copy(update=update)
            await self.emit(MessageUpdated(message=self.message))


class WorkflowOrchestrator:
    """Runs the stage plan for one request at a time.

    Args:
        settings: Application settings (delays, thresholds, retry budget).
        rate_limiter: Limiter shared by every run of the application.
        llm_factory: Callable returning the client for a capability name.
        registry: Capabilities by stage id (defaults to the configured set).
        plan: Ordered stage plan.
        sleep: Awaitable sleep, injected by tests.
    """

    def __init__(
        self,
        settings: Settings,
        rate_limiter: TieredRateLimiter,
        llm_factory: Callable[[str], BaseLLMClient],
        registry: CapabilityRegistry | None = None,
        plan: tuple[StageSpec, ...] = STAGE_PLAN,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._limiter = rate_limiter
        self._llm_factory = llm_factory
        self._registry = registry or CapabilityRegistry.default()
        self._plan = plan
        self._sleep = sleep

        problems = self._registry.validate_plan(plan)
        if problems:
            raise RegistryError("; ".join(problems))

    @property
    def plan(self) -> tuple[StageSpec, ...]:
        return self._plan

    async def run(
        self,
        state: WorkflowState,
        on_event: EventHook | None = None,
    ) -> WorkflowResult:
        """Execute the plan on a prepared WorkflowState.

        Raises:
            asyncio.CancelledError: If the calling task is cancelled.
            ClassifiedError: NETWORK kind when the run deadline passes.
        """
        emit = on_event or discard_event
        deadline = self._settings.run_deadline_s
        if deadline is None:
            return await self._execute(state, emit)
        try:
            async with asyncio.timeout(deadline):
                return await self._execute(state, emit)
        except TimeoutError as exc:
            logger.error("Run %s exceeded its %gs deadline", state.run_id, deadline)
            raise ClassifiedError(
                ErrorKind.NETWORK, f"Run exceeded its {deadline:g}s deadline", cause=exc,
            ) from exc

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _execute(self, state: WorkflowState, emit: EventHook) -> WorkflowResult:
        start_time = time.monotonic()
        run = WorkflowRun(self._initial_steps(state), run_id=state.run_id)
        ctx = _RunContext(run=run, state=state, emit=emit)
        set_run_context(run.id)
        logger.info("Run started: %d stages", len(self._plan))

        try:
            run.start()
            for stage in self._plan:
                error = await self._run_stage(stage, ctx)
                if error is not None:
                    return await self._fail(ctx, error, start_time)
            return await self._finalize(ctx, start_time)
        except asyncio.CancelledError:
            logger.warning("Run cancelled after stages: %s", state.completed_stages)
            if run.status is RunStatus.RUNNING:
                run.message = "Cancelled"
                run.finish(RunStatus.FAILED)
                await ctx.publish_status()
            await emit(StatusUpdate(status=IDLE_STATUS))
            raise
        finally:
            clear_context()

    def _initial_steps(self, state: WorkflowState) -> list[Step]:
        steps = [
            Step(id=stage.id, label=stage.label.format(language=state.language.label))
            for stage in self._plan
        ]
        steps.append(Step(id=FINAL_STEP_ID, label=FINAL_STEP_LABEL))
        return steps

    async def _fail(
        self, ctx: _RunContext, error: ClassifiedError, start_time: float,
    ) -> WorkflowResult:
        run = ctx.run
        text = user_message(error)
        run.current_agent_label = "ORCHESTRATOR"
        run.message = text
        run.finish(RunStatus.FAILED)
        await ctx.publish_status()
        await ctx.emit(MessageAdded(message=OutputMessage(
            id=f"{run.id}_error",
            role="system",
            content=text,
            sender_agent="ORCHESTRATOR",
        )))
        logger.error("Run failed (%s): %s", error.kind.value, error.message)

        await self._sleep(self._settings.finalize_grace_s)
        await ctx.emit(StatusUpdate(status=IDLE_STATUS))
        return WorkflowResult(
            run_id=run.id,
            status=RunStatus.FAILED,
            state=ctx.state,
            message=ctx.message,
            error=error,
            elapsed_s=time.monotonic() - start_time,
            steps=list(run.steps),
        )

    async def _finalize(self, ctx: _RunContext, start_time: float) -> WorkflowResult:
        run, state = ctx.run, ctx.state
        set_stage_context(FINAL_STEP_ID)
        run.current_agent_label = "ORCHESTRATOR"
        run.message = "Finalizing..."
        run.set_step(FINAL_STEP_ID, StepStatus.ACTIVE)
        await ctx.publish_status()

        content = state.lyrics or state.draft
        score = state.compliance.originality_score
        if score < self._settings.originality_warning_threshold:
            content += (
                f"\n\n[COMPLIANCE ALERT: Originality Score {score}%. "
                "Some phrases may resemble existing songs.]"
            )
        update: dict[str, Any] = {
            "content": content,
            "sender_agent": "ORCHESTRATOR",
            "compliance_report": state.compliance,
        }
        if state.formatter is not None:
            update["suno_formatted_content"] = state.formatter.formatted_lyrics
            update["suno_style_prompt"] = state.formatter.style_prompt
        await ctx.publish_message(**update)

        run.set_step(FINAL_STEP_ID, StepStatus.COMPLETED)
        run.message = "Done!"
        run.finish(RunStatus.DONE)
        await ctx.publish_status()

        elapsed = time.monotonic() - start_time
        logger.info(
            "Run complete: %d/%d stages succeeded, %d LLM calls in %.1fs",
            len(state.completed_stages), len(self._plan), state.total_llm_calls, elapsed,
        )

        await self._sleep(self._settings.finalize_grace_s)
        await ctx.emit(StatusUpdate(status=IDLE_STATUS))
        return WorkflowResult(
            run_id=run.id,
            status=RunStatus.DONE,
            state=state,
            message=ctx.message,
            elapsed_s=elapsed,
            steps=list(run.steps),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_stage(self, stage: StageSpec, ctx: _RunContext) -> ClassifiedError | None:
        """Run one stage; return the error only when a mandatory stage failed."""
        run, state = ctx.run, ctx.state
        capability = self._registry.get_or_raise(stage.id)

        if stage.streaming and state.resolved is None:
            state.resolved = auto_settings.resolve(state.generation, state.emotion)

        set_stage_context(stage.id)
        run.current_agent_label = stage.agent
        run.message = stage.status_message.format(
            mood=state.settings.effective("mood", "Auto"),
            style=state.settings.effective("style", "Auto"),
        )
        run.set_step(stage.id, StepStatus.ACTIVE)
        await ctx.publish_status()

        try:
            if stage.streaming:
                result = await self._call_streaming(capability, stage, ctx)
            else:
                result = await self._call(capability, stage, state)
            _apply(stage.id, result, state)
        except Exception as exc:
            classified = classify_error(exc)
            if stage.mandatory:
                logger.error("Stage '%s' failed: %s", stage.id, classified.message)
                return classified
            logger.warning(
                "Stage '%s' skipped (%s): %s", stage.id, classified.kind.value, classified.message,
            )
            state.errors.append(f"{stage.id}: {classified.message}")
        else:
            state.record_stage_output(stage.id, result)
            state.completed_stages.append(stage.id)
            if stage.id == "review":
                await ctx.publish_message(content=state.lyrics, sender_agent="ORCHESTRATOR")

        if stage.id == "emotion":
            state.resolved = auto_settings.resolve(state.generation, state.emotion)

        run.set_step(stage.id, StepStatus.COMPLETED)
        await ctx.publish_status()
        await self._sleep(self._settings.inter_stage_delay_s)
        return None

    def _attempt_hook(self, capability: BaseCapability, stage: StageSpec) -> Callable[[], None]:
        attempts = 0

        def on_attempt() -> None:
            nonlocal attempts
            attempts += 1
            set_stage_context(stage.id, attempts)
            self._limiter.record(capability.bucket)

        return on_attempt

    async def _call(
        self, capability: BaseCapability, stage: StageSpec, state: WorkflowState,
    ) -> CapabilityResult:
        if not capability.needs_call(state):
            logger.debug("Stage '%s' needs no external call", stage.id)
            return capability.passthrough(state)

        self._limiter.admit(capability.bucket)
        llm = self._llm_factory(capability.name)
        return await with_retry(
            capability.invoke,
            state,
            llm,
            stage=stage.id,
            policy=RetryPolicy.from_settings(self._settings),
            on_attempt=self._attempt_hook(capability, stage),
            sleep=self._sleep,
        )

    async def _call_streaming(
        self, capability: BaseCapability, stage: StageSpec, ctx: _RunContext,
    ) -> CapabilityResult:
        """Open the stream under the retry policy, then pump it to the caller.

        Only opening the stream is retried; once chunks flow a failure ends
        the stage.
        """
        self._limiter.admit(capability.bucket)
        llm = self._llm_factory(capability.name)
        deltas = await with_retry(
            capability.open_stream,
            ctx.state,
            llm,
            stage=stage.id,
            policy=RetryPolicy.from_settings(self._settings, streaming=True),
            on_attempt=self._attempt_hook(capability, stage),
            sleep=self._sleep,
        )

        raw = ""
        stream = DraftStream(
            deltas,
            maxsize=self._settings.stream_buffer_size,
            idle_timeout_s=self._settings.draft_timeout_s,
        )
        async with stream:
            async for event in stream:
                if isinstance(event, StreamPartial):
                    await ctx.publish_message(content=event.text, sender_agent=stage.agent)
                elif isinstance(event, StreamFailed):
                    raise event.error
                else:
                    raw = event.text

        if not raw.strip():
            raise ClassifiedError(ErrorKind.SERVER, EMPTY_DRAFT_MESSAGE)

        try:
            result = capability.finalize_stream(raw)
        except ClassifiedError as exc:
            if exc.kind is not ErrorKind.PARSING or len(raw.strip()) <= self._settings.soft_fallback_min_chars:
                raise
            logger.warning("Draft could not be parsed, keeping raw text: %s", exc.message)
            result = build_result(capability.name, text=raw.strip() + SOFT_FALLBACK_NOTE, data={"raw": raw})
            result.warnings.append(exc.message)

        await ctx.publish_message(content=result.text, sender_agent=stage.agent)
        return result


def _apply(stage_id: str, result: CapabilityResult, state: WorkflowState) -> None:
    """Write a stage result into the workflow state."""
    if stage_id == "context_extraction":
        state.processed_context = result.text
    elif stage_id == "emotion":
        state.emotion = EmotionAnalysis.model_validate(result.data)
    elif stage_id == "research":
        state.research = result.text
    elif stage_id == "draft":
        state.draft = result.text
    elif stage_id == "compliance":
        state.compliance = ComplianceReport.model_validate(result.data)
    elif stage_id == "review":
        state.lyrics = result.text
    elif stage_id == "format":
        state.formatter = FormatterOutput.model_validate(result.data)
