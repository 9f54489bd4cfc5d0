# tests/unit/pipeline/test_unit_orchestrator.py — v3
"""Tests for pipeline/orchestrator.py — stage walk, degradation, streaming, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from conftest import (
    FakeLLM,
    RecordingSleep,
    StubCapability,
    StubStreamingCapability,
    lyrics_json,
    stub_registry,
)
from songsmith.config.settings import Settings
from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.lyrics import parse_lyrics
from songsmith.core.models import GenerationSettings
from songsmith.pipeline.capabilities.context_extractor import ContextExtractor
from songsmith.pipeline.orchestrator import SOFT_FALLBACK_NOTE, WorkflowOrchestrator
from songsmith.pipeline.progress import (
    IDLE_STATUS,
    MessageAdded,
    MessageUpdated,
    RunStatus,
    StatusUpdate,
    StepStatus,
)
from songsmith.pipeline.registry import CapabilityRegistry, RegistryError
from songsmith.pipeline.state import WorkflowState


# --- Helpers ---


class EventLog:
    """on_event hook collecting every event in order."""

    def __init__(self) -> None:
        self.events: list = []

    async def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def statuses(self):
        return [e.status for e in self.events if isinstance(e, StatusUpdate)]

    @property
    def messages(self):
        return [e for e in self.events if isinstance(e, (MessageAdded, MessageUpdated))]

    def step_states(self, step_id: str) -> list[StepStatus]:
        result = []
        for status in self.statuses:
            for step in status.steps:
                if step.id == step_id:
                    result.append(step.status)
        return result


class HangingCapability(StubCapability):
    """Capability that never returns until cancelled."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.started = asyncio.Event()

    async def invoke(self, state, llm):
        self.started.set()
        await asyncio.Event().wait()


class EndlessDraft(StubStreamingCapability):
    """Draft stream that sends one chunk, then waits until closed."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = asyncio.Event()

    async def open_stream(self, state, llm):
        self.opens += 1
        return self._deltas()

    async def _deltas(self):
        try:
            yield "Verse one\n"
            await asyncio.Event().wait()
        finally:
            self.closed.set()


class DraftWatch(EventLog):
    """EventLog that signals once the first draft text is published."""

    def __init__(self) -> None:
        super().__init__()
        self.draft_seen = asyncio.Event()

    async def __call__(self, event) -> None:
        await super().__call__(event)
        if isinstance(event, (MessageAdded, MessageUpdated)) and event.message.content == "Verse one\n":
            self.draft_seen.set()


def _orchestrator(settings, limiter, registry=None, sleep=None, llm=None):
    llm = llm or FakeLLM()
    return WorkflowOrchestrator(
        settings=settings,
        rate_limiter=limiter,
        llm_factory=lambda name: llm,
        registry=registry or stub_registry(),
        sleep=sleep or RecordingSleep(),
    )


# --- Tests ---


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_run_completes_all_steps(self, settings, limiter, state):
        log = EventLog()
        result = await _orchestrator(settings, limiter).run(state, log)

        assert result.status is RunStatus.DONE
        assert result.error is None
        assert all(step.status is StepStatus.COMPLETED for step in result.steps)
        assert [s.id for s in result.steps][-1] == "final"
        assert state.completed_stages == [
            "context_extraction", "emotion", "research", "draft",
            "compliance", "review", "format",
        ]

    @pytest.mark.asyncio
    async def test_final_message_uses_review_output(self, settings, limiter, state):
        result = await _orchestrator(settings, limiter).run(state)
        assert result.lyrics == "Polished lyrics"
        assert result.message.sender_agent == "ORCHESTRATOR"
        assert result.message.suno_style_prompt == "Telugu melody, high fidelity"
        assert result.message.suno_formatted_content == "[Chorus]\nVaana chinukula"
        assert result.message.compliance_report.originality_score == 95

    @pytest.mark.asyncio
    async def test_status_resets_to_idle(self, settings, limiter, state):
        log = EventLog()
        await _orchestrator(settings, limiter).run(state, log)
        assert log.statuses[-1] == IDLE_STATUS
        assert log.statuses[-2].run_status is RunStatus.DONE
        assert log.statuses[-2].message == "Done!"

    @pytest.mark.asyncio
    async def test_draft_label_names_language(self, settings, limiter):
        state = WorkflowState(request="A festival song")
        state.language.secondary = "English"
        result = await _orchestrator(settings, limiter).run(state)
        draft = next(s for s in result.steps if s.id == "draft")
        assert draft.label == "Lyricist: Composing in Telugu Mix"

    @pytest.mark.asyncio
    async def test_inter_stage_delay_after_every_stage(self, limiter, state):
        settings = Settings(_env_file=None, inter_stage_delay_s=2.0, finalize_grace_s=0)
        sleep = RecordingSleep()
        await _orchestrator(settings, limiter, sleep=sleep).run(state)
        assert sleep.delays.count(2.0) == 7

    @pytest.mark.asyncio
    async def test_every_attempt_charges_the_limiter(self, settings, limiter, state):
        await _orchestrator(settings, limiter).run(state)
        assert limiter.status("global").remaining == settings.rate_limit_global_max - 7
        assert limiter.status("draft").remaining == settings.rate_limit_draft_max - 1
        assert limiter.status("research").remaining == settings.rate_limit_research_max - 1

    @pytest.mark.asyncio
    async def test_passthrough_context_skips_limiter(self, settings, limiter, state):
        registry = stub_registry(context_extraction=ContextExtractor())
        await _orchestrator(settings, limiter, registry=registry).run(state)
        assert state.processed_context == state.request
        assert limiter.status("global").remaining == settings.rate_limit_global_max - 6


class TestAutoSettings:
    @pytest.mark.asyncio
    async def test_resolved_from_emotion(self, settings, limiter, state):
        await _orchestrator(settings, limiter).run(state)
        assert state.resolved.mood == "Shringara (Positive)"
        assert state.resolved.style == "Melody"
        assert state.resolved.singer_config == "Duet (Male + Female)"

    @pytest.mark.asyncio
    async def test_explicit_fields_never_overwritten(self, settings, limiter):
        state = WorkflowState(
            request="A song for my sister's wedding",
            generation=GenerationSettings(mood="Joyful", style="Folk"),
        )
        await _orchestrator(settings, limiter).run(state)
        assert state.resolved.mood == "Joyful"
        assert state.resolved.style == "Folk"
        assert state.resolved.theme == "Tender longing"

    @pytest.mark.asyncio
    async def test_emotion_failure_uses_default_emotion(self, settings, limiter, state):
        registry = stub_registry(
            emotion=StubCapability("emotion", fail=ValueError("JSON parse error")),
        )
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.DONE
        assert state.emotion.navarasa == "Shanta"
        assert state.resolved.mood == "Shanta (Neutral)"
        assert state.resolved.style == "Melody"
        assert state.resolved.theme == "Balanced"

    @pytest.mark.asyncio
    async def test_research_status_shows_resolved_mood(self, settings, limiter, state):
        log = EventLog()
        await _orchestrator(settings, limiter).run(state, log)
        messages = [s.message for s in log.statuses]
        assert "Analyzing context (Shringara (Positive))..." in messages
        assert "Composing (Melody)..." in messages


class TestDegradation:
    @pytest.mark.asyncio
    async def test_compliance_failure_still_done(self, settings, limiter, state):
        registry = stub_registry(
            compliance=StubCapability("compliance", fail=RuntimeError("boom")),
        )
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.DONE
        assert "compliance" not in state.completed_stages
        assert state.errors == ["compliance: boom"]
        assert result.message.compliance_report.verdict == "Skipped"
        compliance = next(s for s in result.steps if s.id == "compliance")
        assert compliance.status is StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_review_failure_keeps_draft(self, settings, limiter, state):
        registry = stub_registry(
            review=StubCapability("review", fail=RuntimeError("boom")),
        )
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.DONE
        assert result.lyrics == parse_lyrics(lyrics_json())

    @pytest.mark.asyncio
    async def test_format_failure_leaves_no_suno_output(self, settings, limiter, state):
        registry = stub_registry(
            format=StubCapability("format", fail=RuntimeError("boom")),
        )
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.DONE
        assert result.message.suno_style_prompt is None

    @pytest.mark.asyncio
    async def test_low_originality_appends_warning(self, settings, limiter, state):
        registry = stub_registry(
            compliance=StubCapability("compliance", data={"originality_score": 40}),
        )
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.lyrics.startswith("Polished lyrics")
        assert "Originality Score 40%" in result.lyrics

    @pytest.mark.asyncio
    async def test_limiter_rejection_of_best_effort_stage_absorbed(
        self, settings, limiter, state,
    ):
        for _ in range(settings.rate_limit_research_max):
            limiter.bucket("research").record_request()
        research = StubCapability("research", text="unused", bucket="research")
        registry = stub_registry(research=research)

        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.DONE
        assert research.calls == 0
        assert state.errors[0].startswith("research: Rate limit exceeded")

    @pytest.mark.asyncio
    async def test_transient_best_effort_error_is_retried(self, settings, limiter, state):
        class Flaky(StubCapability):
            attempts = 0

            async def invoke(self, state, llm):
                self.attempts += 1
                if self.attempts == 1:
                    raise RuntimeError("503 overloaded")
                return await super().invoke(state, llm)

        research = Flaky("research", text="Found it", bucket="research")
        sleep = RecordingSleep()
        registry = stub_registry(research=research)
        await _orchestrator(settings, limiter, registry=registry, sleep=sleep).run(state)
        assert research.attempts == 2
        assert state.research == "Found it"
        assert 0.5 in sleep.delays


class TestDraftFailure:
    @pytest.mark.asyncio
    async def test_fatal_draft_failure_aborts_run(self, settings, limiter, state):
        draft = StubStreamingCapability(open_errors=[RuntimeError("API key not valid")])
        compliance = StubCapability("compliance")
        registry = stub_registry(draft=draft, compliance=compliance)
        log = EventLog()

        result = await _orchestrator(settings, limiter, registry=registry).run(state, log)

        assert result.status is RunStatus.FAILED
        assert result.error.kind is ErrorKind.AUTH
        assert draft.opens == 1
        assert compliance.calls == 0
        for step_id in ("compliance", "review", "format", "final"):
            assert set(log.step_states(step_id)) == {StepStatus.PENDING}

    @pytest.mark.asyncio
    async def test_failure_emits_one_system_message(self, settings, limiter, state):
        draft = StubStreamingCapability(open_errors=[RuntimeError("API key not valid")])
        log = EventLog()
        await _orchestrator(settings, limiter, registry=stub_registry(draft=draft)).run(state, log)

        system = [m for m in log.messages if m.message.role == "system"]
        assert len(system) == 1
        assert system[0].message.content.startswith("Access Denied")
        assert log.statuses[-1] == IDLE_STATUS
        assert log.statuses[-2].run_status is RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_transient_open_error_retried(self, settings, limiter, state):
        draft = StubStreamingCapability(
            chunks=[lyrics_json()],
            open_errors=[RuntimeError("503 Service Unavailable")],
            finalize=parse_lyrics,
        )
        sleep = RecordingSleep()
        registry = stub_registry(draft=draft)
        result = await _orchestrator(settings, limiter, registry=registry, sleep=sleep).run(state)

        assert result.status is RunStatus.DONE
        assert draft.opens == 2
        assert sleep.delays.count(0.5) == 1
        assert limiter.status("draft").remaining == settings.rate_limit_draft_max - 2

    @pytest.mark.asyncio
    async def test_draft_rate_limited_fails_with_wait_message(self, settings, limiter, state):
        for _ in range(settings.rate_limit_draft_max):
            limiter.bucket("draft").record_request()
        result = await _orchestrator(settings, limiter).run(state)
        assert result.status is RunStatus.FAILED
        assert result.error.kind is ErrorKind.QUOTA
        assert result.error.message.startswith("Rate limit exceeded. Please wait 60 seconds")

    @pytest.mark.asyncio
    async def test_empty_stream_is_server_error(self, settings, limiter, state):
        registry = stub_registry(draft=StubStreamingCapability(chunks=[]))
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.FAILED
        assert result.error.kind is ErrorKind.SERVER

    @pytest.mark.asyncio
    async def test_stream_broken_mid_way_is_not_restarted(self, settings, limiter, state):
        draft = StubStreamingCapability(chunks=["Verse", ConnectionError("network down")])
        registry = stub_registry(draft=draft)
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.FAILED
        assert result.error.kind is ErrorKind.NETWORK
        assert draft.opens == 1

    @pytest.mark.asyncio
    async def test_short_unparseable_draft_fails(self, settings, limiter, state):
        draft = StubStreamingCapability(chunks=["not json"], finalize=parse_lyrics)
        registry = stub_registry(draft=draft)
        result = await _orchestrator(settings, limiter, registry=registry).run(state)
        assert result.status is RunStatus.FAILED
        assert result.error.kind is ErrorKind.PARSING


class TestDraftStreaming:
    @pytest.mark.asyncio
    async def test_partials_create_then_update_message(self, settings, limiter, state):
        draft = StubStreamingCapability(chunks=["Verse", " one", " line"])
        registry = stub_registry(draft=draft, review=StubCapability("review", fail=RuntimeError("x")))
        log = EventLog()
        await _orchestrator(settings, limiter, registry=registry).run(state, log)

        streamed = [m for m in log.messages if m.message.sender_agent == "LYRICIST"]
        assert isinstance(streamed[0], MessageAdded)
        assert [m.message.content for m in streamed[:3]] == ["Verse", "Verse one", "Verse one line"]
        assert all(isinstance(m, MessageUpdated) for m in streamed[1:])
        ids = {m.message.id for m in log.messages if m.message.role == "model"}
        assert len(ids) == 1

    @pytest.mark.asyncio
    async def test_streamed_content_is_monotonic(self, settings, limiter, state):
        chunks = ["Vaana ", "chinukula ", "sandadi ", "lo ", "nee ", "peru"]
        draft = StubStreamingCapability(chunks=chunks)
        log = EventLog()
        registry = stub_registry(draft=draft)
        await _orchestrator(settings, limiter, registry=registry).run(state, log)

        partials = [m.message.content for m in log.messages][: len(chunks)]
        for earlier, later in zip(partials, partials[1:]):
            assert later.startswith(earlier)

    @pytest.mark.asyncio
    async def test_final_parse_replaces_partial_text(self, settings, limiter, state):
        raw = lyrics_json()
        draft = StubStreamingCapability(
            chunks=[raw[:20], raw[20:]], finalize=parse_lyrics,
        )
        registry = stub_registry(draft=draft, review=StubCapability("review", fail=RuntimeError("x")))
        log = EventLog()
        await _orchestrator(settings, limiter, registry=registry).run(state, log)

        lyricist = [m.message.content for m in log.messages if m.message.sender_agent == "LYRICIST"]
        assert lyricist[-1] == parse_lyrics(raw)
        assert state.draft == parse_lyrics(raw)

    @pytest.mark.asyncio
    async def test_soft_fallback_keeps_raw_text(self, settings, limiter, state):
        raw = "Vaana chinukula sandadilo nee peru vinipinchindi, mabbula madhya nee navvu"
        draft = StubStreamingCapability(chunks=[raw], finalize=parse_lyrics)
        registry = stub_registry(draft=draft)
        result = await _orchestrator(settings, limiter, registry=registry).run(state)

        assert result.status is RunStatus.DONE
        assert state.draft == raw + SOFT_FALLBACK_NOTE
        assert state.stage_outputs["draft"].warnings


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_marks_failed_and_resets(self, settings, limiter, state):
        hanging = HangingCapability("research")
        log = EventLog()
        orchestrator = _orchestrator(settings, limiter, registry=stub_registry(research=hanging))

        task = asyncio.create_task(orchestrator.run(state, log))
        await hanging.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert log.statuses[-1] == IDLE_STATUS
        assert log.statuses[-2].run_status is RunStatus.FAILED
        assert set(log.step_states("draft")) == {StepStatus.PENDING}

    @pytest.mark.asyncio
    async def test_cancel_mid_draft_closes_stream(self, settings, limiter, state):
        draft = EndlessDraft()
        log = DraftWatch()
        orchestrator = _orchestrator(settings, limiter, registry=stub_registry(draft=draft))

        task = asyncio.create_task(orchestrator.run(state, log))
        await log.draft_seen.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert draft.closed.is_set()
        assert log.statuses[-1] == IDLE_STATUS
        assert log.statuses[-2].run_status is RunStatus.FAILED
        assert "draft" not in state.completed_stages

    @pytest.mark.asyncio
    async def test_run_deadline(self, limiter, state):
        settings = Settings(
            _env_file=None, inter_stage_delay_s=0, finalize_grace_s=0, run_deadline_s=0.05,
        )
        hanging = HangingCapability("research")
        orchestrator = _orchestrator(settings, limiter, registry=stub_registry(research=hanging))

        with pytest.raises(ClassifiedError) as exc_info:
            await orchestrator.run(state)
        assert exc_info.value.kind is ErrorKind.NETWORK


class TestConstruction:
    def test_missing_capability_rejected(self, settings, limiter):
        with pytest.raises(RegistryError, match="format"):
            registry = CapabilityRegistry()
            for name in ("context_extraction", "emotion", "research", "compliance", "review"):
                registry.register(StubCapability(name))
            registry.register(StubStreamingCapability())
            _orchestrator(settings, limiter, registry=registry)

    def test_non_streaming_draft_rejected(self, settings, limiter):
        with pytest.raises(RegistryError, match="streams"):
            _orchestrator(settings, limiter, registry=stub_registry(draft=StubCapability("draft")))
