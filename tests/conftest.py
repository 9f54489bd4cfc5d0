# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides a scripted fake LLM client, stub capabilities, a manual clock and
zero-delay settings. No network access; every external call is faked.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable

import pytest

from songsmith.config.settings import Settings
from songsmith.config.stages import STAGE_PLAN
from songsmith.core.lyrics import parse_lyrics
from songsmith.llm.base_client import BaseLLMClient
from songsmith.llm.models import ImageInput, LLMResponse, Message
from songsmith.llm.rate_limiter import TieredRateLimiter
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.registry import CapabilityRegistry
from songsmith.pipeline.state import WorkflowState


# === FAKES ===


class FakeLLM(BaseLLMClient):
    """Scripted client: each call pops the next response or raises it."""

    def __init__(
        self,
        responses: list[Any] | None = None,
        chunks: list[str] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.chunks = list(chunks or [])
        self.calls: list[dict[str, Any]] = []

    def _next(self) -> LLMResponse:
        item = self.responses.pop(0) if self.responses else ""
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, LLMResponse):
            return item
        return LLMResponse(content=item, model="fake-model", provider="fake", sources=[])

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
        use_search: bool = False,
    ) -> LLMResponse:
        self.calls.append({
            "kind": "complete", "messages": messages, "system": system,
            "temperature": temperature, "schema": response_schema, "use_search": use_search,
        })
        return self._next()

    async def complete_with_vision(
        self,
        messages: list[Message],
        images: list[ImageInput],
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        self.calls.append({"kind": "vision", "messages": messages, "images": images, "system": system})
        return self._next()

    async def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append({"kind": "stream", "messages": messages, "system": system})

        async def deltas() -> AsyncIterator[str]:
            for chunk in self.chunks:
                yield chunk

        return deltas()

    @property
    def supports_vision(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "fake"


async def iterate(items: list[Any]) -> AsyncIterator[Any]:
    """Async iterator over items; exceptions in the list are raised in place."""
    for item in items:
        if isinstance(item, BaseException):
            raise item
        yield item


class StubCapability(BaseCapability):
    """Capability returning a fixed result, or raising ``fail``."""

    def __init__(
        self,
        name: str,
        text: str = "",
        data: dict[str, Any] | None = None,
        fail: BaseException | None = None,
        bucket: str = "default",
    ) -> None:
        self._name = name
        self._text = text
        self._data = data or {}
        self._fail = fail
        self._bucket = bucket
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Stub {self._name}"

    @property
    def bucket(self) -> str:
        return self._bucket

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        self.calls += 1
        if self._fail is not None:
            raise self._fail
        return build_result(self._name, text=self._text, data=self._data)


class StubStreamingCapability(StubCapability):
    """Streaming stub: opens an iterator over ``chunks``.

    ``open_errors`` are raised by successive ``open_stream`` calls before a
    stream is handed out. ``finalize`` parses the accumulated text.
    """

    def __init__(
        self,
        name: str = "draft",
        chunks: list[Any] | None = None,
        open_errors: list[BaseException] | None = None,
        finalize: Callable[[str], str] | None = None,
    ) -> None:
        super().__init__(name, bucket="draft")
        self._chunks = list(chunks or [])
        self._open_errors = list(open_errors or [])
        self._finalize = finalize or (lambda raw: raw)
        self.opens = 0

    async def open_stream(self, state: Any, llm: BaseLLMClient) -> AsyncIterator[str]:
        self.opens += 1
        if self._open_errors:
            raise self._open_errors.pop(0)
        return iterate(self._chunks)

    def finalize_stream(self, raw_text: str) -> CapabilityResult:
        return build_result(self.name, text=self._finalize(raw_text), data={"raw": raw_text})


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def lyrics_json(**overrides: Any) -> str:
    """A valid lyricist JSON payload."""
    payload = {
        "title": "Monsoon Letter",
        "language": "Telugu",
        "ragam": "Mohanam",
        "taalam": "Adi",
        "structure": "Pallavi-Charanam",
        "sections": [
            {"sectionName": "Pallavi", "lines": ["Vaana chinukula", "Nee peru"]},
            {"sectionName": "Charanam 1", "lines": ["Mabbula madhya", "Nee navvu"]},
        ],
    }
    payload.update(overrides)
    return json.dumps(payload)


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings with no delays, isolated from any local .env file."""
    return Settings(
        _env_file=None,
        inter_stage_delay_s=0,
        finalize_grace_s=0,
        retry_initial_delay_s=0.5,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_000_000.0)


@pytest.fixture
def limiter(settings: Settings, clock: ManualClock) -> TieredRateLimiter:
    return TieredRateLimiter.from_settings(settings, clock=clock)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def state() -> WorkflowState:
    return WorkflowState(request="A song about the first monsoon rain")


def stub_registry(**overrides: BaseCapability) -> CapabilityRegistry:
    """Registry with a succeeding stub for every stage, plus overrides."""
    defaults: dict[str, BaseCapability] = {
        "context_extraction": StubCapability("context_extraction", text=""),
        "emotion": StubCapability("emotion", data={
            "sentiment": "Positive",
            "navarasa": "Shringara",
            "intensity": 6,
            "suggested_keywords": ["rain"],
            "vibe_description": "Tender longing",
        }),
        "research": StubCapability("research", text="Monsoon imagery", bucket="research"),
        "draft": StubStreamingCapability(
            chunks=[lyrics_json()], finalize=parse_lyrics,
        ),
        "compliance": StubCapability("compliance", data={
            "originality_score": 95,
            "flagged_phrases": [],
            "similar_songs": [],
            "verdict": "Original",
        }),
        "review": StubCapability("review", text="Polished lyrics"),
        "format": StubCapability("format", data={
            "style_prompt": "Telugu melody, high fidelity",
            "formatted_lyrics": "[Chorus]\nVaana chinukula",
        }),
    }
    defaults.update(overrides)
    registry = CapabilityRegistry()
    for stage in STAGE_PLAN:
        registry.register(defaults[stage.id])
    return registry
