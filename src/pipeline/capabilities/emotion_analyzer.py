# src/pipeline/capabilities/emotion_analyzer.py — v1
"""Emotion analysis — sentiment, navarasa, intensity and vibe of a request."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.lyrics import clean_and_parse_json
from songsmith.core.models import EmotionAnalysis
from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import EMOTION_SCHEMA, SYSTEM_EMOTION

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


class EmotionAnalyzer(BaseCapability):
    """Classify the emotional vibe of the request."""

    @property
    def name(self) -> str:
        return "emotion"

    @property
    def description(self) -> str:
        return "Classify sentiment, navarasa and intensity of the request"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        response = await llm.complete(
            [Message(role="user", content=state.context)],
            system=SYSTEM_EMOTION,
            temperature=0.6,
            response_schema=EMOTION_SCHEMA,
        )
        data = clean_and_parse_json(response.content)
        try:
            emotion = EmotionAnalysis.model_validate(data)
        except ValueError as exc:
            raise ClassifiedError(
                ErrorKind.PARSING, f"Emotion JSON did not match the schema: {exc}", cause=exc,
            ) from exc
        return build_result(
            self.name,
            text=emotion.vibe_description,
            data=emotion.model_dump(),
            response=response,
        )
