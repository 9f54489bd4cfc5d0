# src/pipeline/capabilities/reviewer.py — v1
"""Review — repair script, rhyme, structure and punctuation of the draft."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.core.lyrics import parse_lyrics
from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import (
    LYRICS_SCHEMA,
    SYSTEM_REVIEW,
    rhyme_description,
)

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


def build_review_prompt(state: Any) -> str:
    settings = state.settings
    complexity = settings.complexity or "Poetic"
    rhyme = settings.effective("rhyme_scheme", "AABB")
    return "\n".join([
        f"INPUT LYRICS (DRAFT):\n{state.draft}",
        f"ORIGINAL CONTEXT:\n{state.context}",
        f"TARGET LANGUAGE: {state.language.primary}",
        f"REQUESTED COMPLEXITY: {complexity}",
        f"REQUESTED RHYME SCHEME: {rhyme} ({rhyme_description(rhyme)})",
        "TASK:",
        "1. Convert any Roman-script transliteration to native script.",
        "2. Rewrite lines whose end rhymes do not match the target scheme.",
        "3. Use standard English section tags: [Chorus], [Verse 1], [Bridge].",
        "4. Simple complexity: remove archaic words. Poetic: keep metaphors logical.",
        "5. Add expressive punctuation where lines end bare.",
        "6. Remove [Spoken Word], [Dialogue] or [Narration] sections.",
        "Return the COMPLETE, CORRECTED version in JSON.",
    ])


class Reviewer(BaseCapability):
    """Polish the draft into the final lyrics."""

    @property
    def name(self) -> str:
        return "review"

    @property
    def description(self) -> str:
        return "Polish the draft lyrics"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        response = await llm.complete(
            [Message(role="user", content=build_review_prompt(state))],
            system=SYSTEM_REVIEW,
            temperature=0.3,
            response_schema=LYRICS_SCHEMA,
        )
        return build_result(self.name, text=parse_lyrics(response.content), response=response)
