# src/pipeline/capabilities/lyricist.py — v1
"""Lyricist — streams the draft song as structured JSON.

The model streams JSON text; the accumulated text is parsed into display
lyrics once the stream completes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncIterator

from songsmith.core.lyrics import parse_lyrics
from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import (
    LYRICS_SCHEMA,
    SONG_STRUCTURE,
    SYSTEM_LYRICIST,
    language_instruction,
    rhyme_description,
)

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient

TEMPERATURE = 0.85


def build_lyricist_prompt(state: Any) -> str:
    """Assemble the drafting prompt from the resolved settings."""
    settings = state.settings
    language = state.language
    rhyme = settings.effective("rhyme_scheme", "AABB")
    config = ", ".join([
        f"Theme: {settings.effective('theme', 'Love')}",
        f"Mood: {settings.effective('mood', 'Romantic')}",
        f"Style: {settings.effective('style', 'Melody')}",
        f"Complexity: {settings.complexity or 'Poetic'}",
        f"Singer: {settings.effective('singer_config', 'Male Solo')}",
        f"Rhyme: {rhyme}",
    ])
    parts = [
        f'USER REQUEST: "{state.context}"',
        language_instruction(language.primary, language.secondary, language.tertiary),
        f"STRICT CONFIGURATION: {config}",
    ]
    if settings.ceremony and settings.ceremony != "None":
        parts.append(
            f"SCENARIO: {settings.ceremony}"
            + (f" ({settings.category})" if settings.category else "")
            + "\nReference specific emotions and metaphors from this scenario."
        )
    parts.extend([
        f"RHYME INSTRUCTION: {rhyme_description(rhyme)}",
        f"EMOTIONAL ANALYSIS: {state.emotion.navarasa}, "
        f"Intensity: {state.emotion.intensity}/10",
        f"RESEARCH CONTEXT: {state.research}",
        f"TASK: Compose a high-fidelity song with {SONG_STRUCTURE}.",
        "Output strictly in JSON format matching the schema.",
    ])
    return "\n".join(parts)


class Lyricist(BaseCapability):
    """Compose the draft lyrics."""

    @property
    def name(self) -> str:
        return "draft"

    @property
    def description(self) -> str:
        return "Compose the song draft, streaming partial text"

    @property
    def bucket(self) -> str:
        return "draft"

    async def open_stream(self, state: Any, llm: BaseLLMClient) -> AsyncIterator[str]:
        return await llm.stream(
            [Message(role="user", content=build_lyricist_prompt(state))],
            system=SYSTEM_LYRICIST,
            temperature=TEMPERATURE,
            response_schema=LYRICS_SCHEMA,
        )

    def finalize_stream(self, raw_text: str) -> CapabilityResult:
        return build_result(self.name, text=parse_lyrics(raw_text), data={"raw": raw_text})

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        response = await llm.complete(
            [Message(role="user", content=build_lyricist_prompt(state))],
            system=SYSTEM_LYRICIST,
            temperature=TEMPERATURE,
            response_schema=LYRICS_SCHEMA,
        )
        return build_result(
            self.name,
            text=parse_lyrics(response.content),
            data={"raw": response.content},
            response=response,
        )
