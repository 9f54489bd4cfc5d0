# src/pipeline/capabilities/researcher.py — v1
"""Research — cultural and musical context, grounded with web search."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import SYSTEM_RESEARCH

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


def _research_prompt(topic: str, mood: str) -> str:
    return (
        f"TOPIC: {topic}\nMOOD: {mood}\n\n"
        "Find:\n"
        "1. Recent lyrical trends or slang relevant to this topic.\n"
        "2. If the request references a specific movie or song style, its "
        "composer, raagam and vibe.\n"
        "3. Cultural metaphors associated with this mood."
    )


class Researcher(BaseCapability):
    """Collect context the lyricist can draw on."""

    @property
    def name(self) -> str:
        return "research"

    @property
    def description(self) -> str:
        return "Research cultural and musical context for the song"

    @property
    def bucket(self) -> str:
        return "research"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        settings = state.settings
        mood = f"{settings.effective('mood', 'Romantic')} - {settings.effective('theme', 'Love')}"
        response = await llm.complete(
            [Message(role="user", content=_research_prompt(state.context, mood))],
            system=SYSTEM_RESEARCH,
            temperature=0.7,
            use_search=True,
        )
        text = response.content
        if response.sources:
            text += "\n\n[RESEARCH SOURCES]:\n" + "\n".join(response.sources)
        return build_result(
            self.name, text=text, data={"sources": response.sources}, response=response,
        )
