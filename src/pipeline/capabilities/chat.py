# src/pipeline/capabilities/chat.py — v1
"""Studio chat — conversational replies outside the song workflow.

The reply is conditioned on the last few turns of history, the sidebar
settings when the caller sends them, and the tone of the latest message.
Attachments go through the vision endpoint.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Sequence

from songsmith.core.models import ChatMessage, GenerationSettings, LanguageProfile
from songsmith.llm.models import ImageInput, Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import (
    CHAT_EMPATHETIC_NOTE,
    CHAT_ENERGETIC_NOTE,
    CHAT_POST_GENERATION_NOTE,
    CHAT_SETTINGS_NOTE,
    SYSTEM_CHAT,
)

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient

MAX_HISTORY_TURNS = 15
EMPTY_REPLY = "I'm listening... could you tell me more?"

_SOMBER_RE = re.compile(r"sad|pain|tears|breakup|lonely|loss", re.IGNORECASE)
_ENERGETIC_RE = re.compile(r"party|dance|beat|energy|fast|fun", re.IGNORECASE)


def trim_history(history: Sequence[ChatMessage]) -> list[Message]:
    """Last ``MAX_HISTORY_TURNS`` user/model turns as LLM messages."""
    turns = [m for m in history if m.role in ("user", "model")][-MAX_HISTORY_TURNS:]
    return [
        Message(role="user" if m.role == "user" else "assistant", content=m.content)
        for m in turns
    ]


def build_instruction(
    history: Sequence[ChatMessage],
    text: str,
    language: LanguageProfile | None = None,
    generation: GenerationSettings | None = None,
) -> str:
    """System instruction adapted to the conversation so far."""
    sections = [SYSTEM_CHAT]
    if language is not None and generation is not None:
        sections.append(CHAT_SETTINGS_NOTE.format(
            primary=language.primary,
            secondary=language.secondary,
            mood=generation.effective("mood", "Auto"),
            style=generation.effective("style", "Auto"),
            theme=generation.effective("theme", "Auto"),
            complexity=generation.effective("complexity", "Auto"),
        ))

    last_reply = next((m for m in reversed(history) if m.role == "model"), None)
    if last_reply is not None and last_reply.has_lyrics:
        sections.append(CHAT_POST_GENERATION_NOTE)

    if _SOMBER_RE.search(text):
        sections.append(CHAT_EMPATHETIC_NOTE)
    elif _ENERGETIC_RE.search(text):
        sections.append(CHAT_ENERGETIC_NOTE)
    return "\n\n".join(sections)


class ChatAssistant(BaseCapability):
    """Answer one chat turn. ``state`` is a ChatRequest."""

    @property
    def name(self) -> str:
        return "chat"

    @property
    def description(self) -> str:
        return "Converse with the user about the song they want"

    @property
    def bucket(self) -> str:
        return "chat"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        messages = trim_history(state.history)
        messages.append(Message(role="user", content=state.text))
        system = build_instruction(state.history, state.text, state.language, state.generation)

        if state.attachments:
            images = [
                ImageInput(data=a.data, media_type=a.media_type) for a in state.attachments
            ]
            response = await llm.complete_with_vision(messages, images, system=system)
        else:
            response = await llm.complete(messages, system=system, temperature=0.7)
        return build_result(self.name, text=response.content.strip() or EMPTY_REPLY, response=response)
