# src/pipeline/capabilities/context_extractor.py — v1
"""Context extraction — fold image/audio attachments into the request text.

Without attachments the request passes through unchanged and no external
call is made.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.llm.models import ImageInput, Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import SYSTEM_MULTIMODAL

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


class ContextExtractor(BaseCapability):
    """Describe attachments and merge the description into the request."""

    @property
    def name(self) -> str:
        return "context_extraction"

    @property
    def description(self) -> str:
        return "Merge image/audio context into the text request"

    def needs_call(self, state: Any) -> bool:
        return bool(state.attachments)

    def passthrough(self, state: Any) -> CapabilityResult:
        return build_result(self.name, text=state.request, llm_calls=0)

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        images = [
            ImageInput(data=a.data, media_type=a.media_type) for a in state.attachments
        ]
        response = await llm.complete_with_vision(
            [Message(role="user", content=f"User Text Context: {state.request}")],
            images,
            system=SYSTEM_MULTIMODAL,
        )
        merged = (
            f"[Visual/Audio Context: {response.content}] \n\n"
            f" User Request: {state.request}"
        )
        return build_result(self.name, text=merged, response=response)
