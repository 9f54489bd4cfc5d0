# src/pipeline/capabilities/formatter.py — v1
"""Formatter — Suno.com style prompt and meta-tagged lyrics."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.lyrics import clean_and_parse_json
from songsmith.core.models import DEFAULT_HQ_TAGS, FormatterOutput
from songsmith.llm.models import Message
from songsmith.pipeline.capabilities.base_capability import (
    BaseCapability,
    CapabilityResult,
    build_result,
)
from songsmith.pipeline.capabilities.prompts import (
    FORMATTER_SCHEMA,
    SYSTEM_FORMATTER,
    formatter_task,
)

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient


def ensure_hq_tags(style_prompt: str) -> str:
    """The style prompt must always end with the HQ tag suffix."""
    stripped = style_prompt.strip().rstrip(",. ")
    if stripped.endswith(DEFAULT_HQ_TAGS):
        return stripped
    return f"{stripped}, {DEFAULT_HQ_TAGS}" if stripped else DEFAULT_HQ_TAGS


class Formatter(BaseCapability):
    """Prepare the final lyrics for Suno.com."""

    @property
    def name(self) -> str:
        return "format"

    @property
    def description(self) -> str:
        return "Produce a Suno style prompt and tagged lyrics"

    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        response = await llm.complete(
            [Message(role="user", content=formatter_task(state.lyrics or state.draft))],
            system=SYSTEM_FORMATTER,
            temperature=0.75,
            response_schema=FORMATTER_SCHEMA,
        )
        data = clean_and_parse_json(response.content)
        try:
            output = FormatterOutput.model_validate(data)
        except ValueError as exc:
            raise ClassifiedError(
                ErrorKind.PARSING, f"Formatter JSON did not match the schema: {exc}", cause=exc,
            ) from exc
        output = output.model_copy(update={"style_prompt": ensure_hq_tags(output.style_prompt)})
        return build_result(
            self.name,
            text=output.formatted_lyrics,
            data=output.model_dump(),
            response=response,
        )
