# src/llm/adapters/google_adapter.py — v3
"""Google Gemini adapter implementing BaseLLMClient.

Uses google-generativeai SDK. Supports multimodal input (image/audio inline
data), JSON responses with a schema, search grounding and streaming.
"""

from __future__ import annotations

import time
from typing import Any, AsyncIterator

from songsmith.llm.base_client import BaseLLMClient
from songsmith.llm.models import ImageInput, LLMResponse, Message

_SEARCH_TOOL = "google_search_retrieval"


def _to_contents(messages: list[Message]) -> list[dict[str, Any]]:
    contents = []
    for m in messages:
        role = "model" if m.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": m.content}]})
    return contents


def _vision_contents(messages: list[Message], images: list[ImageInput]) -> list[dict[str, Any]]:
    """Conversation contents with inline media attached to the final user turn."""
    contents = _to_contents(messages)
    media = [
        {"inline_data": {"mime_type": img.media_type, "data": img.data}} for img in images
    ]
    if contents and contents[-1]["role"] == "user":
        contents[-1]["parts"].extend(media)
    else:
        contents.append({"role": "user", "parts": media})
    return contents


def _grounding_sources(resp: Any) -> list[str]:
    """Extract '- title (uri)' lines from search grounding metadata."""
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        title = getattr(web, "title", None)
        if title:
            sources.append(f"- {title} ({getattr(web, 'uri', '')})")
    return sources


def _usage(resp: Any) -> tuple[int, int]:
    usage = getattr(resp, "usage_metadata", None)
    if not usage:
        return 0, 0
    return (
        getattr(usage, "prompt_token_count", 0) or 0,
        getattr(usage, "candidates_token_count", 0) or 0,
    )


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    def __init__(self, model: str = "gemini-2.5-pro", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    def _model_for(self, system: str | None) -> Any:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        return genai.GenerativeModel(self._model, system_instruction=system)

    @staticmethod
    def _generation_config(
        max_tokens: int,
        temperature: float,
        response_schema: dict[str, Any] | None,
    ) -> dict[str, Any]:
        gen_config: dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_schema is not None:
            gen_config["response_mime_type"] = "application/json"
            gen_config["response_schema"] = response_schema
        return gen_config

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
        use_search: bool = False,
    ) -> LLMResponse:
        model = self._model_for(system)
        extra: dict[str, Any] = {"tools": _SEARCH_TOOL} if use_search else {}

        t0 = time.monotonic()
        resp = await model.generate_content_async(
            _to_contents(messages),
            generation_config=self._generation_config(max_tokens, temperature, response_schema),
            **extra,
        )
        latency = int((time.monotonic() - t0) * 1000)

        input_tokens, output_tokens = _usage(resp)
        return LLMResponse(
            content=resp.text or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._model,
            provider="google",
            latency_ms=latency,
            sources=_grounding_sources(resp) if use_search else [],
            raw_response=resp,
        )

    async def complete_with_vision(
        self,
        messages: list[Message],
        images: list[ImageInput],
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        model = self._model_for(system)

        t0 = time.monotonic()
        resp = await model.generate_content_async(
            _vision_contents(messages, images),
            generation_config={"max_output_tokens": max_tokens},
        )
        latency = int((time.monotonic() - t0) * 1000)

        input_tokens, output_tokens = _usage(resp)
        return LLMResponse(
            content=resp.text or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._model,
            provider="google",
            latency_ms=latency,
            raw_response=resp,
        )

    async def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        model = self._model_for(system)
        resp = await model.generate_content_async(
            _to_contents(messages),
            generation_config=self._generation_config(max_tokens, temperature, response_schema),
            stream=True,
        )
        return self._iter_text(resp)

    @staticmethod
    async def _iter_text(resp: Any) -> AsyncIterator[str]:
        async for chunk in resp:
            text = chunk.text
            if text:
                yield text

    @property
    def supports_vision(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "google"
