# src/llm/base_client.py — v2
"""Abstract LLM client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from songsmith.llm.models import ImageInput, LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
        use_search: bool = False,
    ) -> LLMResponse:
        """Text completion. ``response_schema`` requests JSON output."""

    @abstractmethod
    async def complete_with_vision(
        self,
        messages: list[Message],
        images: list[ImageInput],
        system: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Multimodal completion (images/audio + text)."""

    @abstractmethod
    async def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        response_schema: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        """Open a streaming completion and return an iterator of text deltas.

        Awaiting this method establishes the stream; iteration yields the
        deltas in arrival order.
        """

    @property
    @abstractmethod
    def supports_vision(self) -> bool:
        """Whether this provider/model supports image inputs."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""
