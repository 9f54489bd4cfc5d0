# src/pipeline/capabilities/base_capability.py — v1
"""Uniform contract every pipeline stage calls against.

A capability turns the current workflow state into one external generation
call. Non-streaming capabilities implement ``invoke``; streaming ones also
implement ``open_stream`` (deltas) and ``finalize_stream`` (structured
parse of the accumulated text).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient
    from songsmith.llm.models import LLMResponse


class CapabilityMetadata(BaseModel):
    """Metadata about a capability call, attached to every result."""

    capability: str
    llm_calls: int = 1
    latency_ms: int = 0
    tokens_used: int = 0


class CapabilityResult(BaseModel):
    """Standard return type for every capability call."""

    text: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: CapabilityMetadata
    warnings: list[str] = Field(default_factory=list)


def build_result(
    capability: str,
    text: str = "",
    data: dict[str, Any] | None = None,
    response: LLMResponse | None = None,
    llm_calls: int = 1,
) -> CapabilityResult:
    """Wrap a capability's output with call metadata."""
    metadata = CapabilityMetadata(capability=capability, llm_calls=llm_calls)
    if response is not None:
        metadata.latency_ms = response.latency_ms
        metadata.tokens_used = response.input_tokens + response.output_tokens
    return CapabilityResult(text=text, data=data or {}, metadata=metadata)


class BaseCapability(ABC):
    """Standard interface for all generation capabilities."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Capability identifier, also used for model routing."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this capability does."""

    @property
    def bucket(self) -> str:
        """Rate-limit bucket charged for each attempt."""
        return "default"

    def needs_call(self, state: Any) -> bool:
        """False when the stage can pass through without an external call."""
        return True

    def passthrough(self, state: Any) -> CapabilityResult:
        """Result used when ``needs_call`` is False."""
        return build_result(self.name, llm_calls=0)

    @abstractmethod
    async def invoke(self, state: Any, llm: BaseLLMClient) -> CapabilityResult:
        """Perform one generation call.

        Args:
            state: WorkflowState (typed as Any to avoid a circular import).
            llm: Client resolved from this capability's model hint.
        """

    async def open_stream(self, state: Any, llm: BaseLLMClient) -> AsyncIterator[str]:
        """Establish a streaming call and return an iterator of text deltas."""
        raise NotImplementedError(f"Capability '{self.name}' does not stream")

    def finalize_stream(self, raw_text: str) -> CapabilityResult:
        """Turn the accumulated streamed text into a structured result.

        Raises:
            ClassifiedError: PARSING kind when the text cannot be parsed.
        """
        raise NotImplementedError(f"Capability '{self.name}' does not stream")
