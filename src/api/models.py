# src/api/models.py — v3
"""API-level models: SongRequest, ChatRequest and SongResult."""

from __future__ import annotations

from pydantic import BaseModel, Field

from songsmith.core.errors import ErrorKind
from songsmith.core.models import (
    Attachment,
    ChatMessage,
    ComplianceReport,
    FormatterOutput,
    GenerationSettings,
    LanguageProfile,
    OutputMessage,
)
from songsmith.pipeline.progress import RunStatus


class SongRequest(BaseModel):
    """One song generation request from the caller."""

    text: str
    language: LanguageProfile = Field(default_factory=LanguageProfile)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    attachments: list[Attachment] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """One chat turn plus the conversation so far."""

    text: str
    history: list[ChatMessage] = Field(default_factory=list)
    language: LanguageProfile | None = None
    generation: GenerationSettings | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class SongResult(BaseModel):
    """Outcome of a run, returned whether it succeeded or failed."""

    run_id: str
    status: RunStatus
    lyrics: str = ""
    message: OutputMessage | None = None
    compliance: ComplianceReport | None = None
    formatter: FormatterOutput | None = None
    settings: GenerationSettings | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    errors: list[str] = Field(default_factory=list)
    llm_calls: int = 0
    elapsed_s: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.DONE
