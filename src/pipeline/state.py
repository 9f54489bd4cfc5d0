# src/pipeline/state.py — v2
"""Mutable workflow state flowing through all stages.

Accumulates each stage's output: processed context, emotion, resolved
settings, research, draft, polished lyrics, compliance and formatter output.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from songsmith.core.models import (
    DEFAULT_EMOTION,
    Attachment,
    ComplianceReport,
    EmotionAnalysis,
    FormatterOutput,
    GenerationSettings,
    LanguageProfile,
)
from songsmith.pipeline.capabilities.base_capability import CapabilityResult


class WorkflowState(BaseModel):
    """Mutable state accumulating results across all stages.

    Each capability reads from this state; the orchestrator writes each
    stage's result back before moving to the next stage.
    """

    # === IDENTITY ===
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # === INPUT ===
    request: str
    language: LanguageProfile = Field(default_factory=LanguageProfile)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    attachments: list[Attachment] = Field(default_factory=list)

    # === STAGE OUTPUTS ===
    processed_context: str = ""
    emotion: EmotionAnalysis = Field(default_factory=lambda: DEFAULT_EMOTION.model_copy())
    resolved: GenerationSettings | None = None
    research: str = ""
    draft: str = ""
    lyrics: str = ""
    compliance: ComplianceReport = Field(default_factory=ComplianceReport)
    formatter: FormatterOutput | None = None

    # === BOOKKEEPING ===
    stage_outputs: dict[str, CapabilityResult] = Field(default_factory=dict)
    completed_stages: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total_llm_calls: int = 0

    @property
    def context(self) -> str:
        """Best available description of what the user asked for."""
        return self.processed_context or self.request

    @property
    def settings(self) -> GenerationSettings:
        """Resolved settings once available, raw user settings before."""
        return self.resolved or self.generation

    def record_stage_output(self, stage: str, output: CapabilityResult) -> None:
        self.stage_outputs[stage] = output
        self.total_llm_calls += output.metadata.llm_calls
