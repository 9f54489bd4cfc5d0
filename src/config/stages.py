# src/config/stages.py — v1
"""Declarative stage plan for the generation workflow.

The orchestrator walks ``STAGE_PLAN`` in order and consults each stage's
declared policy instead of deciding fatal vs. best-effort at call sites.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StagePolicy(str, Enum):
    MANDATORY = "mandatory"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class StageSpec:
    """One step of the fixed pipeline."""

    id: str
    label: str
    agent: str
    policy: StagePolicy
    status_message: str
    streaming: bool = False

    @property
    def mandatory(self) -> bool:
        return self.policy is StagePolicy.MANDATORY


STAGE_PLAN: tuple[StageSpec, ...] = (
    StageSpec(
        "context_extraction", "Multimodal: Processing Input", "MULTIMODAL",
        StagePolicy.BEST_EFFORT, "Processing inputs...",
    ),
    StageSpec(
        "emotion", "Emotion: Analyzing Vibe", "EMOTION",
        StagePolicy.BEST_EFFORT, "Feeling the vibe...",
    ),
    StageSpec(
        "research", "Research: Context & Culture", "RESEARCH",
        StagePolicy.BEST_EFFORT, "Analyzing context ({mood})...",
    ),
    StageSpec(
        "draft", "Lyricist: Composing in {language}", "LYRICIST",
        StagePolicy.MANDATORY, "Composing ({style})...", streaming=True,
    ),
    StageSpec(
        "compliance", "Compliance: Plagiarism Check", "COMPLIANCE",
        StagePolicy.BEST_EFFORT, "Checking originality...",
    ),
    StageSpec(
        "review", "Review: Polishing", "REVIEW",
        StagePolicy.BEST_EFFORT, "Polishing...",
    ),
    StageSpec(
        "format", "Formatter: Suno Style", "FORMATTER",
        StagePolicy.BEST_EFFORT, "Formatting for Suno.com...",
    ),
)

FINAL_STEP_ID = "final"
FINAL_STEP_LABEL = "Orchestrator: Finalizing"

# Capability groups for LLM routing (per-group model overrides).
GROUP_CAPABILITY_MAP: dict[str, list[str]] = {
    "analysis": ["context_extraction", "emotion", "research"],
    "composition": ["draft", "review"],
    "quality": ["compliance", "format"],
}


def get_stage(stage_id: str) -> StageSpec:
    for stage in STAGE_PLAN:
        if stage.id == stage_id:
            return stage
    raise KeyError(f"Unknown stage: {stage_id!r}")


# Fully qualified class paths for dynamic import by pipeline/registry.py.
CAPABILITY_REGISTRY: list[str] = [
    "songsmith.pipeline.capabilities.context_extractor.ContextExtractor",
    "songsmith.pipeline.capabilities.emotion_analyzer.EmotionAnalyzer",
    "songsmith.pipeline.capabilities.researcher.Researcher",
    "songsmith.pipeline.capabilities.lyricist.Lyricist",
    "songsmith.pipeline.capabilities.compliance_checker.ComplianceChecker",
    "songsmith.pipeline.capabilities.reviewer.Reviewer",
    "songsmith.pipeline.capabilities.formatter.Formatter",
]
