# src/core/models.py — v3
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Legacy UI value meaning "derive this from emotion analysis".
AUTO_OPTION = "Auto (AI Detect)"
CUSTOM_OPTION = "Custom"

NAVARASAS: tuple[str, ...] = (
    "Shringara",
    "Hasya",
    "Karuna",
    "Raudra",
    "Veera",
    "Bhayanaka",
    "Bibhatsa",
    "Adbhuta",
    "Shanta",
)

DEFAULT_HQ_TAGS = (
    "DTS, Dolby Atmos, Immersive Experience, High Fidelity, Spatial Audio, Masterpiece"
)


# === REQUEST ===


class LanguageProfile(BaseModel):
    """Primary language plus up to two languages to mix in."""

    primary: str = "Telugu"
    secondary: str = "Telugu"
    tertiary: str = "Telugu"

    @property
    def is_mixed(self) -> bool:
        return self.primary != self.secondary or self.primary != self.tertiary

    @property
    def label(self) -> str:
        return f"{self.primary} Mix" if self.is_mixed else self.primary


class Attachment(BaseModel):
    """Image or audio supplied alongside the text request."""

    data: bytes
    media_type: str


class GenerationSettings(BaseModel):
    """User generation settings.

    ``None`` in any of the auto-resolvable fields means Auto: the value is
    derived from emotion analysis once per run.
    """

    category: str | None = None
    ceremony: str | None = None

    theme: str | None = None
    custom_theme: str = ""
    mood: str | None = None
    custom_mood: str = ""
    style: str | None = None
    custom_style: str = ""
    complexity: str | None = None
    rhyme_scheme: str | None = None
    custom_rhyme_scheme: str = ""
    singer_config: str | None = None
    custom_singer_config: str = ""

    @field_validator(
        "theme", "mood", "style", "complexity", "rhyme_scheme", "singer_config",
        mode="before",
    )
    @classmethod
    def _normalize_auto(cls, v: Any) -> Any:
        if isinstance(v, str) and (v == AUTO_OPTION or not v.strip()):
            return None
        return v

    @property
    def auto_fields(self) -> list[str]:
        return [name for name in AUTO_FIELDS if getattr(self, name) is None]

    def effective(self, name: str, default: str) -> str:
        """Concrete value of a field, honouring the Custom overlay."""
        value = getattr(self, name)
        if value == CUSTOM_OPTION:
            custom = getattr(self, f"custom_{name}", "")
            return custom or default
        return value or default


AUTO_FIELDS: tuple[str, ...] = (
    "mood",
    "theme",
    "style",
    "singer_config",
    "complexity",
    "rhyme_scheme",
)


# === CAPABILITY OUTPUTS ===


class EmotionAnalysis(BaseModel):
    """Output of the emotion stage."""

    model_config = ConfigDict(populate_by_name=True)

    sentiment: str = "Neutral"
    navarasa: str = "Shanta"
    intensity: int = 5
    suggested_keywords: list[str] = Field(default_factory=list, alias="suggestedKeywords")
    vibe_description: str = Field(default="", alias="vibeDescription")

    @field_validator("intensity", mode="before")
    @classmethod
    def _clamp_intensity(cls, v: Any) -> int:
        return max(1, min(10, int(round(float(v)))))


DEFAULT_EMOTION = EmotionAnalysis(
    sentiment="Neutral",
    navarasa="Shanta",
    intensity=5,
    suggested_keywords=[],
    vibe_description="Balanced",
)


class ComplianceReport(BaseModel):
    """Originality assessment of a draft."""

    model_config = ConfigDict(populate_by_name=True)

    originality_score: int = Field(default=100, alias="originalityScore")
    flagged_phrases: list[str] = Field(default_factory=list, alias="flaggedPhrases")
    similar_songs: list[str] = Field(default_factory=list, alias="similarSongs")
    verdict: str = "Skipped"

    @field_validator("originality_score", mode="before")
    @classmethod
    def _clamp_score(cls, v: Any) -> int:
        return max(0, min(100, int(round(float(v)))))


class LyricSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_name: str = Field(default="Section", alias="sectionName")
    lines: list[str] = Field(default_factory=list)


class GeneratedLyrics(BaseModel):
    """Structured lyrics as returned by the lyricist and reviewer."""

    title: str = ""
    language: str = ""
    ragam: str | None = None
    taalam: str | None = None
    structure: str | None = None
    sections: list[LyricSection] = Field(default_factory=list)


class FormatterOutput(BaseModel):
    """Suno-ready style prompt plus meta-tagged lyrics."""

    model_config = ConfigDict(populate_by_name=True)

    style_prompt: str = Field(alias="stylePrompt")
    formatted_lyrics: str = Field(alias="formattedLyrics")


# === OUTWARD MESSAGES ===


class OutputMessage(BaseModel):
    """Chat message shown to the caller; immutable, replaced on every update."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Literal["model", "system"] = "model"
    content: str
    sender_agent: str = "LYRICIST"
    suno_formatted_content: str | None = None
    suno_style_prompt: str | None = None
    compliance_report: ComplianceReport | None = None


class ChatMessage(BaseModel):
    """One turn of a studio conversation, as kept by the caller."""

    role: Literal["user", "model", "system"]
    content: str
    has_lyrics: bool = False
