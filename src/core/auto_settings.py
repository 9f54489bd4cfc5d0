# src/core/auto_settings.py — v1
"""Derive unset generation settings from the emotion analysis.

Runs once per run, between the emotion stage and every later stage.
Explicit user values are never overwritten.
"""

from __future__ import annotations

import logging

from songsmith.core.models import EmotionAnalysis, GenerationSettings

logger = logging.getLogger(__name__)

_FAST_RASAS = frozenset({"Raudra", "Veera", "Hasya"})
_MELODIC_RASAS = frozenset({"Shringara", "Karuna", "Shanta"})

SAFE_DEFAULTS: dict[str, str] = {
    "mood": "Happy",
    "theme": "General",
    "style": "Melody",
    "complexity": "Simple",
    "rhyme_scheme": "AABB",
}


def _style_for(emotion: EmotionAnalysis) -> str:
    if emotion.intensity >= 8 or emotion.navarasa in _FAST_RASAS:
        return "Fast Beat/Mass"
    if emotion.navarasa in _MELODIC_RASAS:
        return "Melody"
    return "Folk"


def _singer_for(emotion: EmotionAnalysis) -> str:
    if "Shringara" in emotion.navarasa:
        return "Duet (Male + Female)"
    if "Hasya" in emotion.navarasa:
        return "Group Chorus"
    return "Male Solo"


def _derive(emotion: EmotionAnalysis) -> dict[str, str]:
    return {
        "mood": f"{emotion.navarasa} ({emotion.sentiment})",
        "theme": emotion.vibe_description or "General",
        "style": _style_for(emotion),
        "singer_config": _singer_for(emotion),
        "complexity": "Simple" if emotion.intensity > 7 else "Poetic",
        "rhyme_scheme": "AABB",
    }


def resolve(settings: GenerationSettings, emotion: EmotionAnalysis) -> GenerationSettings:
    """Return a copy of ``settings`` with every Auto field filled in.

    Never raises: if derivation fails, Auto fields are filled from
    ``SAFE_DEFAULTS`` instead.
    """
    pending = settings.auto_fields
    if not pending:
        return settings.model_copy()

    try:
        derived = _derive(emotion)
    except Exception as exc:
        logger.warning("Auto-settings resolution failed, using defaults: %s", exc)
        derived = SAFE_DEFAULTS

    update = {name: derived[name] for name in pending if name in derived}
    resolved = settings.model_copy(update=update)
    logger.debug("Resolved auto settings: %s", update)
    return resolved
