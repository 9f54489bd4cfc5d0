# src/core/lyrics.py — v1
"""JSON recovery for model responses and plain-text lyric rendering."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from songsmith.core.errors import ClassifiedError, ErrorKind
from songsmith.core.models import GeneratedLyrics

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?")
_HEADER_STRIP_RE = re.compile(r"[\[\](){}]")

# Traditional section names mapped onto tags understood downstream.
_SECTION_ALIASES: tuple[tuple[str, str], ...] = (
    ("anupallavi", "Verse"),
    ("pallavi", "Chorus"),
    ("charanam", "Verse"),
    ("mukhda", "Chorus"),
    ("antara", "Verse"),
)


def clean_and_parse_json(text: str) -> dict[str, Any]:
    """Parse a JSON object out of a model response.

    Strips Markdown code fences and any preamble or postscript around the
    outermost braces, and repairs a missing closing brace.

    Raises:
        ClassifiedError: PARSING kind when nothing parseable is found.
    """
    if not text or not text.strip():
        raise ClassifiedError(ErrorKind.PARSING, "The AI returned an empty response.")

    clean = _FENCE_RE.sub("", text) if "```" in text else text

    first = clean.find("{")
    last = clean.rfind("}")
    if first != -1 and last > first:
        clean = clean[first:last + 1]
    elif first != -1:
        clean = clean[first:] + "}"

    try:
        data = json.loads(clean)
    except json.JSONDecodeError as exc:
        logger.debug("JSON parse failed on: %.200s", clean)
        raise ClassifiedError(
            ErrorKind.PARSING,
            "The AI response could not be understood (JSON parse error).",
            cause=exc,
        ) from exc

    if not isinstance(data, dict):
        raise ClassifiedError(
            ErrorKind.PARSING, "The AI response was not a JSON object."
        )
    return data


def _normalize_header(name: str) -> str:
    header = _HEADER_STRIP_RE.sub("", name.strip()) or "Section"
    lowered = header.lower()
    for needle, replacement in _SECTION_ALIASES:
        if needle in lowered:
            return f"[{replacement}]"
    return f"[{header}]"


def format_lyrics_for_display(lyrics: GeneratedLyrics) -> str:
    """Render structured lyrics as tagged plain text.

    Raises:
        ClassifiedError: PARSING kind when the lyrics have no sections.
    """
    if not lyrics.sections:
        raise ClassifiedError(ErrorKind.PARSING, "Invalid lyrics format received.")

    lines: list[str] = []
    for label, value in (
        ("Title", lyrics.title),
        ("Language", lyrics.language),
        ("Raagam", lyrics.ragam),
        ("Taalam", lyrics.taalam),
        ("Structure", lyrics.structure),
    ):
        if value:
            lines.append(f"{label}: {value}")
    lines.append("")

    for section in lyrics.sections:
        lines.append(_normalize_header(section.section_name))
        lines.extend(section.lines)
        lines.append("")

    return "\n".join(lines)


def parse_lyrics(text: str) -> str:
    """Parse a lyrics JSON response straight into display text."""
    data = clean_and_parse_json(text)
    try:
        lyrics = GeneratedLyrics.model_validate(data)
    except ValueError as exc:
        raise ClassifiedError(
            ErrorKind.PARSING, f"Lyrics JSON did not match the schema: {exc}", cause=exc,
        ) from exc
    return format_lyrics_for_display(lyrics)
