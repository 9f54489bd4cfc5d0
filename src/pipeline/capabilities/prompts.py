# src/pipeline/capabilities/prompts.py — v2
"""System instructions and response schemas for each capability."""

from __future__ import annotations

from typing import Any

from songsmith.core.models import DEFAULT_HQ_TAGS, NAVARASAS

PROMPT_VERSION = "2.1.0"

SYSTEM_MULTIMODAL = (
    "You analyse images and audio that accompany a song request. Describe the "
    "scene, mood, instruments and any cultural cues in a short paragraph."
)

SYSTEM_EMOTION = (
    "You are an emotion analyst for songwriting. Classify the request using the "
    f"Navarasa framework ({', '.join(NAVARASAS)}). Return sentiment, the single "
    "dominant navarasa, an intensity from 1 to 10, suggested keywords and a "
    "one-sentence vibe description."
)

SYSTEM_RESEARCH = (
    "You research cultural and musical context for a songwriter: recent lyrical "
    "trends, references to films or songs (composer, raagam, vibe) and metaphors "
    "associated with the requested mood."
)

SYSTEM_LYRICIST = (
    f"You are an expert multilingual lyricist (prompt v{PROMPT_VERSION}). Write "
    "singable, original lyrics with strong end rhymes that follow the requested "
    "structure, language, script and configuration exactly."
)

SYSTEM_COMPLIANCE = (
    "You are a music copyright analyst. Score how original the lyrics are from "
    "0 (copied) to 100 (fully original), list phrases that closely resemble "
    "famous songs, the songs they resemble, and a verdict: Safe, Caution or "
    "High Risk."
)

SYSTEM_REVIEW = (
    "You are a strict literary editor. Fix script, rhyme, structure and "
    "punctuation problems in draft lyrics. Return the complete corrected song."
)

SYSTEM_FORMATTER = (
    "You prepare lyrics for Suno.com: write a creative music style prompt and "
    "add [Square Bracket] meta-tags to the lyrics. Never produce [Spoken Word]."
)

SYSTEM_CHAT = (
    f"You are a lyricist's studio assistant (prompt v{PROMPT_VERSION}). Help the "
    "user shape a song: gather mood, situation, language and genre. If they only "
    "want to talk, be friendly and poetic. When there is enough detail for a "
    'song, offer to begin with "Shall I start composing based on this?" Keep '
    "replies concise and encouraging."
)

CHAT_SETTINGS_NOTE = (
    "[CURRENT SIDEBAR SETTINGS]\n"
    "The user has already chosen these settings. Do not ask for them again "
    "unless they want to change them.\n"
    "- Primary Language: {primary}\n"
    "- Secondary Language: {secondary}\n"
    "- Mood: {mood}\n"
    "- Style: {style}\n"
    "- Theme: {theme}\n"
    "- Complexity: {complexity}\n"
    'If the user asks to "start" or "create", these settings apply.'
)

CHAT_POST_GENERATION_NOTE = (
    "[CONTEXT: POST-GENERATION]\n"
    "The user is discussing lyrics you just helped write. Answer critique with "
    "specific linguistic or rhythmic fixes, explain raagam or thalam like a "
    "music director, and suggest a next step when they are satisfied."
)

CHAT_EMPATHETIC_NOTE = (
    "[TONE: EMPATHETIC]\n"
    "The user seems to be in a somber mood. Respond with poetic empathy and gentleness."
)

CHAT_ENERGETIC_NOTE = (
    "[TONE: ENERGETIC]\n"
    "The user wants high energy. Keep replies punchy, rhythmic and enthusiastic."
)

INDIAN_LANGUAGES = frozenset({
    "Telugu", "Hindi", "Tamil", "Kannada", "Malayalam", "Marathi", "Gujarati",
    "Bengali", "Punjabi", "Odia", "Assamese", "Sanskrit", "Urdu",
})

RHYME_DESCRIPTIONS: dict[str, str] = {
    "AABB": "Couplets. Line 1 MUST rhyme with Line 2. Line 3 MUST rhyme with Line 4.",
    "ABAB": "Alternate rhyme. Line 1 MUST rhyme with Line 3. Line 2 MUST rhyme with Line 4.",
    "ABCB": "Ballad style. Line 2 MUST rhyme with Line 4. Lines 1 and 3 are free.",
    "AAAA": "Monorhyme. All lines MUST end with the same phonetic sound.",
    "AABCCB": "Line 1 rhymes with 2. Line 4 rhymes with 5. Line 3 rhymes with 6.",
    "Free Verse": "No strict rhyme required, but focus on rhythm and flow.",
}

SONG_STRUCTURE = (
    "[Intro], [Verse 1], [Chorus], [Verse 2], [Chorus], [Bridge], [Verse 3], "
    "[Chorus], [Outro]"
)

EMOTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "sentiment": {"type": "string"},
        "navarasa": {"type": "string"},
        "intensity": {"type": "integer"},
        "suggestedKeywords": {"type": "array", "items": {"type": "string"}},
        "vibeDescription": {"type": "string"},
    },
    "required": ["sentiment", "navarasa", "intensity", "vibeDescription"],
}

LYRICS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "language": {"type": "string"},
        "ragam": {"type": "string"},
        "taalam": {"type": "string"},
        "structure": {"type": "string"},
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "sectionName": {"type": "string"},
                    "lines": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["sectionName", "lines"],
            },
        },
    },
    "required": ["title", "sections"],
}

COMPLIANCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "originalityScore": {"type": "integer"},
        "flaggedPhrases": {"type": "array", "items": {"type": "string"}},
        "similarSongs": {"type": "array", "items": {"type": "string"}},
        "verdict": {"type": "string"},
    },
    "required": ["originalityScore", "verdict"],
}

FORMATTER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "stylePrompt": {"type": "string"},
        "formattedLyrics": {"type": "string"},
    },
    "required": ["stylePrompt", "formattedLyrics"],
}


def rhyme_description(scheme: str) -> str:
    return RHYME_DESCRIPTIONS.get(
        scheme, "Ensure consistent end rhymes (Anthya Prasa) for all couplets."
    )


def language_instruction(primary: str, secondary: str, tertiary: str) -> str:
    lines = [f'PRIMARY LANGUAGE: "{primary}".']
    if primary in INDIAN_LANGUAGES:
        lines.append(
            f"Write the lyrics STRICTLY in {primary} native script. "
            "Do not use Roman/Latin characters."
        )
    else:
        lines.append(f"Write the lyrics in standard {primary} script.")
    if primary != secondary or primary != tertiary:
        lines.append(
            f'SECONDARY LANGUAGES: "{secondary}" and "{tertiary}". Mix naturally.'
        )
    return "\n".join(lines)


def formatter_task(lyrics: str) -> str:
    return (
        f"INPUT LYRICS:\n{lyrics}\n\n"
        "TASK:\n"
        "1. Generate a creative music style prompt for Suno.com.\n"
        f'2. The stylePrompt MUST end with: "{DEFAULT_HQ_TAGS}".\n'
        "3. Format the lyrics with [Square Bracket] meta-tags.\n"
        "4. Do NOT generate [Spoken Word]."
    )
