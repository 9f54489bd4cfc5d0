# src/main.py — v3
"""CLI entry point — generate, chat and stages commands.

Usage:
    songsmith generate "<request>" [--language ...] [--mood ...] [--attach FILE]
    songsmith chat "<message>" [--attach FILE]
    songsmith stages
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from songsmith.version import __version__

if TYPE_CHECKING:
    from songsmith.config.settings import Settings
    from songsmith.core.models import Attachment

logger = logging.getLogger(__name__)

_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="songsmith",
        description=f"songsmith v{__version__} — staged song lyric generation",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- generate ---
    p_generate = subparsers.add_parser("generate", help="Generate a song")
    p_generate.add_argument("request", help="What the song should be about")
    p_generate.add_argument(
        "--language", default="Telugu",
        help="Primary language (default: Telugu)",
    )
    p_generate.add_argument("--secondary", default=None, help="Second language to mix in")
    p_generate.add_argument("--tertiary", default=None, help="Third language to mix in")
    p_generate.add_argument("--mood", default=None, help="Mood (default: auto)")
    p_generate.add_argument("--theme", default=None, help="Theme (default: auto)")
    p_generate.add_argument("--style", default=None, help="Style (default: auto)")
    p_generate.add_argument("--rhyme", default=None, help="Rhyme scheme (default: auto)")
    p_generate.add_argument("--singer", default=None, help="Singer configuration (default: auto)")
    p_generate.add_argument("--ceremony", default=None, help="Ceremony / scenario")
    p_generate.add_argument(
        "--attach", type=Path, action="append", default=[],
        help="Image or audio file to use as context (repeatable)",
    )
    p_generate.add_argument(
        "--json", action="store_true",
        help="Print the full result as JSON",
    )
    p_generate.set_defaults(func=_cmd_generate)

    # --- chat ---
    p_chat = subparsers.add_parser("chat", help="Talk to the studio assistant")
    p_chat.add_argument("message", help="Message for the assistant")
    p_chat.add_argument(
        "--attach", type=Path, action="append", default=[],
        help="Image or audio file to discuss (repeatable)",
    )
    p_chat.set_defaults(func=_cmd_chat)

    # --- stages ---
    p_stages = subparsers.add_parser("stages", help="Show the stage plan")
    p_stages.set_defaults(func=_cmd_stages)

    return parser


def _configure(args: argparse.Namespace) -> Settings:
    from songsmith.config.settings import load_settings
    from songsmith.logging.logger import setup_logging

    settings = load_settings()
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    return settings


def _read_attachments(paths: list[Path]) -> list[Attachment] | None:
    """Load attachment files; None when one is missing or unsupported."""
    from songsmith.core.models import Attachment

    attachments = []
    for path in paths:
        media_type = _MEDIA_TYPES.get(path.suffix.lower())
        if media_type is None or not path.is_file():
            logger.error("Unsupported or missing attachment: %s", path)
            return None
        attachments.append(Attachment(data=path.read_bytes(), media_type=media_type))
    return attachments


async def _cmd_generate(args: argparse.Namespace) -> int:
    """Run one generation and print progress and lyrics."""
    from songsmith.api.facade import SongStudio
    from songsmith.api.models import SongRequest
    from songsmith.core.models import GenerationSettings, LanguageProfile
    from songsmith.core.validation import InputValidationError
    from songsmith.pipeline.progress import StatusUpdate

    settings = _configure(args)

    attachments = _read_attachments(args.attach)
    if attachments is None:
        return 1

    request = SongRequest(
        text=args.request,
        language=LanguageProfile(
            primary=args.language,
            secondary=args.secondary or args.language,
            tertiary=args.tertiary or args.language,
        ),
        generation=GenerationSettings(
            mood=args.mood,
            theme=args.theme,
            style=args.style,
            rhyme_scheme=args.rhyme,
            singer_config=args.singer,
            ceremony=args.ceremony,
        ),
        attachments=attachments,
    )

    last_line = ""

    async def show_progress(event: object) -> None:
        nonlocal last_line
        if not isinstance(event, StatusUpdate) or not event.status.active:
            return
        line = f"[{event.status.current_agent_label}] {event.status.message}"
        if line != last_line:
            print(line, file=sys.stderr)
            last_line = line

    studio = SongStudio(settings=settings)
    try:
        result = await studio.generate(request, on_event=show_progress)
    except InputValidationError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(result.model_dump_json(indent=2))
    elif result.succeeded:
        print(f"\n{result.lyrics}")
        if result.formatter is not None:
            print(f"\nSuno style: {result.formatter.style_prompt}")
    else:
        print(result.error_message, file=sys.stderr)
    return 0 if result.succeeded else 1


async def _cmd_chat(args: argparse.Namespace) -> int:
    """Send one message to the studio assistant and print the reply."""
    from songsmith.api.facade import SongStudio
    from songsmith.core.errors import ClassifiedError, user_message
    from songsmith.core.validation import InputValidationError

    settings = _configure(args)
    attachments = _read_attachments(args.attach)
    if attachments is None:
        return 1

    studio = SongStudio(settings=settings)
    try:
        reply = await studio.chat(args.message, attachments=attachments)
    except InputValidationError as exc:
        print(f"Invalid message: {exc}", file=sys.stderr)
        return 1
    except ClassifiedError as exc:
        print(user_message(exc), file=sys.stderr)
        return 1
    print(reply.content)
    return 0


async def _cmd_stages(args: argparse.Namespace) -> int:
    """Print the declared stage plan."""
    from songsmith.config.stages import FINAL_STEP_LABEL, STAGE_PLAN

    print("Stage plan:")
    for index, stage in enumerate(STAGE_PLAN, start=1):
        flags = stage.policy.value + (", streaming" if stage.streaming else "")
        print(f"  {index}. {stage.id:<20s} {stage.label:<40s} [{flags}]")
    print(f"  {len(STAGE_PLAN) + 1}. {'final':<20s} {FINAL_STEP_LABEL}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
