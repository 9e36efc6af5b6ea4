"""Command line entry point: write a story and export it."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from shared.enums import ExportFormat, StoryLanguage
from shared.models import PipelineNotice
from shared.logging_utils import set_pipeline_log_level
from shared.utils import config, ensure_directory, setup_logging, slugify

from .exporters import ExportError
from .history import create_history_store
from .providers import StudioAPIClient
from .recorder import ExportCapabilityError, RecorderError
from .session import FeatureDisabledError, StoryStudio

logger = setup_logging("studio-cli")

PIPELINE_LOGGERS = [
    "studio-cli",
    "studio-session",
    "studio-illustrations",
    "studio-narration",
    "studio-compositor",
    "studio-recorder",
    "studio-exporters",
    "studio-providers",
    "story-service",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Write an illustrated tiny-cat story and export it.")
    parser.add_argument("prompt", help="Story idea")
    parser.add_argument(
        "--language",
        choices=[language.value for language in StoryLanguage],
        default=StoryLanguage.ENGLISH.value,
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=[export_format.value for export_format in ExportFormat],
        help="Export format (repeatable, default: pdf)",
    )
    parser.add_argument("--output-dir", default=config.get("media_root", "./media"))
    parser.add_argument(
        "--api-url",
        default=None,
        help="Story service URL; without it (or --remote) the service runs in-process",
    )
    parser.add_argument("--remote", action="store_true", help="Use the story service at STUDIO_API_URL")
    parser.add_argument("--verbose", action="store_true", help="Debug logging for every pipeline step")
    parser.add_argument("--history", choices=["memory", "redis"], default=config.get("history_backend", "memory"))
    return parser


def _print_notice(notice: PipelineNotice) -> None:
    print(f"[{notice.level.value.upper()}] {notice.title}: {notice.message}")


def _print_progress(fraction: float, status: str) -> None:
    print(f"[{fraction * 100:5.1f}%] {status}")


async def run(args: argparse.Namespace) -> list[Path]:
    history = create_history_store(args.history, config.get("redis_url"))
    formats = [ExportFormat(value) for value in (args.formats or [ExportFormat.PDF.value])]

    api_url = args.api_url or (config.get("studio_api_url") if args.remote else None)
    if api_url:
        client = StudioAPIClient(api_url, timeout=int(config.get("request_timeout", 120)))
        status = await client.health()
        logger.info("Story service at %s is %s (provider: %s)", api_url, status.get("status"), status.get("provider"))
        async with client:
            return await _author(args, client, client, client, history, formats)

    from services.story_service.service import StoryAIService  # in-process mode only

    service = StoryAIService()
    return await _author(args, service, service, service, history, formats)


async def _author(args, story_provider, illustration_provider, speech_provider, history, formats) -> list[Path]:
    studio = StoryStudio(
        story_provider,
        illustration_provider,
        speech_provider,
        history=history,
        notify=_print_notice,
    )
    record = await studio.create_story(args.prompt, args.language, progress=_print_progress)

    output_dir = Path(args.output_dir)
    ensure_directory(str(output_dir))
    written: list[Path] = []
    for export_format in formats:
        try:
            artifact = await studio.export(export_format, progress=_print_progress)
        except (ExportError, ExportCapabilityError, RecorderError, FeatureDisabledError) as exc:
            logger.error("%s export failed: %s", export_format.value, exc)
            continue
        path = output_dir / f"{slugify(record.prompt)}-{record.id}.{artifact.extension}"
        path.write_bytes(artifact.data)
        logger.info("Wrote %s (%d bytes)", path, len(artifact.data))
        written.append(path)
    return written


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_pipeline_log_level("DEBUG", PIPELINE_LOGGERS)
    written = asyncio.run(run(args))
    for path in written:
        print(path)
    return 0 if written else 1


if __name__ == "__main__":
    raise SystemExit(main())
