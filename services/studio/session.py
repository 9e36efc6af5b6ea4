"""Story studio: ties generation, illustration, history and exports together."""

from __future__ import annotations

import asyncio

from shared.config import ServiceConfig, config as default_config
from shared.enums import ILLUSTRATIONS_DISABLED, ExportFormat, FailureKind, NoticeLevel, StoryLanguage
from shared.media_utils import PLACEHOLDER_IMAGE_URL, is_placeholder_url
from shared.models import PipelineNotice, StoryRecord, StorySentence
from shared.text_utils import split_story_into_sentences
from shared.utils import setup_logging

from .backoff import BackoffPolicy
from .cancellation import CancellationToken
from .events import NoticeCallback, ProgressCallback, publish_notice, report_progress
from .exporters import (
    ExportArtifact,
    ExportSettings,
    FramePreparer,
    GifExporter,
    PdfExporter,
    VideoExporter,
)
from .history import InMemoryStoryHistory, StoryHistoryStore
from .illustrations import IllustrationFetcher
from .narration import NarrationSynchronizer
from .providers import IllustrationProvider, SpeechProvider, StoryProvider
from .recorder import VideoEncoder

logger = setup_logging("studio-session")


class ExportInProgressError(Exception):
    """Another export is still running."""


class FeatureDisabledError(Exception):
    """The requested feature is switched off in the pipeline configuration."""


class IllustrationsPendingError(Exception):
    """Some illustrations are still being generated."""


class StoryStudio:
    """
    The authoring session: one story at a time, one export at a time.

    Providers may be the HTTP ``StudioAPIClient`` or an in-process
    ``StoryAIService``; both expose the same three calls.
    """

    def __init__(
        self,
        story_provider: StoryProvider,
        illustration_provider: IllustrationProvider,
        speech_provider: SpeechProvider,
        *,
        history: StoryHistoryStore | None = None,
        settings: ExportSettings | None = None,
        policy: BackoffPolicy | None = None,
        video_encoder: VideoEncoder | None = None,
        notify: NoticeCallback | None = None,
        service_config: ServiceConfig | None = None,
    ) -> None:
        self.config = service_config or default_config
        self.story_provider = story_provider
        self.history = history or InMemoryStoryHistory()
        self.settings = settings or ExportSettings.from_config(self.config)
        self.notify = notify
        self.fetcher = IllustrationFetcher(
            illustration_provider,
            policy=policy or BackoffPolicy.from_config(self.config),
            notify=notify,
        )
        self.narrator = NarrationSynchronizer(
            speech_provider,
            silent_pause=self.settings.silent_pause,
            timeout_floor=self.settings.playback_timeout_floor,
            safety_margin=self.settings.playback_safety_margin,
        )
        self.video_encoder = video_encoder
        self.story: StoryRecord | None = None
        self._illustration_token: CancellationToken | None = None
        self._active_export: ExportFormat | None = None

    @property
    def sentences(self) -> list[StorySentence]:
        return self.story.sentences if self.story else []

    @property
    def export_in_progress(self) -> bool:
        return self._active_export is not None

    async def create_story(
        self,
        prompt: str,
        language: StoryLanguage | str = StoryLanguage.ENGLISH,
        *,
        progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> StoryRecord:
        """Write (or recall) a story, split it and illustrate every sentence."""
        language = StoryLanguage(language)
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Prompt must not be empty")

        report_progress(progress, 0.0, "Writing story...")
        # Store calls block (redis), so they run in a worker thread
        record = await asyncio.to_thread(self.history.find, prompt, language)
        if record is not None:
            logger.info("Reusing story %s from history", record.id)
        else:
            story_text = await self.story_provider.generate_story(prompt, language)
            if not story_text or not story_text.strip():
                raise ValueError("Story generation returned no text")
            record = StoryRecord(prompt=prompt, language=language, story=story_text.strip())
        if token is not None:
            token.raise_if_cancelled()

        texts = split_story_into_sentences(record.story)
        record.sentences = [
            StorySentence(id=f"sentence-{record.id}-{index}", text=text, language=language)
            for index, text in enumerate(texts)
        ]
        record = await self._remember(record)
        report_progress(progress, 0.1, f"Story ready: {len(texts)} sentences")

        await self.illustrate(progress=progress, token=token)
        return record

    async def _remember(self, record: StoryRecord) -> StoryRecord:
        await asyncio.to_thread(self.history.save, record)
        self.story = record
        return record

    async def illustrate(
        self,
        *,
        progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> list[StorySentence]:
        sentences = self.sentences
        if not self.config.feature_enabled("illustrations_enabled"):
            for sentence in sentences:
                sentence.mark_failed(ILLUSTRATIONS_DISABLED, FailureKind.PROVIDER_ERROR, image_url=PLACEHOLDER_IMAGE_URL)
            publish_notice(
                self.notify,
                PipelineNotice(level=NoticeLevel.INFO, title="Illustrations Disabled", message="Using placeholder images."),
                logger,
            )
            return sentences

        self._illustration_token = token or CancellationToken()

        def scaled(fraction: float, status: str) -> None:
            report_progress(progress, 0.1 + 0.9 * fraction, status)

        try:
            return await self.fetcher.illustrate_all(sentences, self._illustration_token, scaled)
        finally:
            self._illustration_token = None

    def stop_illustrations(self) -> None:
        if self._illustration_token is not None:
            self._illustration_token.cancel()

    async def export(
        self,
        export_format: ExportFormat | str,
        *,
        progress: ProgressCallback | None = None,
        prepare_frame: FramePreparer | None = None,
        token: CancellationToken | None = None,
    ) -> ExportArtifact:
        """Run one export; a second call while one is running is refused."""
        export_format = ExportFormat(export_format)
        if self._active_export is not None:
            raise ExportInProgressError(f"{self._active_export.value} export already in progress")
        if not self.config.feature_enabled(f"export_{export_format.value}"):
            raise FeatureDisabledError(f"{export_format.value.upper()} export is disabled")
        if not self.sentences:
            raise ValueError("No story to export")
        pending = [s for s in self.sentences if s.is_image_loading and not is_placeholder_url(s.image_url)]
        if pending:
            raise IllustrationsPendingError(
                f"{len(pending)} illustration(s) still generating. Please wait before exporting."
            )

        self._active_export = export_format
        try:
            if export_format == ExportFormat.PDF:
                exporter = PdfExporter(settings=self.settings, notify=self.notify)
                return await exporter.export(self.sentences, progress=progress, prepare_frame=prepare_frame)
            if export_format == ExportFormat.GIF:
                exporter = GifExporter(settings=self.settings, notify=self.notify)
                return await exporter.export(self.sentences, progress=progress, prepare_frame=prepare_frame)
            exporter = VideoExporter(
                self.narrator,
                encoder=self.video_encoder,
                settings=self.settings,
                notify=self.notify,
            )
            return await exporter.export(self.sentences, progress=progress, prepare_frame=prepare_frame, token=token)
        finally:
            self._active_export = None
