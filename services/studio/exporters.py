"""PDF, GIF and narrated video exports of an illustrated story."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Awaitable, Callable

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from shared.config import ServiceConfig
from shared.enums import FailureKind, NoticeLevel
from shared.media_utils import is_placeholder_url
from shared.models import PipelineNotice, StorySentence
from shared.text_utils import language_tag, preview
from shared.utils import setup_logging

from .cancellation import CancellationToken
from .compositor import FrameCompositor, RenderableSurface, SentenceCardSurface, letterbox
from .events import NoticeCallback, ProgressCallback, publish_notice, report_progress
from .narration import AudioGraph, NarrationSynchronizer
from .recorder import (
    FFmpegVideoEncoder,
    MediaRecorder,
    RecordedMedia,
    RecorderError,
    RecorderState,
    VideoEncoder,
)

logger = setup_logging("studio-exporters")

SurfaceFactory = Callable[[StorySentence], "RenderableSurface | None"]
FramePreparer = Callable[[int], Awaitable[None]]


class ExportError(Exception):
    """An export could not produce a file."""


@dataclass(frozen=True)
class ExportSettings:
    width: int = 600
    height: int = 400
    fps: int = 10
    timeslice: float = 0.1
    drain_seconds: float = 1.0
    flush_seconds: float = 0.5
    silent_pause: float = 1.0
    playback_timeout_floor: float = 5.0
    playback_safety_margin: float = 1.5
    gif_frame_ms: int = 2000
    pdf_margin: float = 20.0

    @classmethod
    def from_config(cls, service_config: ServiceConfig) -> "ExportSettings":
        value = service_config.get_pipeline_value
        return cls(
            width=int(value("export.width", 600)),
            height=int(value("export.height", 400)),
            fps=int(value("export.fps", 10)),
            timeslice=float(value("export.timeslice_seconds", 0.1)),
            drain_seconds=float(value("export.drain_seconds", 1.0)),
            flush_seconds=float(value("export.flush_seconds", 0.5)),
            silent_pause=float(value("export.silent_pause_seconds", 1.0)),
            playback_timeout_floor=float(value("export.playback_timeout_floor_seconds", 5.0)),
            playback_safety_margin=float(value("export.playback_safety_margin_seconds", 1.5)),
            gif_frame_ms=int(value("export.gif_frame_ms", 2000)),
            pdf_margin=float(value("export.pdf_margin", 20)),
        )


@dataclass
class ExportArtifact:
    data: bytes
    mime_type: str
    extension: str
    frame_count: int = 0
    duration: float | None = None


def default_surface_factory(sentence: StorySentence) -> RenderableSurface:
    return SentenceCardSurface(sentence)


def is_video_ready(sentence: StorySentence) -> bool:
    """A sentence whose illustration resolved to a real image."""
    return sentence.has_usable_image and not is_placeholder_url(sentence.image_url)


def is_gif_ready(sentence: StorySentence) -> bool:
    return sentence.has_usable_image


class VideoExporter:
    """Records each sentence card for as long as its narration lasts."""

    def __init__(
        self,
        narrator: NarrationSynchronizer,
        *,
        encoder: VideoEncoder | None = None,
        settings: ExportSettings | None = None,
        compositor: FrameCompositor | None = None,
        surface_factory: SurfaceFactory = default_surface_factory,
        realtime_playback: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.settings = settings or ExportSettings()
        self.narrator = narrator
        self.encoder = encoder or FFmpegVideoEncoder()
        self.compositor = compositor or FrameCompositor(self.settings.width, self.settings.height, notify=notify)
        self.surface_factory = surface_factory
        self.realtime_playback = realtime_playback
        self._sleep = sleep
        self.notify = notify
        self.recorder: MediaRecorder | None = None

    def _new_recorder(self) -> MediaRecorder:
        return MediaRecorder(
            self.encoder,
            width=self.settings.width,
            height=self.settings.height,
            fps=self.settings.fps,
            timeslice=self.settings.timeslice,
        )

    async def export(
        self,
        sentences: list[StorySentence],
        *,
        progress: ProgressCallback | None = None,
        prepare_frame: FramePreparer | None = None,
        token: CancellationToken | None = None,
    ) -> ExportArtifact:
        valid = [sentence for sentence in sentences if is_video_ready(sentence)]
        if not valid:
            raise ExportError("No illustrations found for video generation.")
        self.encoder.check_available()

        recorder = self.recorder = self._new_recorder()
        graph = AudioGraph(recorder, realtime=self.realtime_playback)
        total = len(valid)
        captured = 0

        recorder.start()
        report_progress(progress, 0.0, f"Recording started. MimeType: {recorder.mime_type}")

        try:
            for index, sentence in enumerate(valid):
                if recorder.state != RecorderState.RECORDING:
                    logger.warning("Recorder left recording state (%s), finishing early", recorder.state.value)
                    break
                if token is not None and token.cancelled:
                    logger.info("Video export stopped at frame %d", index + 1)
                    break

                fraction = (index + 1) / total
                if prepare_frame is not None:
                    await prepare_frame(index)

                frame = await self.compositor.compose(self.surface_factory(sentence), index, sentence.id)
                if frame is None:
                    report_progress(progress, fraction, f"Frame {index + 1}/{total} skipped.")
                    continue
                recorder.capture_frame(frame)
                captured += 1

                report_progress(progress, fraction, f'Generating speech: "{preview(sentence.text, 15)}"')
                result = await self.narrator.narrate(sentence.text, language_tag(sentence.language), graph)
                if result.error:
                    publish_notice(
                        self.notify,
                        PipelineNotice(
                            level=NoticeLevel.WARNING,
                            title="Narration Skipped",
                            message=f'{result.error} for "{preview(sentence.text, 20)}". Using {self.settings.silent_pause:g}s pause.',
                            kind=result.failure,
                            sentence_id=sentence.id,
                        ),
                        logger,
                    )

                await recorder.advance(result.dwell_seconds)
                report_progress(progress, fraction, f"Frame {index + 1}/{total} processed.")

            if recorder.state == RecorderState.RECORDING and captured:
                report_progress(progress, 1.0, "Finalizing video...")
                await recorder.advance(self.settings.drain_seconds)
                await recorder.request_data()
                await self._sleep(self.settings.flush_seconds)
            await recorder.stop()
        except Exception as exc:
            recorder.abort(exc)
            publish_notice(
                self.notify,
                PipelineNotice(
                    level=NoticeLevel.ERROR,
                    title="Video Export Failed",
                    message=str(exc),
                    kind=FailureKind.RECORDER_FATAL,
                ),
                logger,
            )
            if isinstance(exc, RecorderError):
                raise
            raise RecorderError(f"MediaRecorder failed: {exc}") from exc

        try:
            media: RecordedMedia = await recorder.finished
        except RecorderError as exc:
            publish_notice(
                self.notify,
                PipelineNotice(
                    level=NoticeLevel.ERROR,
                    title="Video Export Failed",
                    message=str(exc),
                    kind=FailureKind.RECORDER_FATAL,
                ),
                logger,
            )
            raise
        report_progress(progress, 1.0, "Video generated!")
        return ExportArtifact(
            data=media.data,
            mime_type=media.mime_type,
            extension=media.extension,
            frame_count=captured,
            duration=media.duration,
        )


def _publish_skip(notify: NoticeCallback | None, title: str, message: str, sentence: StorySentence) -> None:
    publish_notice(
        notify,
        PipelineNotice(level=NoticeLevel.WARNING, title=title, message=message, sentence_id=sentence.id),
        logger,
    )


class GifExporter:
    """Animated GIF with one composed frame per illustrated sentence."""

    def __init__(
        self,
        *,
        settings: ExportSettings | None = None,
        compositor: FrameCompositor | None = None,
        surface_factory: SurfaceFactory = default_surface_factory,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.settings = settings or ExportSettings()
        self.compositor = compositor or FrameCompositor(self.settings.width, self.settings.height, notify=notify)
        self.surface_factory = surface_factory
        self.notify = notify

    async def export(
        self,
        sentences: list[StorySentence],
        *,
        progress: ProgressCallback | None = None,
        prepare_frame: FramePreparer | None = None,
    ) -> ExportArtifact:
        frames: list[Image.Image] = []
        total = len(sentences)

        for index, sentence in enumerate(sentences):
            if not is_gif_ready(sentence):
                _publish_skip(
                    self.notify,
                    "GIF Frame Skipped",
                    f'No usable illustration for "{preview(sentence.text, 20)}" (sentence {index + 1}).',
                    sentence,
                )
                continue
            if prepare_frame is not None:
                await prepare_frame(index)
            frame = await self.compositor.compose(self.surface_factory(sentence), index, sentence.id)
            if frame is not None:
                frames.append(frame)
            report_progress(progress, (index + 1) / total, f"Rendered frame {index + 1}/{total}")

        if not frames:
            raise ExportError("No valid images could be processed for the GIF.")

        buffer = io.BytesIO()
        frames[0].save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=frames[1:],
            duration=self.settings.gif_frame_ms,
            loop=0,
        )
        report_progress(progress, 1.0, "GIF generated!")
        return ExportArtifact(data=buffer.getvalue(), mime_type="image/gif", extension="gif", frame_count=len(frames))


class PdfExporter:
    """A4 PDF with one letterboxed sentence card per page."""

    CAPTURE_FAILED = "Content capture failed for this page."
    CONTENT_MISSING = "Content not found for this page."

    def __init__(
        self,
        *,
        settings: ExportSettings | None = None,
        surface_factory: SurfaceFactory = default_surface_factory,
        capture_scale: float = 2.0,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.settings = settings or ExportSettings()
        self.surface_factory = surface_factory
        self.capture_scale = capture_scale
        self.notify = notify

    def _draw_message_page(self, pdf: canvas.Canvas, message: str) -> None:
        page_width, page_height = A4
        margin = self.settings.pdf_margin
        pdf.setFillColorRGB(0.88, 0.88, 0.88)
        pdf.rect(margin, margin, page_width - 2 * margin, page_height - 2 * margin, stroke=0, fill=1)
        pdf.setFillColorRGB(0.2, 0.2, 0.2)
        pdf.setFont("Helvetica", 14)
        pdf.drawCentredString(page_width / 2, page_height / 2, message)

    async def export(
        self,
        sentences: list[StorySentence],
        *,
        progress: ProgressCallback | None = None,
        prepare_frame: FramePreparer | None = None,
    ) -> ExportArtifact:
        if not sentences:
            raise ExportError("No story content to export.")

        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        page_width, page_height = A4
        margin = self.settings.pdf_margin
        content_box = (round(page_width - 2 * margin), round(page_height - 2 * margin))
        total = len(sentences)

        for index, sentence in enumerate(sentences):
            if prepare_frame is not None:
                await prepare_frame(index)

            surface = self.surface_factory(sentence)
            if surface is None:
                self._draw_message_page(pdf, self.CONTENT_MISSING)
                _publish_skip(self.notify, "PDF Page Replaced", f"Page {index + 1}: {self.CONTENT_MISSING}", sentence)
            else:
                image = None
                try:
                    image = await surface.capture(scale=self.capture_scale, background="white")
                except Exception as exc:
                    logger.warning("PDF capture failed for page %d: %s", index + 1, exc)

                placement = None
                if image is not None and image.width > 0 and image.height > 0:
                    placement = letterbox(image.size, content_box)
                if placement is None or placement[2] == 0 or placement[3] == 0:
                    self._draw_message_page(pdf, self.CAPTURE_FAILED)
                    _publish_skip(self.notify, "PDF Page Replaced", f"Page {index + 1}: {self.CAPTURE_FAILED}", sentence)
                else:
                    x, y, width, height = placement
                    # reportlab's origin is bottom-left
                    pdf.drawImage(
                        ImageReader(image.convert("RGB")),
                        margin + x,
                        page_height - margin - y - height,
                        width,
                        height,
                    )
            pdf.showPage()
            report_progress(progress, (index + 1) / total, f"Processed page {index + 1}/{total}")

        pdf.save()
        report_progress(progress, 1.0, "PDF generated!")
        return ExportArtifact(data=buffer.getvalue(), mime_type="application/pdf", extension="pdf", frame_count=total)
