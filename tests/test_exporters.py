"""Tests for video, GIF and PDF exports."""

import io
import re

import pytest
from PIL import Image

from conftest import FakeEncoder, FakeSpeechProvider
from services.studio.cancellation import CancellationToken
from services.studio.compositor import SentenceCardSurface
from services.studio.exporters import (
    ExportError,
    ExportSettings,
    GifExporter,
    PdfExporter,
    VideoExporter,
)
from services.studio.narration import NarrationSynchronizer
from services.studio.recorder import ExportCapabilityError, RecorderError
from shared.enums import FailureKind
from shared.media_utils import PLACEHOLDER_IMAGE_URL
from shared.utils import config

FAST = ExportSettings(drain_seconds=1.0, flush_seconds=0.0)


def make_video_exporter(speech: FakeSpeechProvider, encoder: FakeEncoder, **kwargs) -> VideoExporter:
    narrator = NarrationSynchronizer(speech, silent_pause=FAST.silent_pause)
    return VideoExporter(narrator, encoder=encoder, settings=FAST, **kwargs)


class SliverSurface:
    """Captures an image far too wide to letterbox onto the frame."""

    background_color = "white"
    parent = None

    async def capture(self, *, scale: float, background: str):
        return Image.new("RGB", (3000, 1), "black")


class BrokenSurface:
    background_color = "white"
    parent = None

    async def capture(self, *, scale: float, background: str):
        raise RuntimeError("surface detached")


@pytest.mark.asyncio
async def test_video_holds_each_frame_for_its_narration(make_sentences, fake_encoder: FakeEncoder) -> None:
    sentences = make_sentences(3)
    speech = FakeSpeechProvider(default_ms=2000)
    progress: list[tuple[float, str]] = []

    artifact = await make_video_exporter(speech, fake_encoder).export(
        sentences, progress=lambda f, s: progress.append((f, s))
    )

    assert artifact.mime_type == "video/mp4"
    assert artifact.frame_count == 3
    # Three narrated frames plus the drain interval
    assert artifact.duration == pytest.approx(3 * 2.0 + 1.0)
    assert fake_encoder.finalized_audio_ms == 7000
    assert [call[1] for call in speech.calls] == ["en-US"] * 3
    assert progress[0][1].startswith("Recording started")
    assert progress[-1] == (1.0, "Video generated!")


@pytest.mark.asyncio
async def test_video_duration_non_decreasing_in_narrated_sentences(make_sentences) -> None:
    durations = []
    for narrated in range(4):
        sentences = make_sentences(3)
        speech = FakeSpeechProvider(default_ms=1800)
        speech.failing.update(sentence.text for sentence in sentences[narrated:])
        artifact = await make_video_exporter(speech, FakeEncoder()).export(sentences)
        durations.append(artifact.duration)

    assert durations == sorted(durations)
    assert durations[0] == pytest.approx(3 * FAST.silent_pause + FAST.drain_seconds)


@pytest.mark.asyncio
async def test_failed_narration_uses_pause_and_notifies(make_sentences, fake_encoder: FakeEncoder) -> None:
    sentences = make_sentences(2)
    speech = FakeSpeechProvider(default_ms=2000)
    speech.failing.add(sentences[0].text)
    notices = []

    artifact = await make_video_exporter(speech, fake_encoder, notify=notices.append).export(sentences)

    assert artifact.duration == pytest.approx(1.0 + 2.0 + 1.0)
    assert notices[0].kind == FailureKind.DECODE_OR_PLAYBACK_ERROR
    assert notices[0].sentence_id == sentences[0].id


@pytest.mark.asyncio
async def test_video_skips_failed_and_placeholder_sentences(make_sentences, fake_encoder: FakeEncoder) -> None:
    sentences = make_sentences(3)
    sentences[0].mark_failed("Max retries reached", FailureKind.PROVIDER_ERROR, image_url=PLACEHOLDER_IMAGE_URL)
    sentences[1].mark_resolved(PLACEHOLDER_IMAGE_URL)
    speech = FakeSpeechProvider()

    artifact = await make_video_exporter(speech, fake_encoder).export(sentences)

    assert artifact.frame_count == 1
    assert [text for text, _ in speech.calls] == [sentences[2].text]


@pytest.mark.asyncio
async def test_video_without_illustrations_fails(make_sentences, fake_encoder: FakeEncoder) -> None:
    with pytest.raises(ExportError, match="No illustrations found"):
        await make_video_exporter(FakeSpeechProvider(), fake_encoder).export(make_sentences(2, illustrated=False))


@pytest.mark.asyncio
async def test_video_missing_encoder_capability(make_sentences) -> None:
    class UnavailableEncoder(FakeEncoder):
        def check_available(self) -> None:
            raise ExportCapabilityError("ffmpeg missing")

    with pytest.raises(ExportCapabilityError):
        await make_video_exporter(FakeSpeechProvider(), UnavailableEncoder()).export(make_sentences(1))


@pytest.mark.asyncio
async def test_prepare_frame_hook_runs_before_each_capture(make_sentences, fake_encoder: FakeEncoder) -> None:
    prepared: list[int] = []

    async def prepare(index: int) -> None:
        prepared.append(index)

    await make_video_exporter(FakeSpeechProvider(), fake_encoder).export(make_sentences(3), prepare_frame=prepare)
    assert prepared == [0, 1, 2]


@pytest.mark.asyncio
async def test_recorder_leaving_recording_state_ends_early(make_sentences, fake_encoder: FakeEncoder) -> None:
    exporter = make_video_exporter(FakeSpeechProvider(default_ms=2000), fake_encoder)

    def pause_after_first(fraction: float, status: str) -> None:
        if status == "Frame 1/3 processed.":
            exporter.recorder.pause()

    artifact = await exporter.export(make_sentences(3), progress=pause_after_first)

    # The first frame was captured; the loop stopped without draining
    assert artifact.duration == pytest.approx(2.0)
    assert artifact.frame_count == 1
    assert artifact.data == b"segment:2.000;"


@pytest.mark.asyncio
async def test_cancelled_export_keeps_captured_frames(make_sentences, fake_encoder: FakeEncoder) -> None:
    token = CancellationToken()
    exporter = make_video_exporter(FakeSpeechProvider(default_ms=2000), fake_encoder)

    async def cancel_after_first(index: int) -> None:
        if index == 0:
            token.cancel()

    artifact = await exporter.export(make_sentences(3), prepare_frame=cancel_after_first, token=token)
    assert artifact.duration == pytest.approx(2.0 + FAST.drain_seconds)
    assert artifact.frame_count == 1


@pytest.mark.asyncio
async def test_encoder_crash_aborts_export(make_sentences) -> None:
    notices = []
    exporter = make_video_exporter(FakeSpeechProvider(), FakeEncoder(fail_on_segment=1), notify=notices.append)

    with pytest.raises(RecorderError):
        await exporter.export(make_sentences(3))
    assert notices[-1].kind == FailureKind.RECORDER_FATAL
    assert exporter.recorder.finished.cancelled()


@pytest.mark.asyncio
async def test_zero_byte_video_fails(make_sentences) -> None:
    notices = []
    exporter = make_video_exporter(FakeSpeechProvider(), FakeEncoder(finalize_result=b""), notify=notices.append)
    with pytest.raises(RecorderError, match="0 bytes"):
        await exporter.export(make_sentences(1))
    assert notices[-1].kind == FailureKind.RECORDER_FATAL


@pytest.mark.asyncio
async def test_gif_has_one_frame_per_illustrated_sentence(make_sentences) -> None:
    sentences = make_sentences(3)
    sentences[1].mark_failed("content policy", FailureKind.PROVIDER_ERROR, image_url=PLACEHOLDER_IMAGE_URL)

    artifact = await GifExporter(settings=FAST).export(sentences)

    image = Image.open(io.BytesIO(artifact.data))
    assert artifact.data.startswith(b"GIF8")
    assert artifact.frame_count == 2
    assert image.n_frames == 2
    assert image.size == (600, 400)
    assert image.info["duration"] == 2000


@pytest.mark.asyncio
async def test_gif_without_valid_frames_fails(make_sentences) -> None:
    sentences = make_sentences(2, illustrated=False)
    sentences[0].mark_loading()
    with pytest.raises(ExportError, match="No valid images"):
        await GifExporter().export(sentences)


@pytest.mark.asyncio
async def test_pdf_has_a_page_per_sentence(make_sentences) -> None:
    sentences = make_sentences(3)
    artifact = await PdfExporter(settings=FAST, capture_scale=1.0).export(sentences)

    assert artifact.data.startswith(b"%PDF")
    assert artifact.mime_type == "application/pdf"
    assert len(re.findall(rb"/Type /Page\b(?!s)", artifact.data)) == 3


@pytest.mark.asyncio
async def test_pdf_capture_failure_still_produces_page(make_sentences) -> None:
    sentences = make_sentences(2)
    factory = lambda sentence: BrokenSurface() if sentence.id == sentences[0].id else None
    artifact = await PdfExporter(settings=FAST, surface_factory=factory).export(sentences)
    assert artifact.frame_count == 2
    assert len(re.findall(rb"/Type /Page\b(?!s)", artifact.data)) == 2


def test_settings_from_config() -> None:
    config.set_pipeline_config({"export": {"fps": 24, "gif_frame_ms": 1500}})
    settings = ExportSettings.from_config(config)
    assert settings.fps == 24
    assert settings.gif_frame_ms == 1500
    assert settings.width == 600


@pytest.mark.asyncio
async def test_video_skips_frame_that_scales_to_nothing(make_sentences, fake_encoder: FakeEncoder) -> None:
    sentences = make_sentences(3)
    notices = []

    def surfaces(sentence):
        return SliverSurface() if sentence.id == sentences[0].id else SentenceCardSurface(sentence)

    exporter = make_video_exporter(
        FakeSpeechProvider(default_ms=2000), fake_encoder, surface_factory=surfaces, notify=notices.append
    )
    artifact = await exporter.export(sentences)

    assert artifact.frame_count == 2
    assert artifact.duration == pytest.approx(2 * 2.0 + FAST.drain_seconds)
    assert [(n.title, n.sentence_id) for n in notices] == [("Frame Skipped", sentences[0].id)]


@pytest.mark.asyncio
async def test_video_with_no_capturable_frames_fails(make_sentences, fake_encoder: FakeEncoder) -> None:
    exporter = make_video_exporter(FakeSpeechProvider(), fake_encoder, surface_factory=lambda sentence: SliverSurface())
    with pytest.raises(RecorderError, match="No data chunks"):
        await exporter.export(make_sentences(2))


@pytest.mark.asyncio
async def test_gif_skips_are_notified(make_sentences) -> None:
    sentences = make_sentences(3)
    sentences[0].mark_failed("content policy", FailureKind.PROVIDER_ERROR, image_url=PLACEHOLDER_IMAGE_URL)
    notices = []

    def surfaces(sentence):
        return SliverSurface() if sentence.id == sentences[1].id else SentenceCardSurface(sentence)

    artifact = await GifExporter(settings=FAST, surface_factory=surfaces, notify=notices.append).export(sentences)

    assert artifact.frame_count == 1
    assert [(n.title, n.sentence_id) for n in notices] == [
        ("GIF Frame Skipped", sentences[0].id),
        ("Frame Skipped", sentences[1].id),
    ]


@pytest.mark.asyncio
async def test_pdf_replaced_pages_are_notified(make_sentences) -> None:
    sentences = make_sentences(3)
    notices = []
    surfaces = {sentences[0].id: BrokenSurface(), sentences[1].id: None, sentences[2].id: SliverSurface()}

    artifact = await PdfExporter(settings=FAST, surface_factory=lambda s: surfaces[s.id], notify=notices.append).export(
        sentences
    )

    assert artifact.frame_count == 3
    assert [n.sentence_id for n in notices] == [s.id for s in sentences]
    assert all(n.title == "PDF Page Replaced" for n in notices)
    assert PdfExporter.CONTENT_MISSING in notices[1].message
