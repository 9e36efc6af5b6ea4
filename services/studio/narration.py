"""Narration: synthesize, decode and play speech in step with the video frames."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Protocol

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from shared.enums import FailureKind
from shared.media_utils import audio_format_for_mime, decode_data_uri
from shared.utils import setup_logging

from .providers import SpeechProvider

logger = setup_logging("studio-narration")


class AudioDecodeError(Exception):
    """Synthesized audio could not be decoded."""


def decode_audio_data_uri(audio_data_uri: str) -> AudioSegment:
    """Decode an audio data URI into a pydub ``AudioSegment``."""
    try:
        mime_type, payload = decode_data_uri(audio_data_uri)
    except ValueError as exc:
        raise AudioDecodeError(f"Invalid audio data URI: {exc}") from exc

    if not mime_type.startswith("audio/"):
        raise AudioDecodeError(f"Expected audio data, got {mime_type}")
    if not payload:
        raise AudioDecodeError("Audio payload is empty")

    try:
        return AudioSegment.from_file(io.BytesIO(payload), format=audio_format_for_mime(mime_type))
    except (CouldntDecodeError, OSError, ValueError) as exc:
        raise AudioDecodeError(f"Could not decode {mime_type} audio: {exc}") from exc


class AudioSink(Protocol):
    """Destination of played audio, normally the recorder's audio track."""

    def write_audio(self, clip: AudioSegment) -> None: ...


class Playback:
    """A clip being played through the audio graph."""

    def __init__(self, clip: AudioSegment, realtime: bool) -> None:
        self.clip = clip
        self.duration = len(clip) / 1000.0
        self._ended = asyncio.Event()
        self._task: asyncio.Task | None = None
        if realtime and self.duration > 0:
            self._task = asyncio.get_running_loop().create_task(self._run())
        else:
            self._ended.set()

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self.duration)
        finally:
            self._ended.set()

    @property
    def ended(self) -> bool:
        return self._ended.is_set()

    async def wait(self) -> None:
        await self._ended.wait()

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._ended.set()


class AudioGraph:
    """
    Routes narration clips into the recorder's audio track.

    With ``realtime`` the playback lasts as long as the clip (useful for
    previews); otherwise it ends as soon as the clip is in the track.
    """

    def __init__(self, sink: AudioSink, *, realtime: bool = False) -> None:
        self.sink = sink
        self.realtime = realtime

    def play(self, clip: AudioSegment) -> Playback:
        self.sink.write_audio(clip)
        return Playback(clip, self.realtime)

    async def hold(self, seconds: float) -> None:
        """Let a silent pause elapse."""
        if self.realtime and seconds > 0:
            await asyncio.sleep(seconds)


@dataclass
class NarrationResult:
    """Outcome of narrating one frame."""

    dwell_seconds: float
    narrated: bool
    clip_seconds: float = 0.0
    timed_out: bool = False
    failure: FailureKind | None = None
    error: str | None = None


class NarrationSynchronizer:
    """
    Narrates one sentence per frame.

    Playback completes at the natural end of the clip or after
    ``max(timeout_floor, duration + safety_margin)``, whichever comes first.
    Missing or broken audio becomes a silent pause of ``silent_pause`` seconds.
    """

    def __init__(
        self,
        speech_provider: SpeechProvider,
        *,
        silent_pause: float = 1.0,
        timeout_floor: float = 5.0,
        safety_margin: float = 1.5,
    ) -> None:
        self.speech_provider = speech_provider
        self.silent_pause = silent_pause
        self.timeout_floor = timeout_floor
        self.safety_margin = safety_margin

    def playback_timeout(self, duration: float) -> float:
        return max(self.timeout_floor, duration + self.safety_margin)

    async def narrate(self, text: str, language_tag: str, graph: AudioGraph) -> NarrationResult:
        try:
            audio_data_uri = await self.speech_provider.synthesize_speech(text, language_tag)
        except Exception as exc:
            logger.warning("Speech synthesis failed for %r: %s", text[:30], exc)
            return await self._pause(graph, FailureKind.DECODE_OR_PLAYBACK_ERROR, f"TTS error: {exc}")

        if not audio_data_uri:
            logger.warning("No audio returned for %r, holding frame silently", text[:30])
            return await self._pause(graph, FailureKind.DECODE_OR_PLAYBACK_ERROR, "No audio data received")

        try:
            clip = decode_audio_data_uri(audio_data_uri)
            playback = graph.play(clip)
        except Exception as exc:
            logger.warning("Audio playback failed for %r: %s", text[:30], exc)
            return await self._pause(graph, FailureKind.DECODE_OR_PLAYBACK_ERROR, f"Audio playback error: {exc}")

        timed_out = False
        try:
            await asyncio.wait_for(playback.wait(), timeout=self.playback_timeout(playback.duration))
        except asyncio.TimeoutError:
            timed_out = True
            playback.stop()
            logger.warning("Audio playback timed out after %.1fs for %r", self.playback_timeout(playback.duration), text[:30])

        return NarrationResult(
            dwell_seconds=max(playback.duration, self.silent_pause),
            narrated=True,
            clip_seconds=playback.duration,
            timed_out=timed_out,
        )

    async def _pause(self, graph: AudioGraph, failure: FailureKind, error: str) -> NarrationResult:
        await graph.hold(self.silent_pause)
        return NarrationResult(
            dwell_seconds=self.silent_pause,
            narrated=False,
            failure=failure,
            error=error,
        )
