"""Media recording: a held-frame video track muxed with the narration audio track."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from PIL import Image
from pydub import AudioSegment

from shared.utils import setup_logging

logger = setup_logging("studio-recorder")


class RecorderError(Exception):
    """The recorder or its encoder failed; the export cannot continue."""


class EmptyRecordingError(RecorderError):
    """Recording finished without any media data."""


class ExportCapabilityError(Exception):
    """The environment lacks something needed to produce the export."""


class RecorderState(str, Enum):
    INACTIVE = "inactive"
    RECORDING = "recording"
    PAUSED = "paused"


@dataclass
class RecordedMedia:
    data: bytes
    mime_type: str
    extension: str
    duration: float


class VideoEncoder(ABC):
    """Turns held frames into encoded chunks and muxes them with audio."""

    mime_type: str = "video/mp4"
    extension: str = "mp4"

    def check_available(self) -> None:
        """Raise ``ExportCapabilityError`` if the encoder cannot run here."""

    @abstractmethod
    def encode_segment(self, frame: Image.Image, duration: float, fps: int) -> bytes:
        """Encode ``frame`` held for ``duration`` seconds."""

    @abstractmethod
    def finalize(self, segments: Sequence[bytes], audio: AudioSegment) -> bytes:
        """Join encoded segments and mux ``audio`` into one container."""


DEFAULT_SEGMENT_PRESET: Sequence[str] = ("-c:v", "libx264", "-pix_fmt", "yuv420p", "-an")
DEFAULT_CONCAT_PRESET: Sequence[str] = ("-c", "copy")
DEFAULT_MERGE_PRESET: Sequence[str] = ("-c:v", "copy", "-c:a", "aac", "-movflags", "+faststart")


class FFmpegVideoEncoder(VideoEncoder):
    """Encode with the ffmpeg executable: one MPEG-TS segment per held frame, then concat and mux."""

    mime_type = "video/mp4"
    extension = "mp4"

    def __init__(self, *, executable: str = "ffmpeg", loglevel: str = "error") -> None:
        self.executable = executable
        self.loglevel = loglevel

    def check_available(self) -> None:
        if shutil.which(self.executable) is None:
            raise ExportCapabilityError(
                f"Video export needs '{self.executable}' on PATH. Install ffmpeg and try again."
            )

    def _run(self, arguments: Iterable[str]) -> None:
        command = [self.executable, "-y", "-loglevel", self.loglevel, *arguments]
        try:
            subprocess.run(command, check=True, capture_output=True)
        except FileNotFoundError as exc:
            raise ExportCapabilityError(f"ffmpeg executable not found: {self.executable}") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode("utf-8", errors="replace").strip() if exc.stderr else ""
            raise RecorderError(f"ffmpeg failed ({exc.returncode}): {stderr[-500:]}") from exc

    def encode_segment(self, frame: Image.Image, duration: float, fps: int) -> bytes:
        with tempfile.TemporaryDirectory(prefix="tinytales-segment-") as workdir:
            frame_path = Path(workdir) / "frame.png"
            segment_path = Path(workdir) / "segment.ts"
            frame.convert("RGB").save(frame_path)
            self._run(
                [
                    "-loop", "1",
                    "-framerate", str(fps),
                    "-i", str(frame_path),
                    "-t", f"{duration:.3f}",
                    "-r", str(fps),
                    *DEFAULT_SEGMENT_PRESET,
                    "-f", "mpegts",
                    str(segment_path),
                ]
            )
            return segment_path.read_bytes()

    def finalize(self, segments: Sequence[bytes], audio: AudioSegment) -> bytes:
        if not segments:
            raise EmptyRecordingError("No video segments to finalize.")

        with tempfile.TemporaryDirectory(prefix="tinytales-video-") as workdir:
            root = Path(workdir)
            concat_list = root / "segments.txt"
            with open(concat_list, "w", encoding="utf-8") as handle:
                for index, segment in enumerate(segments):
                    segment_path = root / f"segment_{index:04d}.ts"
                    segment_path.write_bytes(segment)
                    handle.write(f"file '{segment_path}'\n")

            video_path = root / "video.ts"
            self._run(["-f", "concat", "-safe", "0", "-i", str(concat_list), *DEFAULT_CONCAT_PRESET, str(video_path)])

            audio_path = root / "narration.wav"
            audio.export(str(audio_path), format="wav")

            output_path = root / f"story.{self.extension}"
            self._run(["-i", str(video_path), "-i", str(audio_path), *DEFAULT_MERGE_PRESET, "-shortest", str(output_path)])
            return output_path.read_bytes()


class MediaRecorder:
    """
    Records a sequence of held frames with a parallel audio track.

    ``capture_frame`` sets what the video shows, ``write_audio`` places audio
    at the current position, and ``advance`` moves the clock forward holding
    the current frame. Held frames are encoded into chunks every ``timeslice``
    seconds of recorded time or on ``request_data``. ``finished`` resolves
    once ``stop`` has produced the final media (or fails with the error).
    """

    def __init__(
        self,
        encoder: VideoEncoder,
        *,
        width: int = 600,
        height: int = 400,
        fps: int = 10,
        timeslice: float | None = 0.1,
        sample_rate: int = 44100,
    ) -> None:
        self.encoder = encoder
        self.width = width
        self.height = height
        self.fps = fps
        self.timeslice = timeslice
        self.sample_rate = sample_rate

        self.state = RecorderState.INACTIVE
        self.position = 0.0
        self.chunks: list[bytes] = []
        self.finished: asyncio.Future[RecordedMedia] | None = None
        self._frame: Image.Image | None = None
        self._pending: list[tuple[Image.Image, float]] = []
        self._pending_seconds = 0.0
        self._audio = AudioSegment.empty()

    @property
    def mime_type(self) -> str:
        return self.encoder.mime_type

    def start(self) -> None:
        if self.state != RecorderState.INACTIVE:
            raise RecorderError(f"Cannot start recorder in state {self.state.value}")
        self.state = RecorderState.RECORDING
        self.position = 0.0
        self.chunks = []
        self._pending = []
        self._pending_seconds = 0.0
        self._audio = AudioSegment.silent(duration=0, frame_rate=self.sample_rate)
        self._frame = Image.new("RGB", (self.width, self.height), "white")
        self.finished = asyncio.get_running_loop().create_future()
        logger.info("Recording started (%s, %dx%d @ %dfps)", self.mime_type, self.width, self.height, self.fps)

    def pause(self) -> None:
        if self.state == RecorderState.RECORDING:
            self.state = RecorderState.PAUSED
            logger.info("Recording paused at %.2fs", self.position)

    def capture_frame(self, frame: Image.Image) -> None:
        """Set the image shown from now on."""
        if frame.size != (self.width, self.height):
            frame = frame.resize((self.width, self.height))
        self._frame = frame.convert("RGB")

    def write_audio(self, clip: AudioSegment) -> None:
        """Place ``clip`` on the audio track at the current position."""
        if self.state != RecorderState.RECORDING:
            return
        clip = clip.set_frame_rate(self.sample_rate)
        self._pad_audio_to(self.position)
        position_ms = round(self.position * 1000)
        head = self._audio[:position_ms]
        tail = self._audio[position_ms + len(clip):]
        self._audio = head + clip + tail

    async def advance(self, seconds: float) -> None:
        """Hold the current frame for ``seconds`` of recorded time."""
        if self.state != RecorderState.RECORDING or seconds <= 0:
            return
        self._pending.append((self._frame, seconds))
        self._pending_seconds += seconds
        self.position += seconds
        if self.timeslice is not None and self._pending_seconds >= self.timeslice:
            await self.request_data()

    async def request_data(self) -> None:
        """Encode everything held so far into chunks."""
        pending, self._pending, self._pending_seconds = self._pending, [], 0.0
        for frame, seconds in pending:
            try:
                chunk = await asyncio.to_thread(self.encoder.encode_segment, frame, seconds, self.fps)
            except RecorderError:
                raise
            except Exception as exc:
                raise RecorderError(f"Encoding failed: {exc}") from exc
            if chunk:
                self.chunks.append(chunk)
                logger.debug("Chunk %d recorded (%d bytes)", len(self.chunks), len(chunk))

    async def stop(self) -> None:
        """Flush, finalize and resolve ``finished``. Does nothing when already inactive."""
        if self.state == RecorderState.INACTIVE:
            return
        self.state = RecorderState.INACTIVE

        try:
            await self.request_data()
            if not self.chunks:
                raise EmptyRecordingError("No data chunks recorded.")
            self._pad_audio_to(self.position)
            audio = self._audio[: round(self.position * 1000)]
            data = await asyncio.to_thread(self.encoder.finalize, list(self.chunks), audio)
            if not data:
                raise EmptyRecordingError("Generated video is 0 bytes.")
        except Exception as exc:
            logger.error("Recording failed: %s", exc)
            self._resolve_error(exc)
            return

        logger.info("Recording stopped: %d chunks, %.2fs, %d bytes", len(self.chunks), self.position, len(data))
        if self.finished is not None and not self.finished.done():
            self.finished.set_result(
                RecordedMedia(data=data, mime_type=self.mime_type, extension=self.encoder.extension, duration=self.position)
            )

    def abort(self, exc: BaseException) -> None:
        """Stop without finalizing; the caller propagates ``exc`` itself."""
        logger.error("Recording aborted: %s", exc)
        self.state = RecorderState.INACTIVE
        self._pending = []
        if self.finished is not None and not self.finished.done():
            self.finished.cancel()

    def _resolve_error(self, exc: BaseException) -> None:
        if not isinstance(exc, RecorderError):
            exc = RecorderError(f"MediaRecorder failed: {exc}")
        if self.finished is not None and not self.finished.done():
            self.finished.set_exception(exc)

    def _pad_audio_to(self, seconds: float) -> None:
        missing_ms = round(seconds * 1000) - len(self._audio)
        if missing_ms > 0:
            self._audio += AudioSegment.silent(duration=missing_ms, frame_rate=self.sample_rate)

