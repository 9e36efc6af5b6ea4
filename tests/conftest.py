import copy
import io
import os
import sys
from pathlib import Path
from typing import Any, Callable, Generator, Sequence

import pytest
from PIL import Image
from pydub import AudioSegment

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import redis as redis_module

from services.studio.recorder import VideoEncoder
from shared.enums import StoryLanguage
from shared.media_utils import encode_data_uri, image_to_data_uri
from shared.models import StorySentence
from shared.utils import config as service_config, ensure_directory


class DummyRedis:
    """In-memory stand-in for the handful of redis commands the history store uses."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._sorted: dict[str, dict[str, float]] = {}

    def ping(self) -> bool:
        return True

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def get(self, key: str):
        return self._values.get(key)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        self._sorted.setdefault(key, {}).update(mapping)

    def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        members = sorted(self._sorted.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        names = [name for name, _ in members]
        return names[start:] if end == -1 else names[start : end + 1]

    def zrem(self, key: str, member: str) -> None:
        self._sorted.get(key, {}).pop(member, None)


@pytest.fixture(scope="session", autouse=True)
def fake_redis() -> Generator[None, None, None]:
    """Patch redis client to use in-memory storage for tests."""
    original_from_url = redis_module.Redis.from_url

    def fake_from_url(cls, url: str, *args, **kwargs):  # type: ignore[unused-argument]
        return DummyRedis()

    redis_module.Redis.from_url = classmethod(fake_from_url)  # type: ignore[assignment]
    try:
        yield
    finally:
        redis_module.Redis.from_url = original_from_url  # type: ignore[assignment]


@pytest.fixture(autouse=True)
def test_environment(tmp_path: Path) -> Generator[None, None, None]:
    """Run every test against the stub provider with its own media root and pristine pipeline config."""
    media_root = tmp_path / "media"
    ensure_directory(str(media_root))
    os.environ["MEDIA_ROOT"] = str(media_root)

    saved_config = dict(service_config.config)
    saved_pipeline = copy.deepcopy(service_config.pipeline_config)
    service_config.set("media_root", str(media_root))
    service_config.set("ai_provider", "stub")
    try:
        yield
    finally:
        service_config.config = saved_config
        service_config.set_pipeline_config(saved_pipeline)


def wav_data_uri(duration_ms: int) -> str:
    buffer = io.BytesIO()
    AudioSegment.silent(duration=duration_ms, frame_rate=16000).export(buffer, format="wav")
    return encode_data_uri(buffer.getvalue(), "audio/wav")


def image_data_uri(size: tuple[int, int] = (300, 200), color: str = "white") -> str:
    return image_to_data_uri(Image.new("RGB", size, color))


@pytest.fixture
def make_sentences() -> Callable[..., list[StorySentence]]:
    def _make(count: int, illustrated: bool = True) -> list[StorySentence]:
        sentences = []
        for index in range(count):
            sentence = StorySentence(
                id=f"sentence-test-{index}",
                text=f"Tiny cat number {index + 1} chased a sparkly ball.",
                language=StoryLanguage.ENGLISH,
            )
            if illustrated:
                sentence.mark_resolved(image_data_uri())
            sentences.append(sentence)
        return sentences

    return _make


class FakeEncoder(VideoEncoder):
    """Records what it was asked to encode instead of running ffmpeg."""

    mime_type = "video/mp4"
    extension = "mp4"

    def __init__(self, finalize_result: bytes | None = None, fail_on_segment: int | None = None) -> None:
        self.segments: list[tuple[tuple[int, int], float, int]] = []
        self.finalized_audio_ms: int | None = None
        self.finalize_result = finalize_result
        self.fail_on_segment = fail_on_segment

    def encode_segment(self, frame: Image.Image, duration: float, fps: int) -> bytes:
        if self.fail_on_segment is not None and len(self.segments) == self.fail_on_segment:
            raise RuntimeError("encoder crashed")
        self.segments.append((frame.size, duration, fps))
        return f"segment:{duration:.3f};".encode()

    def finalize(self, segments: Sequence[bytes], audio: AudioSegment) -> bytes:
        self.finalized_audio_ms = len(audio)
        if self.finalize_result is not None:
            return self.finalize_result
        return b"".join(segments)

    @property
    def total_seconds(self) -> float:
        return sum(duration for _, duration, _ in self.segments)


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


class FakeSpeechProvider:
    """Returns WAV narration whose length is looked up per text, or fails for chosen texts."""

    def __init__(self, durations_ms: dict[str, int] | None = None, default_ms: int = 2000) -> None:
        self.durations_ms = durations_ms or {}
        self.default_ms = default_ms
        self.failing: set[str] = set()
        self.silent: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    async def synthesize_speech(self, text: str, language: str) -> str | None:
        self.calls.append((text, language))
        if text in self.failing:
            raise RuntimeError("speech backend unavailable")
        if text in self.silent:
            return None
        return wav_data_uri(self.durations_ms.get(text, self.default_ms))


@pytest.fixture
def speech_provider() -> FakeSpeechProvider:
    return FakeSpeechProvider()


class FakeIllustrationProvider:
    """Plays back a scripted list of results; exceptions in the script are raised."""

    def __init__(self, script: list[Any] | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[str] = []

    async def generate_illustration(self, sentence: str) -> str:
        self.calls.append(sentence)
        result = self.script.pop(0) if self.script else image_data_uri()
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return result()
        return result


class FakeStoryProvider:
    def __init__(self, story: str) -> None:
        self.story = story
        self.calls: list[tuple[str, str]] = []

    async def generate_story(self, prompt: str, language) -> str:
        self.calls.append((prompt, StoryLanguage(language).value))
        return self.story
