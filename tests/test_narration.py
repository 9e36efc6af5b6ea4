"""Tests for narration decoding, playback and timeout fallback."""

import asyncio

import pytest
from pydub import AudioSegment

from conftest import FakeSpeechProvider, wav_data_uri
from services.studio.narration import (
    AudioDecodeError,
    AudioGraph,
    NarrationSynchronizer,
    Playback,
    decode_audio_data_uri,
)
from shared.enums import FailureKind


class TrackSink:
    def __init__(self) -> None:
        self.clips: list[AudioSegment] = []

    def write_audio(self, clip: AudioSegment) -> None:
        self.clips.append(clip)


class StalledPlayback(Playback):
    """Playback that never reaches its natural end."""

    def __init__(self, clip: AudioSegment) -> None:
        self.clip = clip
        self.duration = len(clip) / 1000.0
        self._ended = asyncio.Event()
        self._task = None
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True
        super().stop()


class StalledGraph(AudioGraph):
    def __init__(self) -> None:
        super().__init__(TrackSink())
        self.playbacks: list[StalledPlayback] = []

    def play(self, clip: AudioSegment) -> Playback:
        playback = StalledPlayback(clip)
        self.playbacks.append(playback)
        return playback


def test_decode_wav_data_uri() -> None:
    clip = decode_audio_data_uri(wav_data_uri(750))
    assert len(clip) == 750


@pytest.mark.parametrize(
    "uri",
    ["not a uri", "data:image/png;base64,AAAA", "data:audio/wav;base64,", "data:audio/wav;base64,AAAAAAAA"],
)
def test_decode_rejects_bad_audio(uri: str) -> None:
    with pytest.raises(AudioDecodeError):
        decode_audio_data_uri(uri)


@pytest.mark.asyncio
async def test_narrated_clip_goes_to_sink_and_sets_dwell() -> None:
    provider = FakeSpeechProvider(default_ms=2500)
    sink = TrackSink()
    narrator = NarrationSynchronizer(provider)

    result = await narrator.narrate("Tiny cats sing.", "en-US", AudioGraph(sink))

    assert result.narrated
    assert result.dwell_seconds == pytest.approx(2.5)
    assert len(sink.clips) == 1
    assert provider.calls == [("Tiny cats sing.", "en-US")]


@pytest.mark.asyncio
async def test_short_clip_holds_at_least_silent_pause() -> None:
    provider = FakeSpeechProvider(default_ms=300)
    result = await NarrationSynchronizer(provider, silent_pause=1.0).narrate("Mew.", "en-US", AudioGraph(TrackSink()))
    assert result.narrated
    assert result.clip_seconds == pytest.approx(0.3)
    assert result.dwell_seconds == 1.0


@pytest.mark.asyncio
async def test_synthesis_failure_falls_back_to_pause() -> None:
    provider = FakeSpeechProvider()
    provider.failing.add("Broken.")
    sink = TrackSink()

    result = await NarrationSynchronizer(provider, silent_pause=1.0).narrate("Broken.", "en-US", AudioGraph(sink))

    assert not result.narrated
    assert result.dwell_seconds == 1.0
    assert result.failure == FailureKind.DECODE_OR_PLAYBACK_ERROR
    assert sink.clips == []


@pytest.mark.asyncio
async def test_missing_audio_falls_back_to_pause() -> None:
    provider = FakeSpeechProvider()
    provider.silent.add("Quiet.")
    result = await NarrationSynchronizer(provider).narrate("Quiet.", "en-US", AudioGraph(TrackSink()))
    assert not result.narrated
    assert result.failure == FailureKind.DECODE_OR_PLAYBACK_ERROR
    assert result.error == "No audio data received"


@pytest.mark.asyncio
async def test_undecodable_audio_is_playback_error() -> None:
    class GarbageSpeech:
        async def synthesize_speech(self, text: str, language: str) -> str:
            return "data:audio/wav;base64,AAAAAAAA"

    result = await NarrationSynchronizer(GarbageSpeech()).narrate("Hiss.", "en-US", AudioGraph(TrackSink()))
    assert not result.narrated
    assert result.failure == FailureKind.DECODE_OR_PLAYBACK_ERROR


@pytest.mark.asyncio
async def test_stalled_playback_times_out_and_is_stopped() -> None:
    provider = FakeSpeechProvider(default_ms=100)
    narrator = NarrationSynchronizer(provider, timeout_floor=0.05, safety_margin=0.0)
    graph = StalledGraph()

    result = await asyncio.wait_for(narrator.narrate("Stuck.", "en-US", graph), timeout=2)

    assert result.timed_out
    assert result.narrated
    assert graph.playbacks[0].stopped


def test_playback_timeout_uses_floor_or_duration_plus_margin() -> None:
    narrator = NarrationSynchronizer(FakeSpeechProvider(), timeout_floor=5.0, safety_margin=1.5)
    assert narrator.playback_timeout(1.0) == 5.0
    assert narrator.playback_timeout(10.0) == 11.5


@pytest.mark.asyncio
async def test_realtime_playback_lasts_for_clip() -> None:
    loop = asyncio.get_running_loop()
    graph = AudioGraph(TrackSink(), realtime=True)
    started = loop.time()
    playback = graph.play(AudioSegment.silent(duration=100))
    assert not playback.ended
    await playback.wait()
    assert loop.time() - started >= 0.09
