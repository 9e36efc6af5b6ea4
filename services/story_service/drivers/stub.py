"""Offline drivers producing deterministic stories, drawings and narration."""

from __future__ import annotations

import io
import random

from PIL import Image, ImageDraw
from pydub import AudioSegment
from pydub.generators import Sine

from shared.enums import StoryLanguage
from shared.media_utils import encode_data_uri, image_to_data_uri
from shared.utils import generate_hash

from .base import IllustrationDriver, SpeechDriver, StoryDriver

_STORY_TEMPLATES: dict[StoryLanguage, list[str]] = {
    StoryLanguage.ENGLISH: [
        "Once upon a time, a hundred tiny cats heard about {idea}.",
        "They gathered on a windowsill and whispered big plans!",
        "Pip, the smallest of them all, volunteered to lead the way.",
        "The tiny cats tiptoed, tumbled and giggled through every step.",
        "At sunset they curled up together, proud of their adventure.",
    ],
    StoryLanguage.HINDI: [
        "एक बार की बात है, सौ नन्ही बिल्लियों ने {idea} के बारे में सुना।",
        "वे खिड़की पर इकट्ठा हुईं और बड़ी योजनाएँ बनाने लगीं।",
        "सबसे छोटी बिल्ली पिप ने रास्ता दिखाने का ज़िम्मा लिया।",
        "शाम को सब बिल्लियाँ साथ में सो गईं, अपने रोमांच पर गर्व करती हुईं।",
    ],
}


class StubStoryDriver(StoryDriver):
    name = "stub"

    async def generate_story(self, prompt: str, language: StoryLanguage) -> str:
        idea = prompt.strip().rstrip(".!?।") or "a sunny day"
        lines = _STORY_TEMPLATES[StoryLanguage(language)]
        return " ".join(line.format(idea=idea) for line in lines)


class StubIllustrationDriver(IllustrationDriver):
    """Draws a few line-art cats, seeded by the sentence so output is stable."""

    name = "stub"

    def __init__(self, width: int = 600, height: int = 400) -> None:
        self.width = width
        self.height = height

    async def generate_illustration(self, sentence: str) -> str:
        rng = random.Random(generate_hash(sentence))
        image = Image.new("RGB", (self.width, self.height), "white")
        draw = ImageDraw.Draw(image)
        for _ in range(rng.randint(3, 7)):
            size = rng.randint(24, 48)
            x = rng.randint(size, self.width - 2 * size)
            y = rng.randint(size, self.height - 2 * size)
            self._draw_cat(draw, x, y, size)
        return image_to_data_uri(image)

    @staticmethod
    def _draw_cat(draw: ImageDraw.ImageDraw, x: int, y: int, size: int) -> None:
        head = size // 2
        draw.ellipse((x, y + head, x + size, y + head + size), outline="black", width=2)
        draw.ellipse((x + head // 2, y, x + head // 2 + head, y + head), outline="black", width=2)
        ear_left = [(x + head // 2, y + head // 4), (x + head // 2 + head // 4, y - head // 3), (x + head, y + head // 6)]
        ear_right = [(x + head, y + head // 6), (x + head + head // 4, y - head // 3), (x + head // 2 + head, y + head // 4)]
        draw.line(ear_left, fill="black", width=2)
        draw.line(ear_right, fill="black", width=2)
        draw.arc((x + size - 4, y + head, x + size + head, y + size + head), 270, 90, fill="black", width=2)


class StubSpeechDriver(SpeechDriver):
    """A soft tone whose length follows the text length, as WAV."""

    name = "stub"

    MS_PER_CHARACTER = 45
    MIN_DURATION_MS = 600

    async def synthesize(self, text: str, language_tag: str) -> str:
        duration = max(self.MIN_DURATION_MS, len(text) * self.MS_PER_CHARACTER)
        tone: AudioSegment = Sine(330).to_audio_segment(duration=duration, volume=-30.0)
        buffer = io.BytesIO()
        tone.fade_in(50).fade_out(100).export(buffer, format="wav")
        return encode_data_uri(buffer.getvalue(), "audio/wav")
