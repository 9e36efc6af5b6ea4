"""OpenAI-backed drivers for stories, illustrations and narration."""

from __future__ import annotations

from typing import ClassVar

import openai

from shared.config import config as service_config
from shared.enums import StoryLanguage
from shared.logging_utils import setup_logging
from shared.media_utils import encode_data_uri
from shared.openai_client import create_openai_client

from ..prompts import build_illustration_prompt, build_story_messages
from .base import (
    IllustrationDriver,
    ProviderRateLimitError,
    ProviderResponseError,
    SpeechDriver,
    StoryDriver,
)

logger = setup_logging("story-service-openai")


def _retry_after_from(exc: openai.RateLimitError) -> float | None:
    response = getattr(exc, "response", None)
    header = response.headers.get("retry-after") if response is not None else None
    if not header:
        return None
    try:
        return float(header)
    except ValueError:
        return None


def _rate_limited(exc: openai.RateLimitError) -> ProviderRateLimitError:
    retry_after = _retry_after_from(exc)
    logger.warning("OpenAI rate limit hit (retry after %s): %s", retry_after, exc)
    return ProviderRateLimitError(f"429 Too Many Requests: {exc}", retry_after=retry_after)


class OpenAIStoryDriver(StoryDriver):
    """Story writing through chat completions."""

    name = "openai"

    def __init__(self, model: str | None = None) -> None:
        self.model = model or service_config.get("story_model", "gpt-4o-mini")
        self.client = create_openai_client()

    async def generate_story(self, prompt: str, language: StoryLanguage) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_story_messages(prompt, language),
                temperature=0.9,
            )
        except openai.RateLimitError as exc:
            raise _rate_limited(exc) from exc

        story = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not story:
            raise ProviderResponseError("Story generation returned no text")
        return story


class OpenAIIllustrationDriver(IllustrationDriver):
    """Illustrations through the images API, returned as PNG data URIs."""

    name = "openai"

    def __init__(self, model: str | None = None, size: str | None = None) -> None:
        self.model = model or service_config.get("illustration_model", "gpt-image-1")
        self.size = size or service_config.get("illustration_size", "1536x1024")
        self.client = create_openai_client()

    async def generate_illustration(self, sentence: str) -> str:
        options: dict[str, str] = {}
        if self.model.startswith("dall-e"):
            # gpt-image models always answer with base64; dall-e needs asking
            options["response_format"] = "b64_json"
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=build_illustration_prompt(sentence),
                size=self.size,
                n=1,
                **options,
            )
        except openai.RateLimitError as exc:
            raise _rate_limited(exc) from exc

        payload = response.data[0].b64_json if response.data else None
        if not payload:
            raise ProviderResponseError(
                f'Image generation returned no image data for sentence: "{sentence[:50]}"'
            )
        return f"data:image/png;base64,{payload}"


class OpenAISpeechDriver(SpeechDriver):
    """Narration through the speech API, returned as MP3 data URIs."""

    name = "openai"

    VOICE_BY_LANGUAGE: ClassVar[dict[str, str]] = {"en": "nova", "hi": "shimmer"}
    DEFAULT_VOICE: ClassVar[str] = "nova"

    def __init__(self, model: str | None = None) -> None:
        self.model = model or service_config.get("speech_model", "tts-1")
        self.client = create_openai_client()

    def voice_for(self, language_tag: str) -> str:
        voice = self.VOICE_BY_LANGUAGE.get(language_tag.split("-")[0].lower())
        if voice is None:
            logger.warning(
                "No voice configured for language tag %s, defaulting to %s",
                language_tag,
                self.DEFAULT_VOICE,
            )
            return self.DEFAULT_VOICE
        return voice

    async def synthesize(self, text: str, language_tag: str) -> str:
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice_for(language_tag),
                input=text,
                response_format="mp3",
            )
        except openai.RateLimitError as exc:
            raise _rate_limited(exc) from exc

        audio = response.content
        if not audio:
            raise ProviderResponseError("Speech synthesis returned no audio")
        return encode_data_uri(audio, "audio/mpeg")
