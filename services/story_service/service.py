"""Story service implementation."""

from __future__ import annotations

from shared.enums import StoryLanguage
from shared.models import StoryResponse
from shared.utils import Cache, config as service_config, generate_hash, setup_logging

from .drivers import (
    IllustrationDriver,
    SpeechDriver,
    StoryDriver,
    StubIllustrationDriver,
    StubSpeechDriver,
    StubStoryDriver,
)
from .prompts import STORY_PROGRESS_MESSAGE


class StoryAIService:
    """Writes stories, draws illustrations and narrates sentences through the configured drivers."""

    def __init__(
        self,
        story_driver: StoryDriver | None = None,
        illustration_driver: IllustrationDriver | None = None,
        speech_driver: SpeechDriver | None = None,
        provider: str | None = None,
    ) -> None:
        self.logger = setup_logging("story-service")
        self.provider = (provider or service_config.get("ai_provider", "stub")).lower()
        if story_driver is None or illustration_driver is None or speech_driver is None:
            defaults = self._load_drivers(self.provider)
            story_driver = story_driver or defaults[0]
            illustration_driver = illustration_driver or defaults[1]
            speech_driver = speech_driver or defaults[2]
        self.story_driver = story_driver
        self.illustration_driver = illustration_driver
        self.speech_driver = speech_driver
        self.cache = Cache(default_ttl=int(service_config.get("speech_cache_ttl", 3600)))

    def _load_drivers(self, provider_name: str) -> tuple[StoryDriver, IllustrationDriver, SpeechDriver]:
        if provider_name == "openai":
            if service_config.get("openai_api_key"):
                from .drivers.openai import (  # lazy import
                    OpenAIIllustrationDriver,
                    OpenAISpeechDriver,
                    OpenAIStoryDriver,
                )

                return OpenAIStoryDriver(), OpenAIIllustrationDriver(), OpenAISpeechDriver()
            self.logger.warning("OPENAI_API_KEY is not set, falling back to stub drivers")
        elif provider_name != "stub":
            self.logger.warning("Unknown AI provider '%s', falling back to stub drivers", provider_name)

        self.provider = "stub"
        return StubStoryDriver(), StubIllustrationDriver(), StubSpeechDriver()

    async def generate_story(self, prompt: str, language: StoryLanguage | str) -> str:
        language = StoryLanguage(language)
        self.logger.info("Generating %s story for prompt: %s", language.value, prompt[:60])
        story = await self.story_driver.generate_story(prompt, language)
        return story.strip()

    async def write_story(self, prompt: str, language: StoryLanguage | str) -> StoryResponse:
        story = await self.generate_story(prompt, language)
        return StoryResponse(story=story, progress=STORY_PROGRESS_MESSAGE)

    async def generate_illustration(self, sentence: str) -> str:
        self.logger.info("Generating illustration for: %s", sentence[:60])
        return await self.illustration_driver.generate_illustration(sentence)

    async def synthesize_speech(self, text: str, language: str) -> str:
        cache_key = generate_hash(f"{self.speech_driver.name}:{language}:{text}")
        cached = self.cache.get(cache_key)
        if cached:
            self.logger.debug("Speech cache hit for %s", cache_key)
            return cached

        audio_data_uri = await self.speech_driver.synthesize(text, language)
        self.cache.set(cache_key, audio_data_uri)
        return audio_data_uri
