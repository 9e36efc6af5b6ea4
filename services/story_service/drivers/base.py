"""Base classes for story service drivers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from shared.enums import StoryLanguage


class ProviderRateLimitError(Exception):
    """The upstream AI provider throttled the request."""

    status_code = 429

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderResponseError(Exception):
    """The upstream AI provider answered without usable content."""


class StoryDriver(ABC):
    """Writes story prose from a short idea."""

    name: str = "base"

    @abstractmethod
    async def generate_story(self, prompt: str, language: StoryLanguage) -> str:
        """Return the story text."""


class IllustrationDriver(ABC):
    """Draws one illustration for one sentence."""

    name: str = "base"

    @abstractmethod
    async def generate_illustration(self, sentence: str) -> str:
        """Return the illustration as an image data URI."""


class SpeechDriver(ABC):
    """Synthesizes narration audio."""

    name: str = "base"

    @abstractmethod
    async def synthesize(self, text: str, language_tag: str) -> str:
        """Return narration as an audio data URI."""
