"""Story service driver registry."""

from .base import (
    IllustrationDriver,
    ProviderRateLimitError,
    ProviderResponseError,
    SpeechDriver,
    StoryDriver,
)
from .stub import StubIllustrationDriver, StubSpeechDriver, StubStoryDriver

__all__ = [
    "IllustrationDriver",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "SpeechDriver",
    "StoryDriver",
    "StubIllustrationDriver",
    "StubSpeechDriver",
    "StubStoryDriver",
]
