"""Provider interfaces consumed by the studio, and their HTTP implementation."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from shared.enums import StoryLanguage
from shared.http_client import AsyncHTTPClient
from shared.logging_utils import setup_logging
from shared.models import IllustrationResponse, SpeechResponse, StoryResponse

logger = setup_logging("studio-providers")


@runtime_checkable
class StoryProvider(Protocol):
    async def generate_story(self, prompt: str, language: StoryLanguage | str) -> str: ...


@runtime_checkable
class IllustrationProvider(Protocol):
    async def generate_illustration(self, sentence: str) -> str: ...


@runtime_checkable
class SpeechProvider(Protocol):
    async def synthesize_speech(self, text: str, language: str) -> str | None: ...


class StudioAPIClient:
    """
    Talks to a running story service over HTTP.

    Usable as an async context manager to share one connection pool across
    calls; otherwise each call opens a short-lived session.
    """

    def __init__(self, base_url: str, timeout: int = 120) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: AsyncHTTPClient | None = None

    async def __aenter__(self) -> "StudioAPIClient":
        self._client = AsyncHTTPClient(timeout=self.timeout)
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.__aexit__(exc_type, exc_val, exc_tb)
            self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return await self._client.post(url, data=payload)
        async with AsyncHTTPClient(timeout=self.timeout) as client:
            return await client.post(url, data=payload)

    async def generate_story(self, prompt: str, language: StoryLanguage | str) -> str:
        body = await self._post("/story", {"prompt": prompt, "language": StoryLanguage(language).value})
        response = StoryResponse.model_validate(body)
        logger.info(response.progress)
        return response.story

    async def generate_illustration(self, sentence: str) -> str:
        body = await self._post("/illustration", {"sentence": sentence})
        return IllustrationResponse.model_validate(body).image_data_uri

    async def synthesize_speech(self, text: str, language: str) -> str | None:
        body = await self._post("/speech", {"text": text, "language": language})
        return SpeechResponse.model_validate(body).audio_data_uri or None

    async def health(self) -> dict[str, Any]:
        async with AsyncHTTPClient(timeout=self.timeout) as client:
            return await client.get(f"{self.base_url}/health")
