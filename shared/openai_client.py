"""Factory for OpenAI clients used by the story service drivers."""

from __future__ import annotations

import os

from openai import AsyncOpenAI

from shared.config import config


def create_openai_client(api_key: str | None = None, timeout: float | None = None) -> AsyncOpenAI:
    """
    Create an async OpenAI client.

    Args:
        api_key: OpenAI API key (auto-detected if None)
        timeout: Request timeout in seconds (defaults to ``request_timeout`` from config)

    Returns:
        Configured AsyncOpenAI client

    Raises:
        ValueError: If API key is not configured
    """
    api_key = api_key or config.get("openai_api_key") or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    # SDK retries are disabled; rate limits are surfaced so the studio can back off itself
    return AsyncOpenAI(
        api_key=api_key,
        timeout=timeout or float(config.get("request_timeout", 120)),
        max_retries=0,
    )
