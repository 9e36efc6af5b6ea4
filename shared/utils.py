"""Small helpers shared across services."""

import hashlib
from pathlib import Path

from shared.cache import Cache
from shared.config import ServiceConfig, config
from shared.logging_utils import setup_logging

__all__ = [
    "Cache",
    "ServiceConfig",
    "config",
    "ensure_directory",
    "generate_hash",
    "setup_logging",
    "slugify",
]


def generate_hash(text: str) -> str:
    """Generate a hash for caching purposes"""
    return hashlib.md5(text.encode()).hexdigest()


def slugify(text: str, max_length: int = 40) -> str:
    """Build a short lowercase file stem from free text."""
    cleaned = "".join(ch if ch.isalnum() else "-" for ch in text.lower())
    parts = [part for part in cleaned.split("-") if part]
    slug = "-".join(parts)[:max_length].strip("-")
    return slug or "story"


def ensure_directory(path: str) -> None:
    """Ensure directory exists, create if not"""
    Path(path).mkdir(parents=True, exist_ok=True)
