"""
Enums and constants used across the application.
"""

from enum import Enum


class StoryLanguage(str, Enum):
    """Languages a story can be written and narrated in."""

    ENGLISH = "english"
    HINDI = "hindi"


class FailureKind(str, Enum):
    """How a pipeline step failed, which decides whether the pipeline retries, continues or stops."""

    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    DECODE_OR_PLAYBACK_ERROR = "decode_or_playback_error"
    RECORDER_FATAL = "recorder_fatal"
    CANCELLED = "cancelled"


class ExportFormat(str, Enum):
    """Available export formats for a finished story."""

    PDF = "pdf"
    GIF = "gif"
    VIDEO = "video"


class NoticeLevel(str, Enum):
    """Severity of a notice shown to the author."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# BCP-47 tags used for speech synthesis
LANGUAGE_TAGS: dict[StoryLanguage, str] = {
    StoryLanguage.ENGLISH: "en-US",
    StoryLanguage.HINDI: "hi-IN",
}

STOPPED_BY_USER = "Stopped by user"
MAX_RETRIES_REACHED = "Max retries reached"
ILLUSTRATIONS_DISABLED = "Illustrations disabled"
