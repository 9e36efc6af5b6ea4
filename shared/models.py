"""
Pydantic models shared by the story service API and the studio pipeline.
"""

import time
import uuid

from pydantic import BaseModel, Field

from shared.enums import FailureKind, NoticeLevel, StoryLanguage


class StoryRequest(BaseModel):
    """Request to write a story from a short idea."""

    prompt: str = Field(..., min_length=1, max_length=2000, description="Story idea")
    language: StoryLanguage = Field(StoryLanguage.ENGLISH, description="Language of the story")


class StoryResponse(BaseModel):
    story: str
    progress: str = Field(..., description="One-line summary of what was generated")


class IllustrationRequest(BaseModel):
    sentence: str = Field(..., min_length=1, max_length=2000)


class IllustrationResponse(BaseModel):
    image_data_uri: str = Field(..., description="data:image/...;base64 payload")


class SpeechRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=4096)
    language: str = Field("en-US", description="BCP-47 language tag")


class SpeechResponse(BaseModel):
    audio_data_uri: str = Field(..., description="data:audio/...;base64 payload")


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    provider: str


class StorySentence(BaseModel):
    """One sentence of a story together with its illustration state."""

    id: str
    text: str
    language: StoryLanguage = StoryLanguage.ENGLISH
    image_url: str = ""
    is_image_loading: bool = False
    image_error: str | None = None
    failure: FailureKind | None = None

    @property
    def has_usable_image(self) -> bool:
        """An illustration resolved for this sentence and it is not failed or pending."""
        return bool(self.image_url) and not self.is_image_loading and self.image_error is None

    def mark_loading(self) -> None:
        self.is_image_loading = True
        self.image_error = None
        self.failure = None

    def mark_resolved(self, image_url: str) -> None:
        self.image_url = image_url
        self.is_image_loading = False
        self.image_error = None
        self.failure = None

    def mark_failed(self, reason: str, kind: FailureKind, image_url: str | None = None) -> None:
        if image_url is not None:
            self.image_url = image_url
        self.is_image_loading = False
        self.image_error = reason
        self.failure = kind


class StoryRecord(BaseModel):
    """A generated story as kept in history."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    prompt: str
    language: StoryLanguage = StoryLanguage.ENGLISH
    story: str
    sentences: list[StorySentence] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)

    def for_storage(self) -> "StoryRecord":
        """Copy of the record holding text only, with illustration state cleared."""
        return self.model_copy(
            update={
                "sentences": [
                    StorySentence(id=sentence.id, text=sentence.text, language=sentence.language)
                    for sentence in self.sentences
                ]
            },
            deep=True,
        )


class PipelineNotice(BaseModel):
    """Notification raised by a pipeline step for display to the author."""

    level: NoticeLevel = NoticeLevel.INFO
    title: str
    message: str
    kind: FailureKind | None = None
    sentence_id: str | None = None
    retry_in: float | None = None
