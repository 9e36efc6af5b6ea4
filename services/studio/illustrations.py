"""Sequential illustration fetching with rate-limit backoff and cancellation."""

from __future__ import annotations

from typing import Awaitable, Callable

from shared.enums import MAX_RETRIES_REACHED, STOPPED_BY_USER, FailureKind, NoticeLevel
from shared.media_utils import PLACEHOLDER_IMAGE_URL
from shared.models import PipelineNotice, StorySentence
from shared.text_utils import preview
from shared.utils import setup_logging

from .backoff import BackoffPolicy, RateLimitPredicate, RetryState, default_rate_limit_predicate
from .cancellation import CancellationToken
from .events import NoticeCallback, ProgressCallback, publish_notice, report_progress
from .providers import IllustrationProvider

logger = setup_logging("studio-illustrations")

SleepFunction = Callable[[float, CancellationToken], Awaitable[bool]]


async def cancellable_sleep(delay: float, token: CancellationToken) -> bool:
    return await token.sleep(delay)


class IllustrationFetcher:
    """
    Requests one illustration per sentence, in story order.

    Rate limits are retried with the provider's hinted delay or an exponential
    backoff, bounded by ``policy.max_retries``. Any other error fails the
    sentence at once with a placeholder image. Cancellation stops the batch and
    marks every sentence not yet illustrated as stopped.
    """

    def __init__(
        self,
        provider: IllustrationProvider,
        *,
        policy: BackoffPolicy | None = None,
        is_rate_limited: RateLimitPredicate = default_rate_limit_predicate,
        sleep: SleepFunction = cancellable_sleep,
        placeholder_url: str = PLACEHOLDER_IMAGE_URL,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.provider = provider
        self.policy = policy or BackoffPolicy()
        self.is_rate_limited = is_rate_limited
        self._sleep = sleep
        self.placeholder_url = placeholder_url
        self.notify = notify

    async def fetch(self, sentence: StorySentence, token: CancellationToken) -> bool:
        """
        Illustrate one sentence, retrying rate limits.

        Returns False when cancelled before the sentence settled; the sentence
        is then left for the caller to mark as stopped.
        """
        retry = RetryState(self.policy)
        sentence.mark_loading()

        while not token.cancelled:
            try:
                image_url = await self.provider.generate_illustration(sentence.text)
            except Exception as exc:
                signal = self.is_rate_limited(exc)
                if signal is None:
                    self._fail(sentence, str(exc) or exc.__class__.__name__, "Illustration Error")
                    return True

                delay = retry.next_delay(signal)
                if delay is None:
                    self._fail(
                        sentence,
                        MAX_RETRIES_REACHED,
                        "Rate Limit Persists",
                        detail=f'Could not generate image for "{preview(sentence.text)}" after {self.policy.max_retries} retries.',
                    )
                    return True

                publish_notice(
                    self.notify,
                    PipelineNotice(
                        level=NoticeLevel.WARNING,
                        title="Rate Limit Hit",
                        message=(
                            f'Retrying "{preview(sentence.text, 20)}" in {delay:g}s. '
                            f"(Attempt {retry.attempt}/{self.policy.max_retries})"
                        ),
                        kind=FailureKind.RATE_LIMITED,
                        sentence_id=sentence.id,
                        retry_in=delay,
                    ),
                    logger,
                )
                if await self._sleep(delay, token):
                    break
                continue

            if not image_url:
                self._fail(sentence, "Provider returned no image", "Illustration Error")
            else:
                sentence.mark_resolved(image_url)
            return True

        return False

    async def illustrate_all(
        self,
        sentences: list[StorySentence],
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[StorySentence]:
        """Illustrate every sentence in order, updating them in place."""
        token = token or CancellationToken()
        total = len(sentences)

        for index, sentence in enumerate(sentences):
            if token.cancelled or not await self.fetch(sentence, token):
                self._stop_from(sentences, index)
                break
            report_progress(progress, (index + 1) / total, f"Illustrated {index + 1}/{total}")

        logger.info(
            "Illustration batch finished: %d resolved, %d failed",
            sum(1 for s in sentences if s.has_usable_image),
            sum(1 for s in sentences if s.image_error is not None),
        )
        return sentences

    def _fail(self, sentence: StorySentence, reason: str, title: str, detail: str | None = None) -> None:
        sentence.mark_failed(reason, FailureKind.PROVIDER_ERROR, image_url=self.placeholder_url)
        publish_notice(
            self.notify,
            PipelineNotice(
                level=NoticeLevel.ERROR,
                title=title,
                message=detail or f'Failed for "{preview(sentence.text)}": {reason}',
                kind=FailureKind.PROVIDER_ERROR,
                sentence_id=sentence.id,
            ),
            logger,
        )

    def _stop_from(self, sentences: list[StorySentence], start: int) -> None:
        for sentence in sentences[start:]:
            sentence.mark_failed(STOPPED_BY_USER, FailureKind.CANCELLED)
        publish_notice(
            self.notify,
            PipelineNotice(
                level=NoticeLevel.INFO,
                title="Illustration Generation Stopped",
                message=f"Stopped before sentence {start + 1} of {len(sentences)}.",
                kind=FailureKind.CANCELLED,
            ),
            logger,
        )
