"""Rate-limit detection and backoff scheduling for provider calls."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from shared.config import ServiceConfig


@dataclass(frozen=True)
class RateLimitSignal:
    """A provider error recognised as throttling, with the delay the provider asked for (if any)."""

    retry_after: float | None = None


RateLimitPredicate = Callable[[BaseException], "RateLimitSignal | None"]

DEFAULT_STATUS_CODES: tuple[int, ...] = (429,)
DEFAULT_MESSAGE_PATTERNS: tuple[str, ...] = (r"\b429\b", r"too many requests")
# Google-style JSON error bodies carry "retryDelay":"12s"
DEFAULT_HINT_PATTERNS: tuple[str, ...] = (r'retryDelay"?\s*:\s*"(\d+(?:\.\d+)?)s"',)


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry bounds for rate-limited calls."""

    max_retries: int = 3
    initial_delay: float = 5.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    min_delay: float = 1.0

    @classmethod
    def from_config(cls, service_config: ServiceConfig) -> "BackoffPolicy":
        return cls(
            max_retries=int(service_config.get_pipeline_value("illustrations.max_retries", 3)),
            initial_delay=float(service_config.get_pipeline_value("illustrations.initial_backoff_seconds", 5)),
            max_delay=float(service_config.get_pipeline_value("illustrations.max_backoff_seconds", 60)),
            min_delay=float(service_config.get_pipeline_value("illustrations.min_backoff_seconds", 1)),
        )


class RetryState:
    """Per-item retry counters; discarded once the item succeeds, fails or is cancelled."""

    def __init__(self, policy: BackoffPolicy) -> None:
        self.policy = policy
        self.attempt = 0
        self.backoff_seconds = policy.initial_delay

    @property
    def exhausted(self) -> bool:
        return self.attempt > self.policy.max_retries

    def next_delay(self, signal: RateLimitSignal) -> float | None:
        """
        Register a rate limit and return how long to wait before retrying.

        A provider hint is used as-is and leaves the exponential schedule where
        it was; otherwise the current backoff is used and doubled up to the cap.
        Returns None once the retry budget is spent.
        """
        self.attempt += 1
        if self.exhausted:
            return None

        if signal.retry_after is not None and signal.retry_after > 0:
            delay = signal.retry_after
        else:
            delay = self.backoff_seconds
            self.backoff_seconds = min(self.backoff_seconds * self.policy.multiplier, self.policy.max_delay)
        return max(delay, self.policy.min_delay)


def build_rate_limit_predicate(
    status_codes: Iterable[int] = DEFAULT_STATUS_CODES,
    message_patterns: Iterable[str] = DEFAULT_MESSAGE_PATTERNS,
    hint_patterns: Iterable[str] = DEFAULT_HINT_PATTERNS,
) -> RateLimitPredicate:
    """
    Build a predicate deciding whether an exception is a rate limit.

    An exception matches when it carries a ``status``/``status_code`` in
    ``status_codes`` or its message matches one of ``message_patterns``
    (case-insensitive). The retry hint comes from a ``retry_after`` attribute
    or the first ``hint_patterns`` match in the message.
    """
    codes = frozenset(status_codes)
    messages = [re.compile(pattern, re.IGNORECASE) for pattern in message_patterns]
    hints = [re.compile(pattern) for pattern in hint_patterns]

    def predicate(exc: BaseException) -> RateLimitSignal | None:
        text = str(exc)
        status = getattr(exc, "status", None)
        if status is None:
            status = getattr(exc, "status_code", None)

        matched = status in codes or any(pattern.search(text) for pattern in messages)
        if not matched:
            return None

        retry_after = getattr(exc, "retry_after", None)
        if retry_after is None:
            for pattern in hints:
                found = pattern.search(text)
                if found:
                    retry_after = float(found.group(1))
                    break
        return RateLimitSignal(retry_after=float(retry_after) if retry_after is not None else None)

    return predicate


default_rate_limit_predicate: RateLimitPredicate = build_rate_limit_predicate()
