"""Progress and notification channels shared by studio components."""

from __future__ import annotations

import logging
from typing import Callable

from shared.enums import NoticeLevel
from shared.models import PipelineNotice

ProgressCallback = Callable[[float, str], None]
NoticeCallback = Callable[[PipelineNotice], None]

_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


def report_progress(progress: ProgressCallback | None, fraction: float, status: str) -> None:
    if progress is not None:
        progress(max(0.0, min(1.0, fraction)), status)


def publish_notice(notify: NoticeCallback | None, notice: PipelineNotice, logger: logging.Logger) -> None:
    """Log a notice and hand it to the caller's notification callback."""
    logger.log(_LOG_LEVELS[notice.level], "%s: %s", notice.title, notice.message)
    if notify is not None:
        notify(notice)
