"""
Logging helpers shared by the story service and the studio pipeline.
"""
import logging

LOG_FORMAT = "%(asctime)s - {name} - %(levelname)s - %(message)s"


def setup_logging(service_name: str, log_level: str = "INFO") -> logging.Logger:
    """
    Return a logger for a pipeline component, attaching a stream handler once.

    Args:
        service_name: Component name shown in every log line
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, log_level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT.format(name=service_name)))
        logger.addHandler(handler)

    return logger


def set_pipeline_log_level(log_level: str, names: list[str]) -> None:
    """Adjust the level of component loggers (the studio CLI ``--verbose`` flag)."""
    level = getattr(logging, log_level.upper())
    for name in names:
        logging.getLogger(name).setLevel(level)
