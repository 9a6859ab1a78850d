"""Centralized logging configuration for CLI commands."""

import logging
import os

# Third-party loggers that are too chatty at INFO, silenced even in verbose mode
NOISY_LOGGERS = (
    "httpx",
    "httpx._client",
    "httpcore",
    "httpcore.http11",
    "urllib3",
    "openai",
    "anthropic",
    "google",
    "google_genai",
)


def configure_logging(verbose: bool) -> None:
    """Configure logging levels based on verbose flag.

    Call once at CLI startup before any command runs.

    Args:
        verbose: If True, show INFO+ logs. If False, show only WARNING+ logs.
    """
    # Tests manage their own logging
    if os.getenv("PYTEST_CURRENT_TEST"):
        return

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO if verbose else logging.WARNING,
            format="%(levelname)s: %(message)s",
        )
    else:
        logging.getLogger().setLevel(logging.INFO if verbose else logging.WARNING)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    if not verbose:
        logging.getLogger("careerflow").setLevel(logging.WARNING)
