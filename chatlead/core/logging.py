"""Central logging setup.

Call ``configure_logging`` once at startup; modules obtain their logger with
``logging.getLogger(__name__)``. Log records carry identifiers only, never
passwords or tax documents.
"""

from __future__ import annotations

import logging

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
HANDLER_NAME = "chatlead"


def configure_logging(level: str = "INFO") -> None:
    """Install the chatlead stream handler on the root logger.

    Handlers installed by others (test capture, hosting agents) are kept.

    Raises:
        ValueError: if ``level`` is not a standard level name.
    """
    level_upper = (level or "").upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {level}. Valid: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    handler = logging.StreamHandler()
    handler.setLevel(level_upper)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.set_name(HANDLER_NAME)

    root = logging.getLogger()
    root.setLevel(level_upper)
    # swap only our own handler so repeated calls do not duplicate output
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
