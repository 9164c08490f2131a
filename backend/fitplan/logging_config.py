import logging
import sys

from fitplan.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """Attach one stream handler to the package logger. Safe to call twice."""
    package_logger = logging.getLogger("fitplan")
    package_logger.setLevel((level or LOG_LEVEL).upper())

    if any(getattr(h, "_fitplan_handler", False) for h in package_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._fitplan_handler = True
    package_logger.addHandler(handler)
