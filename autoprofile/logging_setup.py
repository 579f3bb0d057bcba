import logging
import sys

PACKAGE_LOGGER = "autoprofile"

_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the package logger (once)."""
    log = logging.getLogger(PACKAGE_LOGGER)
    log.setLevel(level)
    if not any(getattr(h, "_autoprofile", False) for h in log.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._autoprofile = True  # type: ignore[attr-defined]
        log.addHandler(handler)
    for handler in log.handlers:
        handler.setLevel(level)
    return log
