import logging
from pathlib import Path

from thankumail.core.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# httpx logs every request line at INFO, including the CAPTCHA and payment URLs
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def _file_handler_missing(root: logging.Logger, log_path: Path) -> bool:
    target = str(log_path.resolve())
    return not any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == target
        for handler in root.handlers
    )


def configure_logging() -> logging.Logger:
    """Attach stream/file handlers to the root logger once and return the app logger."""
    level_name = (settings.log_level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()

    handlers: list[logging.Handler] = []
    if not root.handlers:
        handlers.append(logging.StreamHandler())
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if _file_handler_missing(root, log_path):
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("thankumail")
    logger.setLevel(level)
    return logger
