"""Logging configuration and secret masking"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from streamalerts.core.config import Settings

DATE_FORMAT = "[%Y-%m-%d %H:%M:%S]"

# Third-party loggers and the level they run at; httpx follows DEBUG so
# Helix calls are visible when debugging upstream failures
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "asyncpg": logging.WARNING,
}


def _rich_handler() -> RichHandler:
    handler = RichHandler(
        console=Console(force_terminal=True, width=120),
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt=DATE_FORMAT))
    return handler


def quiet_third_party(level: int) -> None:
    """Lower noisy library loggers; httpx stays at INFO when the app runs at DEBUG."""
    for name, quiet_level in QUIET_LOGGERS.items():
        if name == "httpx" and level == logging.DEBUG:
            quiet_level = logging.INFO
        logging.getLogger(name).setLevel(quiet_level)


def setup_logging(settings: Settings) -> None:
    """Route every logger through one Rich handler at the configured level"""
    level = getattr(logging, settings.log_level, logging.INFO)

    try:
        # force=True: uvicorn configures the root logger first
        logging.basicConfig(level=level, handlers=[_rich_handler()], force=True)
    except Exception as e:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt=DATE_FORMAT,
            force=True,
        )
        logging.getLogger(__name__).warning(f"Rich logging unavailable ({e}), using plain output")

    quiet_third_party(level)
    logging.getLogger(__name__).info(
        f"Logging: {settings.log_level} | Env: {settings.environment}"
    )


def mask_secret(value: str | None, visible: int = 5) -> str:
    """Return a bounded prefix of a secret value for diagnostics."""
    if not value:
        return "Not available"
    return f"{value[:visible]}..."
