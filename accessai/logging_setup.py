"""File logging and rich console panels."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel

from .config import LOG_DIR

LOGGER_NAME = "AccessAI"

# Console for rich output
console = Console()


def get_logger(component: str) -> logging.Logger:
    """Return the child logger used by a component."""
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


def setup_logging(log_dir: Optional[Path] = None):
    """Setup logging to file only (no stdout)."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    logger.propagate = False

    now = datetime.now()
    log_dir = Path(log_dir or LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_filename = log_dir / f"{now.strftime('%Y-%m-%d_%H')}.log"
    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler = logging.FileHandler(log_filename)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)
    logger.addHandler(file_handler)
    logger.info(f"Logging initialized. Log file: {log_filename}")
    return logger


def log_panel(
    message: str,
    *,
    logger: Optional[logging.Logger] = None,
    title: str = "AccessAI",
    style: str = "cyan",
    level: str = "info",
    expand: bool = True,
) -> None:
    """Log message to both console panel and file logger."""
    console.print(Panel(message, title=title, border_style=style, expand=expand))
    log_fn = getattr(logger or logging.getLogger(LOGGER_NAME), level, None)
    if log_fn:
        log_fn(message)
