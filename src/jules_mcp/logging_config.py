"""
Logging setup.

Console output always goes to stderr: stdout carries the MCP stdio
transport and must only contain protocol messages.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Optional

from jules_mcp.config import Settings

STANDARD_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def __init__(self, context: str):
        super().__init__()
        self.context = context

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "context": self.context,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _build_formatter(settings: Settings, context: str) -> logging.Formatter:
    if settings.log_format == "json":
        return JsonFormatter(context)
    return logging.Formatter(fmt=STANDARD_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(context: str = "server", settings: Optional[Settings] = None) -> None:
    """
    Configure the ``jules_mcp`` logger hierarchy.

    Args:
        context: Name of the entry point ("server", "cli"), used for the log
            file name and the JSON context field
        settings: Loaded settings (read from the environment if omitted)
    """
    settings = settings or Settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = _build_formatter(settings, context)

    package_logger = logging.getLogger("jules_mcp")
    package_logger.setLevel(level)
    package_logger.propagate = False
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    if settings.log_file_enabled:
        log_dir = settings.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
