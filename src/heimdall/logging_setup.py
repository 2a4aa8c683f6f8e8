"""
Logging configuration and the HTTP request log line.
"""

import json
import logging
import sys
from datetime import datetime, timezone

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

RESET = "\033[0m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
PURPLE = "\033[35m"
CYAN = "\033[36m"
WHITE = "\033[37m"
BOLD_RED = "\033[1;31m"
BOLD_BLUE = "\033[1;34m"
BOLD_YELLOW = "\033[1;33m"

METHOD_COLORS = {
    "GET": GREEN,
    "POST": BLUE,
    "PUT": YELLOW,
    "DELETE": RED,
    "PATCH": CYAN,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "caller": f"{record.pathname}:{record.lineno}",
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure the root logger. `fmt` is "text" or "json"."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    if fmt == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    elif fmt == "text":
        logging.basicConfig(level=numeric_level, format=LOG_FORMAT, force=True)
    else:
        raise ValueError(f"Unknown log format: {fmt}")


def use_color(enabled: bool = True) -> bool:
    """Colors only when enabled and stderr is a terminal."""
    return enabled and hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


def format_request_line(method: str, path: str, status: int, duration_ms: float,
                        color: bool = False) -> str:
    """Render one access log line, e.g. `✅ [GET] /api/devices 200 1.25ms`."""
    if status >= 500:
        emoji, status_color = "❌", BOLD_RED
    elif status >= 400:
        emoji, status_color = "⚠️", YELLOW
    elif status >= 300:
        emoji, status_color = "🔄", CYAN
    elif status >= 200:
        emoji, status_color = "✅", GREEN
    else:
        emoji, status_color = "❓", BLUE

    if not color:
        return f"{emoji} [{method}] {path} {status} {duration_ms:.2f}ms"

    method_color = METHOD_COLORS.get(method, WHITE)
    if path.startswith("/api"):
        path_color = BOLD_BLUE
    elif path.startswith("/connect") or path.startswith("/disconnect"):
        path_color = BOLD_YELLOW
    else:
        path_color = PURPLE
    return (
        f"{emoji} [{method_color}{method}{RESET}] {path_color}{path}{RESET} "
        f"{status_color}{status}{RESET} {BLUE}{duration_ms:.2f}ms{RESET}"
    )
