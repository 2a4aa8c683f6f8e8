"""
Runtime options for Heimdall.

Values come from HEIMDALL_* environment variables; command line flags
override them in cli.py. These are process options, not the persisted
settings: the port and viewer paths here only override the config file
for the current run.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_URL = "http://127.0.0.1:8080"
SHUTDOWN_GRACE_SEC = 5.0


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RuntimeOptions:
    """Process options; None means "keep what the config file says"."""

    config_file: str = field(default_factory=lambda: os.getenv("HEIMDALL_CONFIG", DEFAULT_CONFIG_FILE))
    host: str = field(default_factory=lambda: os.getenv("HEIMDALL_HOST", DEFAULT_HOST))
    port: Optional[int] = field(default_factory=lambda: _env_int("HEIMDALL_PORT"))
    vnc_viewer: Optional[str] = field(default_factory=lambda: _env_str("HEIMDALL_VNC_VIEWER"))
    vnc_password_file: Optional[str] = field(default_factory=lambda: _env_str("HEIMDALL_VNC_PASSWORD_FILE"))
    rdp_viewer: Optional[str] = field(default_factory=lambda: _env_str("HEIMDALL_RDP_VIEWER"))
    log_level: str = field(default_factory=lambda: os.getenv("HEIMDALL_LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: os.getenv("HEIMDALL_LOG_FORMAT", "text"))
    url: str = field(default_factory=lambda: os.getenv("HEIMDALL_URL", DEFAULT_URL))
    no_color: bool = field(default_factory=lambda: _env_flag("HEIMDALL_NO_COLOR"))
