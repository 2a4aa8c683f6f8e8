"""
Data models for devices and settings.

Both are plain dataclasses. `from_dict` is used for the config file and for
HTTP payloads, so it coerces loosely typed input and raises ValidationError
on values it cannot make sense of.
"""

from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ValidationError

PROTOCOL_VNC = "vnc"
PROTOCOL_RDP = "rdp"

DEFAULT_LISTEN_PORT = 8080
DEFAULT_VNC_VIEWER = "vncviewer"


def default_vnc_password_file() -> str:
    return str(Path.home() / ".vnc" / "passwd")


def _as_str(data: Dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationError(f"{key} must be a string")
    return str(value)


def _as_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer") from None


def _as_bool(data: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in {"1", "true", "yes", "on", "0", "false", "no", "off"}:
        return value.lower() in {"1", "true", "yes", "on"}
    raise ValidationError(f"{key} must be a boolean")


@dataclass
class Device:
    """
    A remote target reachable over VNC or RDP.

    port 0 means "use the protocol default". The password is opaque here;
    it is stored as given and never put on a viewer command line directly.
    """
    id: str = ""
    name: str = ""
    ip_address: str = ""
    protocol: str = PROTOCOL_VNC
    port: int = 0
    username: str = ""
    password: str = ""
    full_screen: bool = False
    description: str = ""
    screen: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], device_id: Optional[str] = None) -> "Device":
        if not isinstance(data, dict):
            raise ValidationError("Device must be a JSON object")
        return cls(
            id=device_id if device_id is not None else _as_str(data, "id"),
            name=_as_str(data, "name"),
            ip_address=_as_str(data, "ip_address"),
            protocol=_as_str(data, "protocol", PROTOCOL_VNC).lower(),
            port=_as_int(data, "port", 0),
            username=_as_str(data, "username"),
            password=_as_str(data, "password"),
            full_screen=_as_bool(data, "full_screen"),
            description=_as_str(data, "description"),
            screen=_as_str(data, "screen"),
        )

    def copy(self) -> "Device":
        return replace(self)


@dataclass
class Settings:
    """Scalar, non-device configuration."""
    listen_port: int = DEFAULT_LISTEN_PORT
    auto_start: bool = False
    auto_start_id: str = ""
    vnc_viewer: str = DEFAULT_VNC_VIEWER
    vnc_password_file: str = ""
    rdp_viewer: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        if not isinstance(data, dict):
            raise ValidationError("Settings must be a JSON object")
        return cls(
            listen_port=_as_int(data, "listen_port", DEFAULT_LISTEN_PORT),
            auto_start=_as_bool(data, "auto_start"),
            auto_start_id=_as_str(data, "auto_start_id"),
            vnc_viewer=_as_str(data, "vnc_viewer"),
            vnc_password_file=_as_str(data, "vnc_password_file"),
            rdp_viewer=_as_str(data, "rdp_viewer"),
        ).normalized()

    def normalized(self) -> "Settings":
        """Fill in viewer defaults for empty fields. There is no default RDP viewer."""
        return replace(
            self,
            vnc_viewer=self.vnc_viewer or DEFAULT_VNC_VIEWER,
            vnc_password_file=self.vnc_password_file or default_vnc_password_file(),
        )

    def copy(self) -> "Settings":
        return replace(self)
