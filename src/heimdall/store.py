"""
Persistent config store.

Mirrors the registry and settings into a single JSON document. This is the
only code that writes the config file. Every save is validated first and
written to a temp file that replaces the target, so readers never see a
half-written document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from .errors import PersistenceError, ValidationError
from .models import Device, Settings
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


def validate(registry: DeviceRegistry, settings: Settings) -> None:
    """Raise ValidationError if the registry/settings pair must not be persisted."""
    if settings.listen_port <= 0 or settings.listen_port > 65535:
        raise ValidationError(f"listen_port must be between 1 and 65535, got {settings.listen_port}")

    seen = set()
    for device in registry.list():
        if not device.id:
            raise ValidationError("Device ID must not be empty")
        if device.id in seen:
            raise ValidationError(f"Duplicate device ID: {device.id}")
        seen.add(device.id)
        if device.port < 0 or device.port > 65535:
            raise ValidationError(f"Device {device.id} port must be between 0 and 65535, got {device.port}")

    if settings.auto_start and settings.auto_start_id and settings.auto_start_id not in seen:
        raise ValidationError(f"Auto start ID {settings.auto_start_id} does not reference a known device")


def to_document(registry: DeviceRegistry, settings: Settings) -> Dict[str, Any]:
    document = settings.to_dict()
    document["devices"] = [device.to_dict() for device in registry.list()]
    return document


def from_document(document: Any) -> Tuple[DeviceRegistry, Settings]:
    if not isinstance(document, dict):
        raise ValidationError("Config document must be a JSON object")
    raw_devices = document.get("devices") or []
    if not isinstance(raw_devices, list):
        raise ValidationError("devices must be a list")
    settings = Settings.from_dict(document)
    registry = DeviceRegistry(Device.from_dict(item) for item in raw_devices)
    return registry, settings


class ConfigStore:
    """
    JSON file holding settings and devices.

    Document shape:
        {"listen_port": 8080, "auto_start": false, "auto_start_id": "",
         "vnc_viewer": "...", "vnc_password_file": "...", "rdp_viewer": "...",
         "devices": [{...}, ...]}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Tuple[DeviceRegistry, Settings]:
        """Read and validate the config file, writing defaults on first run."""
        if not self.path.exists():
            logger.info(f"Config file {self.path} not found, writing defaults")
            registry, settings = DeviceRegistry(), Settings().normalized()
            self.save(registry, settings)
            return registry, settings

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Failed to parse config file {self.path}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Failed to read config file {self.path}: {e}") from e

        registry, settings = from_document(document)
        validate(registry, settings)
        logger.info(f"Loaded {len(registry)} device(s) from {self.path}")
        return registry, settings

    def save(self, registry: DeviceRegistry, settings: Settings) -> None:
        """Validate, then atomically replace the config file."""
        validate(registry, settings)
        data = json.dumps(to_document(registry, settings), indent=2)

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistenceError(f"Failed to write config file {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"Could not remove temp file {tmp_name}")

        logger.debug(f"Saved config to {self.path}")
