"""
Control panel facade.

Combines the registry, the config store and the connection supervisor
behind the operations the web layer calls. Every mutation is applied to a
copy, validated, swapped in, then saved before returning.
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .config import SHUTDOWN_GRACE_SEC, RuntimeOptions
from .errors import HeimdallError, NotFoundError
from .models import Device, Settings
from .registry import DeviceRegistry
from .store import ConfigStore, validate
from .supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


class ControlPanel:
    """
    Owns the device registry and settings for the process lifetime.

    `_config_lock` covers the registry, the settings and every save. The
    supervisor has its own lock, so connect/disconnect never waits on CRUD.
    """

    def __init__(self, store: ConfigStore, supervisor: Optional[ConnectionSupervisor] = None,
                 registry: Optional[DeviceRegistry] = None, settings: Optional[Settings] = None):
        self.store = store
        self.supervisor = supervisor or ConnectionSupervisor()
        self._config_lock = threading.RLock()
        self._registry = registry if registry is not None else DeviceRegistry()
        self._settings = settings.copy() if settings is not None else Settings().normalized()

    @classmethod
    def load(cls, store: ConfigStore, supervisor: Optional[ConnectionSupervisor] = None) -> "ControlPanel":
        """Build a panel from the config file. Load errors propagate; they are fatal at startup."""
        registry, settings = store.load()
        return cls(store, supervisor=supervisor, registry=registry, settings=settings)

    def _commit(self, registry: DeviceRegistry, settings: Settings) -> None:
        """Validate, swap in, then save. Caller holds the config lock."""
        validate(registry, settings)
        self._registry = registry
        self._settings = settings
        self.store.save(registry, settings)

    # -------- devices --------

    def list_devices(self) -> List[Device]:
        with self._config_lock:
            return self._registry.list()

    def get_device(self, device_id: str) -> Device:
        with self._config_lock:
            device = self._registry.get(device_id)
        if device is None:
            raise NotFoundError(device_id)
        return device

    def add_device(self, device: Device) -> Device:
        with self._config_lock:
            registry = self._registry.copy()
            added = registry.add(device)
            self._commit(registry, self._settings)
        logger.info(f"Added new device: ({added.id}) {added.name}")
        return added

    def update_device(self, device: Device) -> Device:
        with self._config_lock:
            registry = self._registry.copy()
            updated = registry.update(device)
            self._commit(registry, self._settings)
        logger.info(f"Updated device: ({updated.id}) {updated.name}")
        return updated

    def delete_device(self, device_id: str) -> None:
        with self._config_lock:
            registry = self._registry.copy()
            registry.delete(device_id)
            settings = self._settings
            if settings.auto_start_id == device_id:
                logger.info(f"Clearing auto start target {device_id}")
                settings = replace(settings, auto_start_id="")
            self._commit(registry, settings)
        logger.info(f"Deleted device {device_id}")

    # -------- settings --------

    def get_settings(self) -> Settings:
        with self._config_lock:
            return self._settings.copy()

    def update_settings(self, settings: Settings) -> Settings:
        with self._config_lock:
            new_settings = settings.normalized()
            self._commit(self._registry, new_settings)
        logger.info("Settings updated")
        return new_settings.copy()

    def apply_overrides(self, options: RuntimeOptions) -> Settings:
        """Apply flag/env overrides in memory only; they are saved with the next mutation."""
        changes: Dict[str, Any] = {}
        if options.port is not None:
            changes["listen_port"] = options.port
        if options.vnc_viewer:
            changes["vnc_viewer"] = options.vnc_viewer
        if options.vnc_password_file:
            changes["vnc_password_file"] = options.vnc_password_file
        if options.rdp_viewer:
            changes["rdp_viewer"] = options.rdp_viewer
        if not changes:
            return self.get_settings()

        with self._config_lock:
            settings = replace(self._settings, **changes)
            validate(self._registry, settings)
            self._settings = settings
        logger.debug(f"Applied runtime overrides: {sorted(changes)}")
        return settings.copy()

    # -------- connections --------

    def connect(self, device_id: str) -> Device:
        with self._config_lock:
            device = self._registry.get(device_id)
            settings = self._settings.copy()
        if device is None:
            raise NotFoundError(device_id)
        self.supervisor.connect(device, settings)
        return device

    def disconnect(self) -> None:
        self.supervisor.disconnect()

    def current_device(self) -> Optional[str]:
        return self.supervisor.current_device()

    def status(self) -> Dict[str, Any]:
        return {"current_device": self.current_device()}

    def auto_start(self) -> Optional[str]:
        """Connect to the auto start device, if configured. Errors are logged, not raised."""
        settings = self.get_settings()
        if not settings.auto_start or not settings.auto_start_id:
            return None
        try:
            self.connect(settings.auto_start_id)
        except HeimdallError as e:
            logger.error(f"Auto start connection to {settings.auto_start_id} failed: {e}")
            return None
        logger.info(f"Auto started connection to {settings.auto_start_id}")
        return settings.auto_start_id

    def shutdown(self, grace: float = SHUTDOWN_GRACE_SEC) -> bool:
        logger.info("Shutting down control panel")
        return self.supervisor.shutdown(grace)
