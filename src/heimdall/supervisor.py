"""
Connection supervisor.

Owns at most one external viewer process. Starting a new connection always
kills and reaps the previous one first, and a process that exits on its
own only clears the slot if it is still the recorded one.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .errors import LaunchError, UnsupportedProtocolError
from .models import PROTOCOL_RDP, PROTOCOL_VNC, Device, Settings

logger = logging.getLogger(__name__)

DEFAULT_VNC_PORT = 5900

# argv -> handle with wait() and kill(); subprocess.Popen satisfies this
Launcher = Callable[[List[str]], Any]
# stored password -> plaintext to forward to the RDP viewer
CredentialResolver = Callable[[str], str]


def build_command(device: Device, settings: Settings,
                  credential_resolver: Optional[CredentialResolver] = None) -> List[str]:
    """Build the viewer command line for a device."""
    if device.protocol == PROTOCOL_VNC:
        if not settings.vnc_viewer:
            raise LaunchError("No VNC viewer configured")
        port = device.port or DEFAULT_VNC_PORT
        args = [settings.vnc_viewer, f"{device.ip_address}:{port}"]
        if device.full_screen:
            args.append("-FullScreen")
        args.extend(["-PasswordFile", settings.vnc_password_file])
        return args

    if device.protocol == PROTOCOL_RDP:
        if not settings.rdp_viewer:
            raise LaunchError("No RDP viewer configured")
        args = [settings.rdp_viewer]
        if device.username:
            args.extend(["-u", device.username])
        if device.password and credential_resolver is not None:
            args.extend(["-p", credential_resolver(device.password)])
        if device.full_screen:
            args.append("-f")
        target = f"{device.ip_address}:{device.port}" if device.port else device.ip_address
        args.append(target)
        return args

    raise UnsupportedProtocolError(device.protocol)


def _redact(args: List[str]) -> List[str]:
    redacted = list(args)
    for i, arg in enumerate(redacted[:-1]):
        if arg == "-p":
            redacted[i + 1] = "****"
    return redacted


@dataclass
class ActiveConnection:
    device_id: str
    handle: Any


class ConnectionSupervisor:
    """
    Single-slot process supervisor.

    The slot lock is independent of the config lock in ControlPanel, so
    device CRUD never waits on a viewer being killed.
    """

    def __init__(self, launcher: Optional[Launcher] = None,
                 credential_resolver: Optional[CredentialResolver] = None):
        self._launcher = launcher or subprocess.Popen
        self._credential_resolver = credential_resolver
        self._lock = threading.Lock()
        # serializes listener calls; never taken while holding _lock
        self._notify_lock = threading.Lock()
        self._active: Optional[ActiveConnection] = None
        self._listeners: List[Callable[[Optional[str]], None]] = []

    def add_listener(self, listener: Callable[[Optional[str]], None]) -> None:
        """Register a callback receiving the current device id after each slot change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        """
        Tell listeners which device is active now.

        The slot is re-read under the notify lock, so the last notification
        delivered always matches the slot even when changes race.
        """
        with self._notify_lock:
            device_id = self.current_device()
            for listener in list(self._listeners):
                try:
                    listener(device_id)
                except Exception as e:
                    logger.error(f"Connection listener failed: {e}")

    def current_device(self) -> Optional[str]:
        with self._lock:
            return self._active.device_id if self._active else None

    def _terminate_active(self) -> bool:
        """Kill and reap the active process. Caller holds the lock."""
        if self._active is None:
            return False
        active = self._active
        logger.info(f"Killing viewer process for device {active.device_id}")
        try:
            active.handle.kill()
        except OSError as e:
            # already exited; wait() below still reaps it
            logger.debug(f"Kill failed for device {active.device_id}: {e}")
        active.handle.wait()
        self._active = None
        return True

    def connect(self, device: Device, settings: Settings) -> None:
        """
        Replace any active connection with a viewer for `device`.

        Raises UnsupportedProtocolError before touching the slot, and
        LaunchError (slot left idle) if the viewer cannot be started.
        """
        args = build_command(device, settings, self._credential_resolver)
        logger.debug(f"Viewer command: {_redact(args)}")

        with self._lock:
            replaced = self._terminate_active()
            logger.info(
                f"Connecting to device {device.id} ({device.name}) at {device.ip_address} "
                f"via {device.protocol}"
            )
            try:
                handle = self._launcher(args)
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                logger.error(f"Failed to start viewer {args[0]}: {e}")
                launch_error = LaunchError(f"Failed to start {args[0]}: {e}")
            else:
                launch_error = None
                self._active = ActiveConnection(device_id=device.id, handle=handle)

        if launch_error is not None:
            if replaced:
                self._notify()
            raise launch_error

        self._notify()
        watcher = threading.Thread(
            target=self._watch, args=(device.id, handle),
            name=f"viewer-{device.id}", daemon=True,
        )
        watcher.start()

    def _watch(self, device_id: str, handle: Any) -> None:
        returncode = handle.wait()
        if returncode:
            logger.warning(f"Viewer for device {device_id} exited with code {returncode}")
        else:
            logger.info(f"Viewer for device {device_id} exited")

        with self._lock:
            if self._active is None or self._active.handle is not handle:
                return
            self._active = None
        self._notify()

    def disconnect(self) -> None:
        """Kill the active viewer, if any, and wait for it to exit."""
        with self._lock:
            had_active = self._terminate_active()
        if had_active:
            logger.info("Disconnected current device")
            self._notify()

    def shutdown(self, grace: float = 5.0) -> bool:
        """Disconnect, waiting at most `grace` seconds. Returns False on timeout."""
        worker = threading.Thread(target=self.disconnect, name="viewer-shutdown", daemon=True)
        worker.start()
        worker.join(grace)
        if worker.is_alive():
            logger.warning(f"Viewer did not stop within {grace:.1f}s, continuing shutdown")
            return False
        return True
