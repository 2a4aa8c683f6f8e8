"""
Device registry.

Ordered, in-memory collection of devices with a unique-id invariant.
No I/O and no locking: the ControlPanel serializes access and the
ConfigStore persists it.
"""

import logging
import re
from typing import Iterable, List, Optional

from .errors import DuplicateIDError, NotFoundError
from .models import Device

logger = logging.getLogger(__name__)

ID_PREFIX = "pc"
_GENERATED_ID = re.compile(r"^pc(\d+)$")


class DeviceRegistry:
    """
    Devices in insertion order, plus the counter used to generate `pc<N>` ids.

    The counter is recovered lazily from the ids already present the first
    time an id has to be generated, so ids loaded from a file are never
    handed out again.
    """

    def __init__(self, devices: Optional[Iterable[Device]] = None):
        self._devices: List[Device] = []
        self._next_id: Optional[int] = None
        for device in devices or []:
            if self._index_of(device.id) is not None:
                raise DuplicateIDError(device.id)
            self._devices.append(device.copy())

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: str) -> bool:
        return self._index_of(device_id) is not None

    def _index_of(self, device_id: str) -> Optional[int]:
        for i, device in enumerate(self._devices):
            if device.id == device_id:
                return i
        return None

    def _recover_next_id(self) -> int:
        highest = 1
        for device in self._devices:
            match = _GENERATED_ID.match(device.id)
            if not match:
                logger.warning(f"Skipping non-generated device ID while seeding counter: {device.id}")
                continue
            highest = max(highest, int(match.group(1)))
        logger.debug(f"Next generated device ID set to {ID_PREFIX}{highest + 1}")
        return highest + 1

    def add(self, device: Device) -> Device:
        """Append a device, generating its id when empty. Returns the stored copy."""
        if self._next_id is None:
            self._next_id = self._recover_next_id()

        new_device = device.copy()
        if not new_device.id:
            new_device.id = f"{ID_PREFIX}{self._next_id}"

        if self._index_of(new_device.id) is not None:
            raise DuplicateIDError(new_device.id)

        match = _GENERATED_ID.match(new_device.id)
        if match:
            self._next_id = max(self._next_id, int(match.group(1)) + 1)

        self._devices.append(new_device)
        return new_device.copy()

    def get(self, device_id: str) -> Optional[Device]:
        index = self._index_of(device_id)
        if index is None:
            return None
        return self._devices[index].copy()

    def update(self, device: Device) -> Device:
        index = self._index_of(device.id)
        if index is None:
            raise NotFoundError(device.id)
        self._devices[index] = device.copy()
        return device.copy()

    def delete(self, device_id: str) -> None:
        index = self._index_of(device_id)
        if index is None:
            raise NotFoundError(device_id)
        del self._devices[index]

    def list(self) -> List[Device]:
        return [device.copy() for device in self._devices]

    def copy(self) -> "DeviceRegistry":
        clone = DeviceRegistry(self._devices)
        clone._next_id = self._next_id
        return clone
