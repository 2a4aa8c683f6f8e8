"""
Heimdall error types.

The core raises these; the web layer maps them onto HTTP status codes.
"""


class HeimdallError(Exception):
    """Base class for all control panel errors."""


class ValidationError(HeimdallError):
    """Configuration or device data failed validation."""


class DuplicateIDError(ValidationError):
    """A device with the same id already exists."""

    def __init__(self, device_id: str):
        super().__init__(f"Device with ID {device_id} already exists")
        self.device_id = device_id


class NotFoundError(HeimdallError):
    """No device with the given id."""

    def __init__(self, device_id: str):
        super().__init__(f"Device with ID {device_id} not found")
        self.device_id = device_id


class UnsupportedProtocolError(HeimdallError):
    """The device protocol has no viewer command."""

    def __init__(self, protocol: str):
        super().__init__(f"Unsupported protocol: {protocol!r}")
        self.protocol = protocol


class LaunchError(HeimdallError):
    """The external viewer process could not be started."""


class PersistenceError(HeimdallError):
    """Reading, decoding or writing the config file failed."""
