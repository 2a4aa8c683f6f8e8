"""
Shared test fixtures for the Heimdall test suite.

Provides:
- A fake process launcher whose handles block in wait() until killed
- Config store / control panel fixtures backed by tmp_path
- A Flask test client wired to a control panel
"""

import logging
import threading
import time

import pytest

from heimdall.control import ControlPanel
from heimdall.models import Device, Settings
from heimdall.store import ConfigStore
from heimdall.supervisor import ConnectionSupervisor

logging.getLogger("heimdall").setLevel(logging.WARNING)


class FakeHandle:
    """Stands in for subprocess.Popen: wait() blocks until kill() or finish()."""

    def __init__(self, args):
        self.args = list(args)
        self.killed = False
        self.returncode = None
        self._exited = threading.Event()

    def kill(self):
        self.killed = True
        self.finish(-9)

    def finish(self, code=0):
        if self.returncode is None:
            self.returncode = code
        self._exited.set()

    def wait(self, timeout=None):
        self._exited.wait(timeout)
        return self.returncode

    @property
    def running(self):
        return not self._exited.is_set()


class FakeLauncher:
    def __init__(self):
        self.handles = []
        self.fail_with = None

    def __call__(self, args):
        if self.fail_with is not None:
            raise self.fail_with
        handle = FakeHandle(args)
        self.handles.append(handle)
        return handle

    def running(self):
        return [h for h in self.handles if h.running]


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def launcher():
    return FakeLauncher()


@pytest.fixture()
def supervisor(launcher):
    sup = ConnectionSupervisor(launcher=launcher)
    yield sup
    sup.disconnect()


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        vnc_viewer="vncviewer",
        vnc_password_file=str(tmp_path / "passwd"),
        rdp_viewer="xfreerdp",
    )


@pytest.fixture()
def config_path(tmp_path):
    return tmp_path / "conf" / "config.json"


@pytest.fixture()
def store(config_path):
    return ConfigStore(config_path)


@pytest.fixture()
def panel(store, supervisor, settings):
    panel = ControlPanel(store, supervisor=supervisor, settings=settings)
    return panel


@pytest.fixture()
def vnc_device():
    return Device(name="Office PC", ip_address="10.0.0.5", protocol="vnc")


@pytest.fixture()
def rdp_device():
    return Device(name="Server", ip_address="10.0.0.9", protocol="rdp", username="admin")
