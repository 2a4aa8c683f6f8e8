import json

import pytest

from heimdall.errors import PersistenceError, ValidationError
from heimdall.models import Device, Settings
from heimdall.registry import DeviceRegistry
from heimdall.store import ConfigStore, validate


def _write(path, document):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")


def test_first_run_writes_defaults(store, config_path):
    registry, settings = store.load()

    assert config_path.exists()
    assert len(registry) == 0
    assert settings.listen_port == 8080
    assert settings.vnc_viewer == "vncviewer"
    assert settings.vnc_password_file.endswith("passwd")

    document = json.loads(config_path.read_text(encoding="utf-8"))
    assert document["devices"] == []
    assert document["listen_port"] == 8080


def test_load_save_load_round_trip(store, settings):
    registry = DeviceRegistry()
    registry.add(Device(name="Office", ip_address="10.0.0.5", protocol="vnc", port=5901, full_screen=True))
    registry.add(Device(id="lab", name="Lab", ip_address="10.0.0.6", protocol="rdp",
                        username="admin", password="opaque", description="rack 2", screen="1"))
    settings.auto_start = True
    settings.auto_start_id = "lab"

    store.save(registry, settings)
    loaded_registry, loaded_settings = store.load()
    store.save(loaded_registry, loaded_settings)
    again_registry, again_settings = store.load()

    assert loaded_registry.list() == registry.list()
    assert loaded_settings == settings
    assert again_registry.list() == registry.list()
    assert again_settings == settings


def test_saved_document_uses_flat_schema(store, config_path, settings):
    registry = DeviceRegistry([Device(id="pc1", name="A", ip_address="1.2.3.4")])
    store.save(registry, settings)

    document = json.loads(config_path.read_text(encoding="utf-8"))
    assert set(document) == {
        "listen_port", "auto_start", "auto_start_id",
        "vnc_viewer", "vnc_password_file", "rdp_viewer", "devices",
    }
    assert set(document["devices"][0]) == {
        "id", "name", "ip_address", "protocol", "port", "username",
        "password", "full_screen", "description", "screen",
    }


@pytest.mark.parametrize("port", [0, 70000, -1])
def test_validation_rejects_bad_listen_port(port):
    with pytest.raises(ValidationError):
        validate(DeviceRegistry(), Settings(listen_port=port))


def test_validation_rejects_dangling_auto_start():
    registry = DeviceRegistry([Device(id="pc1")])
    with pytest.raises(ValidationError):
        validate(registry, Settings(auto_start=True, auto_start_id="pcX"))


def test_validation_allows_auto_start_without_target():
    validate(DeviceRegistry(), Settings(auto_start=True, auto_start_id=""))


def test_validation_ignores_target_when_auto_start_disabled():
    validate(DeviceRegistry(), Settings(auto_start=False, auto_start_id="pcX"))


def test_validation_rejects_bad_device_port():
    with pytest.raises(ValidationError):
        validate(DeviceRegistry([Device(id="a", port=70000)]), Settings())


def test_load_rejects_invalid_document(store, config_path):
    _write(config_path, {"listen_port": 0, "devices": []})
    with pytest.raises(ValidationError):
        store.load()


def test_load_rejects_duplicate_ids(store, config_path):
    _write(config_path, {"devices": [{"id": "pc1"}, {"id": "pc1"}]})
    with pytest.raises(ValidationError):
        store.load()


def test_load_rejects_corrupt_json(store, config_path):
    config_path.parent.mkdir(parents=True)
    config_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceError):
        store.load()


def test_load_fills_missing_keys_with_defaults(store, config_path):
    _write(config_path, {"devices": [{"id": "pc3", "name": "A", "ip_address": "1.1.1.1"}]})
    registry, settings = store.load()
    assert settings.listen_port == 8080
    assert settings.vnc_viewer == "vncviewer"
    assert registry.get("pc3").protocol == "vnc"
    assert registry.get("pc3").port == 0


def test_save_refuses_invalid_state(store, config_path, settings):
    store.save(DeviceRegistry(), settings)
    before = config_path.read_text(encoding="utf-8")

    settings.listen_port = 0
    with pytest.raises(ValidationError):
        store.save(DeviceRegistry([Device(id="a")]), settings)

    assert config_path.read_text(encoding="utf-8") == before


def test_save_failure_raises_persistence_error(tmp_path, settings):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = ConfigStore(blocker / "config.json")

    with pytest.raises(PersistenceError):
        store.save(DeviceRegistry(), settings)


def test_save_leaves_no_temp_files(store, config_path, settings):
    store.save(DeviceRegistry(), settings)
    store.save(DeviceRegistry([Device(id="a")]), settings)
    assert [p.name for p in config_path.parent.iterdir()] == ["config.json"]
