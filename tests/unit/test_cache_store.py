from __future__ import annotations

import json
import os

import pytest

from asset_sync.cache.store import (
    CacheMiss,
    CacheStoreError,
    FileCacheStore,
    MemoryCacheStore,
    MANIFEST_KEY,
    build_manifest,
    load_snapshot,
    save_snapshot,
)
from asset_sync.models.config_models import TableRole
from asset_sync.models.records import Record
from asset_sync.models.snapshot import SyncSnapshot

KEYS = {
    TableRole.PRODUCTS: "products",
    TableRole.REPAIRS: "repairsData",
    TableRole.MAINTENANCE: "maintenanceData",
    TableRole.SPECS: "specsData",
}


def _snapshot() -> SyncSnapshot:
    return SyncSnapshot(
        products=(Record({"id": 1, "rowIndex": 2, "sn": "SN-1", "partNames": ("Battery",)}),),
        repairs={"SN-1": (Record({"productSn": "SN-1", "repairCost": 500.0, "partNames": ()}),)},
        maintenance={},
        specs={"SN-1": (Record({"productSn": "SN-1", "specName": "RAM", "partNames": ()}),)},
        generation=3,
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryCacheStore()
    return FileCacheStore(tmp_path / "cache")


def test_entries_round_trip(store):
    store.save("products", [{"sn": "SN-1"}])
    assert store.load("products") == [{"sn": "SN-1"}]


def test_missing_entry_is_none(store):
    assert store.load("products") is None


def test_loaded_value_does_not_alias_saved_value(store):
    value = {"SN-1": [{"productSn": "SN-1"}]}
    store.save("repairsData", value)
    value["SN-1"].append({"productSn": "mutated"})
    assert store.load("repairsData") == {"SN-1": [{"productSn": "SN-1"}]}


@pytest.mark.parametrize("key", ["../escape", "with space", "", "a/b"])
def test_invalid_keys_are_rejected(store, key):
    with pytest.raises(ValueError):
        store.save(key, [])


def test_unserializable_value_is_store_error(store):
    with pytest.raises(CacheStoreError):
        store.save("products", {"bad": object()})


def test_snapshot_survives_save_and_load(store):
    """Restoring gives back the same data (not the generation metadata)."""
    snapshot = _snapshot()
    save_snapshot(store, snapshot, KEYS)
    restored = load_snapshot(store, KEYS)

    assert restored.to_json() == snapshot.to_json()
    assert restored.products[0].part_names == ("Battery",)
    assert restored.maintenance == {}
    assert restored.generation == 0


def test_partial_cache_is_a_miss(store):
    store.save("products", [])
    store.save("repairsData", {})
    with pytest.raises(CacheMiss, match="maintenanceData"):
        load_snapshot(store, KEYS)


def test_empty_cache_is_a_miss(store):
    with pytest.raises(CacheMiss):
        load_snapshot(store, KEYS)


def _store_entries(store, payloads):
    store.save_many({**payloads, MANIFEST_KEY: build_manifest(payloads)})


def test_wrong_shape_is_a_miss(store):
    _store_entries(store, {"products": {"not": "a list"}, "repairsData": {}, "maintenanceData": {}, "specsData": {}})
    with pytest.raises(CacheMiss, match="malformed"):
        load_snapshot(store, KEYS)


def test_wrongly_typed_field_is_a_miss(store):
    payloads = {
        "products": [{"sn": "SN-1", "partNames": 5}],
        "repairsData": {},
        "maintenanceData": {},
        "specsData": {},
    }
    _store_entries(store, payloads)
    with pytest.raises(CacheMiss, match="malformed"):
        load_snapshot(store, KEYS)


def test_entries_without_manifest_are_a_miss(store):
    for key in KEYS.values():
        store.save(key, [] if key == "products" else {})
    with pytest.raises(CacheMiss, match="manifest"):
        load_snapshot(store, KEYS)


def test_entry_from_another_save_is_a_miss(store):
    save_snapshot(store, _snapshot(), KEYS)
    store.save("specsData", {})
    with pytest.raises(CacheMiss, match="specsData"):
        load_snapshot(store, KEYS)


def test_manifest_key_is_reserved(store):
    with pytest.raises(ValueError, match="reserved"):
        save_snapshot(store, _snapshot(), {**KEYS, TableRole.SPECS: MANIFEST_KEY})


def test_file_store_writes_one_json_file_per_key(tmp_path):
    store = FileCacheStore(tmp_path / "cache")
    save_snapshot(store, _snapshot(), KEYS)

    files = sorted(p.name for p in (tmp_path / "cache").iterdir())
    assert files == [
        "maintenanceData.json", "products.json", "repairsData.json", "snapshot_manifest.json", "specsData.json",
    ]
    products = json.loads((tmp_path / "cache" / "products.json").read_text(encoding="utf-8"))
    assert products[0]["partNames"] == ["Battery"]


def test_file_store_treats_corrupt_entry_as_absent(tmp_path):
    store = FileCacheStore(tmp_path)
    store.path_for("products").write_text("{not json", encoding="utf-8")
    assert store.load("products") is None


def test_file_store_write_failure_is_store_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = FileCacheStore(blocker / "cache")
    with pytest.raises(CacheStoreError):
        store.save("products", [])


def test_memory_store_membership():
    store = MemoryCacheStore()
    store.save("products", [])
    assert "products" in store
    assert "specsData" not in store


def test_memory_store_save_many_is_all_or_nothing():
    store = MemoryCacheStore()
    store.save("products", [{"sn": "SN-1"}])
    with pytest.raises(CacheStoreError):
        store.save_many({"products": [], "specsData": {"bad": object()}})
    assert store.load("products") == [{"sn": "SN-1"}]
    assert "specsData" not in store


def test_file_store_interrupted_snapshot_write_is_a_miss(tmp_path, monkeypatch):
    store = FileCacheStore(tmp_path / "cache")
    save_snapshot(store, _snapshot(), KEYS)

    newer = SyncSnapshot(
        products=_snapshot().products + (Record({"sn": "SN-NEW", "partNames": ()}),),
        specs={"SN-NEW": (Record({"productSn": "SN-NEW", "specName": "RAM", "partNames": ()}),)},
    )
    real_replace = os.replace

    def replace_failing_on_specs(src, dst):
        if os.path.basename(dst) == "specsData.json":
            raise OSError("No space left on device")
        real_replace(src, dst)

    monkeypatch.setattr("asset_sync.cache.store.os.replace", replace_failing_on_specs)
    with pytest.raises(CacheStoreError):
        save_snapshot(store, newer, KEYS)
    monkeypatch.undo()

    with pytest.raises(CacheMiss, match="out of step"):
        load_snapshot(store, KEYS)
