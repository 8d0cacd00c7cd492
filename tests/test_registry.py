"""Tests for the JSON registry collections and installation state."""

import json

import pytest

from khata.exceptions import VillageNotFoundError
from khata.registry import AreaStore, CustomerStore, VillageStore
from khata.state import AppState


def test_area_store_roundtrip(data_paths):
    """Test that areas persist with camelCase keys."""
    store = AreaStore(data_paths.areas_file)
    area = store.create("North", is_onboarding=True)

    data = json.loads(data_paths.areas_file.read_text())
    assert data[0]["id"] == area.id
    assert data[0]["isOnboarding"] is True
    assert "createdAt" in data[0]

    assert AreaStore(data_paths.areas_file).get(area.id) == area


def test_missing_collection_is_empty(data_paths):
    """Test that an absent collection file reads as empty."""
    assert VillageStore(data_paths.villages_file).all() == []


def test_allocate_serial_advances(data_paths):
    """Test that serial allocation persists the counter."""
    store = VillageStore(data_paths.villages_file)
    village = store.create("area-1", "Rampur")

    assert store.allocate_serial(village.id) == 1
    assert store.allocate_serial(village.id) == 2
    assert VillageStore(data_paths.villages_file).get(village.id).next_serial_number == 3


def test_allocate_serial_unknown_village(data_paths):
    """Test that allocating in a missing village raises."""
    with pytest.raises(VillageNotFoundError):
        VillageStore(data_paths.villages_file).allocate_serial("missing")


def test_delete_by_area(data_paths):
    """Test that area-scoped deletion leaves other areas alone."""
    store = CustomerStore(data_paths.customers_file)
    for area_id, name in [("a1", "X"), ("a2", "Y"), ("a1", "Z")]:
        store.create(
            area_id=area_id,
            village_id="v",
            village_name="V",
            name=name,
            phone="",
            serial_number=1,
        )

    assert store.delete_by_area("a1") == 2
    assert [c.name for c in store.all()] == ["Y"]


def test_save_leaves_no_temp_file(data_paths):
    """Test that the atomic save cleans up after itself."""
    AreaStore(data_paths.areas_file).create("North", is_onboarding=False)
    assert not data_paths.areas_file.with_suffix(".tmp").exists()


def test_state_load_or_create_persists_device_id(data_paths):
    """Test that the device id is generated once and then reused."""
    first = AppState.load_or_create(data_paths.state_file)
    second = AppState.load_or_create(data_paths.state_file)

    assert first.device_id
    assert second.device_id == first.device_id


def test_state_corrupted_file_falls_back(data_paths):
    """Test that unreadable state yields fresh state rather than an error."""
    data_paths.state_file.write_text("{not json")
    state = AppState.load(data_paths.state_file)
    assert state.selected_area_id is None
