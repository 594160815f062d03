"""Tests for checkpoint persistence."""

import pytest

from conftest import make_listing_item


@pytest.mark.unit
def test_missing_checkpoint_loads_as_none(checkpoint_store):
    assert checkpoint_store.load("senate") is None
    assert checkpoint_store.pending_categories() == []


@pytest.mark.unit
def test_save_and_load_round_trip(checkpoint_store):
    items = [make_listing_item("1", "Salas Peña Jorge"), make_listing_item("2", "Lopez Diaz Marta")]
    checkpoint_store.save("senate", items, processed_count=8, failed_refs=["7"])

    loaded = checkpoint_store.load("senate")
    assert loaded.category == "senate"
    assert loaded.remaining_items == items
    assert loaded.processed_count == 8
    assert loaded.failed_refs == ["7"]
    assert checkpoint_store.pending_categories() == ["senate"]


@pytest.mark.unit
def test_save_replaces_previous_checkpoint_without_temp_files(checkpoint_store):
    checkpoint_store.save("senate", [make_listing_item("1", "Salas Peña Jorge")], 0)
    checkpoint_store.save("senate", [], 1)

    assert checkpoint_store.load("senate").remaining_items == []
    files = sorted(p.name for p in checkpoint_store.directory.iterdir())
    assert files == ["senate.json"]


@pytest.mark.unit
def test_clear_removes_checkpoint(checkpoint_store):
    checkpoint_store.save("deputies", [], 3)
    checkpoint_store.clear("deputies")
    checkpoint_store.clear("deputies")
    assert checkpoint_store.load("deputies") is None


@pytest.mark.unit
def test_corrupt_checkpoint_is_ignored(checkpoint_store):
    checkpoint_store.directory.mkdir(parents=True)
    checkpoint_store.path_for("senate").write_text("{not json", encoding="utf-8")
    assert checkpoint_store.load("senate") is None
