import json

import pytest

from immidir.domain.errors import StoreFailure, ValidationError
from immidir.domain.models import Consulate
from immidir.store.base import RecordFilter
from immidir.store.json_file import JsonFileResourceStore


def _consulate(**extra):
    return {"name": "NY Consulate", "description": "Visas", "country": "MX", **extra}


def test_records_survive_a_reload(tmp_path, clock):
    path = tmp_path / "consulate.json"
    store = JsonFileResourceStore(Consulate, path, clock=clock)
    record_id = store.insert(_consulate(address={"city": "New York"}))
    store.soft_delete(record_id)

    reloaded = JsonFileResourceStore(Consulate, path, clock=clock)
    record = reloaded.get(record_id)
    assert record.is_active is False
    assert record.address.city == "New York"
    assert record.created_at == store.get(record_id).created_at
    assert reloaded.count(RecordFilter()) == 0

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk[0]["isActive"] is False
    assert on_disk[0]["consulateType"] == "Consulate"


def test_failed_validation_does_not_touch_the_file(tmp_path, clock):
    path = tmp_path / "consulate.json"
    store = JsonFileResourceStore(Consulate, path, clock=clock)
    store.insert(_consulate())
    before = path.read_text(encoding="utf-8")

    with pytest.raises(ValidationError):
        store.insert(_consulate(consulateType="Palace"))
    assert path.read_text(encoding="utf-8") == before


def test_write_failure_leaves_memory_unchanged(tmp_path, clock, monkeypatch):
    store = JsonFileResourceStore(Consulate, tmp_path / "consulate.json", clock=clock)
    record_id = store.insert(_consulate())

    def broken(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("pathlib.Path.write_text", broken)
    with pytest.raises(StoreFailure):
        store.update(record_id, {"name": "Renamed"})
    assert store.get(record_id).name == "NY Consulate"


def test_corrupt_store_file_raises_store_failure(tmp_path):
    path = tmp_path / "consulate.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreFailure):
        JsonFileResourceStore(Consulate, path)


def test_clear_empties_the_file(tmp_path, clock):
    path = tmp_path / "consulate.json"
    store = JsonFileResourceStore(Consulate, path, clock=clock)
    store.insert(_consulate())
    store.clear()
    assert json.loads(path.read_text(encoding="utf-8")) == []
    assert len(store) == 0
