import json

import pytest

from immidir.catalog.loader import load_catalog, seed_directory
from immidir.config.settings import get_settings
from immidir.core.geo import GeoPoint
from immidir.domain.errors import ValidationError


class _StubGeocoder:
    def __init__(self):
        self.calls = []

    def geocode(self, text):
        self.calls.append(text)
        return GeoPoint(lat=41.8781, lon=-87.6298)


def test_packaged_catalog_seeds_every_kind(directory):
    counts = seed_directory(directory, load_catalog(get_settings().catalog.path))
    assert counts == {"consulate": 3, "lawyer": 2, "surgeon": 2, "shelter": 2, "ice-resource": 2}

    sf = directory.list("consulates", {"lat": 37.7749, "lng": -122.4194, "radiusKm": 10})
    assert [r["name"] for r in sf.data] == ["San Francisco Consulate"]
    assert sf.data[0]["distance"] == 0.0


def test_reseeding_replaces_instead_of_duplicating(directory):
    catalog = load_catalog(get_settings().catalog.path)
    seed_directory(directory, catalog)
    seed_directory(directory, catalog)
    assert directory.list("lawyer").pagination.total == 2

    seed_directory(directory, {"lawyer": catalog["lawyer"]}, reset=False)
    assert directory.list("lawyer").pagination.total == 4


def test_invalid_catalog_record_raises_validation_error(directory):
    with pytest.raises(ValidationError):
        seed_directory(directory, {"shelter": [{"name": "x", "description": "y", "shelterType": "Bogus"}]})


def test_bad_record_leaves_previously_seeded_kinds_untouched(directory):
    catalog = load_catalog(get_settings().catalog.path)
    seed_directory(directory, catalog)

    broken = {
        "lawyer": [{"name": "Replacement", "description": "d"}],
        "shelter": [catalog["shelter"][0], {"name": "x", "description": "y", "shelterType": "Bogus"}],
    }
    with pytest.raises(ValidationError) as info:
        seed_directory(directory, broken)
    assert info.value.fields == ["shelterType"]
    assert directory.list("lawyer").pagination.total == 2
    assert directory.list("shelter").pagination.total == 2
    assert directory.search("lawyer", "Replacement") == []


def test_geocoder_fills_missing_coordinates_only(directory):
    geocoder = _StubGeocoder()
    catalog = {
        "shelter": [
            {"name": "No coords", "description": "d", "address": {"street": "1 Main St", "city": "Chicago", "state": "IL"}},
            {"name": "Has coords", "description": "d", "address": {"city": "Chicago"}, "location": {"coordinates": [-87.0, 41.0]}},
        ]
    }
    seed_directory(directory, catalog, geocoder=geocoder)
    assert geocoder.calls == ["1 Main St, Chicago, IL, USA"]
    located = directory.search("shelter", "No coords")[0]
    assert located.location.coordinates == (-87.6298, 41.8781)


def test_load_catalog_rejects_non_mapping_root(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_catalog(path)
