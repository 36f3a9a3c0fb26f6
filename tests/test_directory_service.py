import math

import pytest

from immidir.directory.query import ListFilters
from immidir.directory.registry import ResourceRegistry
from immidir.directory.service import ResourceDirectory
from immidir.domain.errors import InvalidArgument, NotFound, StoreFailure, ValidationError
from immidir.domain.models import Lawyer, Shelter
from immidir.store.memory import InMemoryResourceStore

from conftest import memory_settings

KM_PER_DEG = 111.19492664455873
ORIGIN = (40.0, -100.0)


def _shelter(name, rating=0, city="Springfield", state="IL", lat=0.0, lon=0.0, **extra):
    return {
        "name": name,
        "description": f"{name} shelter",
        "rating": rating,
        "address": {"city": city, "state": state},
        "location": {"type": "Point", "coordinates": [lon, lat]},
        **extra,
    }


def _north_of_origin(km):
    return {"lat": ORIGIN[0] + km / KM_PER_DEG, "lon": ORIGIN[1]}


def test_create_get_update_delete_roundtrip(directory):
    created = directory.create("shelter", _shelter("Hope", rating=4.6, shelterType="Emergency"))
    assert directory.get("shelter", created.id).shelter_type == "Emergency"

    updated = directory.update("shelters", created.id, {"capacity": 120})
    assert updated.capacity == 120

    deleted = directory.delete("shelter", created.id)
    assert deleted.is_active is False


def test_soft_deleted_records_disappear_from_list_and_search(directory):
    keep = directory.create("shelter", _shelter("Hope Center", rating=4))
    gone = directory.create("shelter", _shelter("Hope Haven", rating=5, **_north_of_origin(1)))
    directory.delete("shelter", gone.id)

    listed = directory.list("shelter")
    assert [r["id"] for r in listed.data] == [keep.id]
    assert listed.pagination.total == 1

    near = directory.list("shelter", {"lat": ORIGIN[0], "lng": ORIGIN[1], "radius_km": 10})
    assert near.data == []

    assert [r.id for r in directory.search("shelter", "hope")] == [keep.id]

    fetched = directory.get("shelter", gone.id)
    assert fetched.is_active is False


def test_delete_twice_succeeds_and_updated_at_never_decreases(directory):
    record = directory.create("lawyer", {"name": "ILG", "description": "Family visas"})
    first = directory.delete("lawyer", record.id)
    second = directory.delete("lawyer", record.id)
    assert second.is_active is False
    assert second.updated_at >= first.updated_at >= record.updated_at


def test_non_geo_pages_cover_every_record_once_sorted_by_rating(directory):
    ratings = [3.1, 4.9, 0.5, 2.2, 4.0, 1.7, 3.8]
    for i, rating in enumerate(ratings):
        directory.create("shelter", _shelter(f"s{i}", rating=rating))

    limit = 3
    first = directory.list("shelter", {"limit": limit})
    assert first.pagination.pages == math.ceil(len(ratings) / limit)
    assert first.pagination.total == len(ratings)

    seen = []
    for page in range(1, first.pagination.pages + 1):
        seen.extend(directory.list("shelter", {"limit": limit, "page": page}).data)
    assert len({r["id"] for r in seen}) == len(ratings)
    assert [r["rating"] for r in seen] == sorted(ratings, reverse=True)
    assert all("distance" not in r for r in seen)


def test_sort_by_accepts_wire_names_and_puts_missing_values_last(directory):
    directory.create("shelter", _shelter("small", capacity=10))
    directory.create("shelter", _shelter("unknown"))
    directory.create("shelter", _shelter("big", capacity=200))
    page = directory.list("shelter", {"sortBy": "capacity"})
    assert [r["name"] for r in page.data] == ["big", "small", "unknown"]


def test_geo_filter_returns_records_within_radius_with_distances(directory):
    for name, km in [("two", 2), ("sixty", 60), ("ten", 10)]:
        directory.create("shelter", _shelter(name, **_north_of_origin(km)))

    page = directory.list("shelter", {"lat": ORIGIN[0], "lng": ORIGIN[1], "radiusKm": 50})
    assert [(r["name"], r["distance"]) for r in page.data] == [("two", 2.0), ("ten", 10.0)]
    assert page.pagination.total == 2
    assert page.pagination.pages == 1


def test_geo_branch_paginates_nearest_first(directory):
    for km in [5, 1, 4, 2, 3]:
        directory.create("shelter", _shelter(f"k{km}", **_north_of_origin(km)))
    page = directory.list("shelter", {"lat": ORIGIN[0], "lng": ORIGIN[1], "limit": 2, "page": 2})
    assert [r["name"] for r in page.data] == ["k3", "k4"]
    assert page.pagination.pages == 3


def test_geo_total_can_reproduce_the_radius_blind_count(clock):
    from immidir.directory.registry import build_registry

    settings = memory_settings(geo_total_mode="predicate")
    directory = ResourceDirectory(build_registry(settings, clock=clock), settings)
    directory.create("shelter", _shelter("near", **_north_of_origin(1)))
    directory.create("shelter", _shelter("far", **_north_of_origin(500)))

    page = directory.list("shelter", {"lat": ORIGIN[0], "lng": ORIGIN[1], "radiusKm": 50})
    assert len(page.data) == 1
    assert page.pagination.total == 2


def test_only_one_coordinate_falls_back_to_attribute_sort(directory):
    directory.create("shelter", _shelter("low", rating=1, **_north_of_origin(1)))
    directory.create("shelter", _shelter("high", rating=5, **_north_of_origin(900)))
    page = directory.list("shelter", {"lat": ORIGIN[0]})
    assert [r["name"] for r in page.data] == ["high", "low"]
    assert "distance" not in page.data[0]


def test_city_and_state_filters_apply_to_both_branches(directory):
    directory.create("shelter", _shelter("a", city="New York", state="NY", **_north_of_origin(1)))
    directory.create("shelter", _shelter("b", city="Newark", state="NJ", **_north_of_origin(2)))
    directory.create("shelter", _shelter("c", city="Boston", state="MA", **_north_of_origin(3)))

    assert {r["name"] for r in directory.list("shelter", {"city": "new"}).data} == {"a", "b"}
    assert [r["name"] for r in directory.list("shelter", {"city": "new", "state": "nj"}).data] == ["b"]
    geo = directory.list("shelter", {"state": "ny", "lat": ORIGIN[0], "lng": ORIGIN[1]})
    assert [r["name"] for r in geo.data] == ["a"]


def test_list_defaults_come_from_settings(clock):
    from immidir.directory.registry import build_registry

    settings = memory_settings(default_limit=2)
    directory = ResourceDirectory(build_registry(settings, clock=clock), settings)
    for i in range(3):
        directory.create("lawyer", {"name": f"l{i}", "description": "d"})
    page = directory.list("lawyer")
    assert page.pagination.limit == 2
    assert page.pagination.pages == 2
    assert directory.list("lawyer", ListFilters(limit=5)).pagination.limit == 5


@pytest.mark.parametrize(
    "filters",
    [{"limit": 0}, {"page": 0}, {"radiusKm": -1}, {"lat": 95, "lng": 0}, {"sortBy": "nope"}, {"sortBy": "location"}, {"bogus": 1}],
)
def test_malformed_filters_raise_invalid_argument(directory, filters):
    directory.create("shelter", _shelter("a"))
    directory.create("shelter", _shelter("b"))
    with pytest.raises(InvalidArgument):
        directory.list("shelter", filters)


def test_search_requires_keyword_and_caps_results(directory):
    for i in range(5):
        directory.create("lawyer", {"name": f"Visa Law {i}", "description": "d", "rating": i})
    directory.create("lawyer", {"name": "Other", "description": "d", "address": {"state": "VA"}, "rating": 5})

    with pytest.raises(InvalidArgument):
        directory.search("lawyer", "")
    with pytest.raises(InvalidArgument):
        directory.search("lawyer", None)

    results = directory.search("lawyer", "visa", limit=3)
    assert [r.rating for r in results] == [4, 3, 2]
    assert [r.name for r in directory.search("lawyer", "va")][0] == "Other"


def test_shelter_with_bogus_type_is_rejected_and_count_unchanged(directory):
    directory.create("shelter", _shelter("ok"))
    with pytest.raises(ValidationError) as info:
        directory.create("shelter", _shelter("bad", shelterType="Bogus"))
    assert "shelterType" in info.value.fields
    assert directory.list("shelter").pagination.total == 1


def test_missing_ids_raise_not_found(directory):
    for op in (
        lambda: directory.get("consulate", "nope"),
        lambda: directory.update("consulate", "nope", {"name": "x"}),
        lambda: directory.delete("consulate", "nope"),
    ):
        with pytest.raises(NotFound):
            op()


def test_unknown_kind_is_invalid_argument(directory):
    with pytest.raises(InvalidArgument):
        directory.list("embassies-of-mars")


class _BrokenStore(InMemoryResourceStore):
    def query(self, where, near=None):
        raise ConnectionError("database unreachable")


def test_store_errors_surface_as_store_failure(clock):
    registry = ResourceRegistry()
    registry.register("Lawyer", Lawyer, _BrokenStore(Lawyer, clock=clock))
    directory = ResourceDirectory(registry, memory_settings())
    with pytest.raises(StoreFailure) as info:
        directory.list("lawyer")
    assert isinstance(info.value.__cause__, ConnectionError)


def test_kinds_are_independent(directory):
    directory.create("shelter", _shelter("s"))
    assert directory.list("lawyer").pagination.total == 0
    assert Shelter.kind in directory.registry.keys()
