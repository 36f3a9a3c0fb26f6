"""
Record store contract.

A store holds the records of ONE resource kind. The directory service only talks
to stores through this protocol, so a database-backed store can replace the
in-memory one as long as it can evaluate `RecordFilter` and `RadiusFilter`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, TypeVar

from immidir.domain.models import Resource

R = TypeVar("R", bound=Resource)


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle.casefold() in haystack.casefold()


@dataclass(frozen=True)
class RecordFilter:
    """Attribute predicate applied to active records.

    `city`/`state` are case-insensitive substring matches on the address;
    `keyword` matches name, description, address city or address state.
    """

    city: str | None = None
    state: str | None = None
    keyword: str | None = None

    def matches(self, record: Resource) -> bool:
        if self.city and not _contains(record.address.city, self.city):
            return False
        if self.state and not _contains(record.address.state, self.state):
            return False
        if self.keyword:
            haystacks = (record.name, record.description, record.address.city, record.address.state)
            if not any(_contains(h, self.keyword) for h in haystacks):
                return False
        return True


@dataclass(frozen=True)
class RadiusFilter:
    """Restrict results to records within `radius_km` of `(lat, lon)`."""

    lat: float
    lon: float
    radius_km: float


class ResourceStore(Protocol[R]):
    def insert(self, fields: Mapping[str, Any]) -> str:
        """Validate and store a new record; return its id."""
        ...

    def get(self, record_id: str) -> R:
        """Return the record regardless of its active flag; raise `NotFound` if absent."""
        ...

    def update(self, record_id: str, fields: Mapping[str, Any]) -> R:
        """Apply a partial update; raise `NotFound` or `ValidationError`."""
        ...

    def soft_delete(self, record_id: str) -> R:
        """Flag the record inactive; raise `NotFound` if absent."""
        ...

    def query(self, where: RecordFilter, near: RadiusFilter | None = None) -> list[R]:
        """Active records matching `where`; nearest first when `near` is given."""
        ...

    def count(self, where: RecordFilter, near: RadiusFilter | None = None) -> int:
        ...

    def clear(self) -> None:
        """Physically drop every record (catalog re-seeding only)."""
        ...
