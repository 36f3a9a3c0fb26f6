"""
Lightweight spatial indexing (lat/lon grid buckets).

Used by the in-memory stores to avoid haversine-testing every record on each
proximity query. Cells are fixed-size in degrees; a query visits only the cells
covered by the great-circle bounding box of the search circle.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

from immidir.core.geo import EARTH_RADIUS_KM, GeoPoint, haversine_km

T = TypeVar("T")


def check_cell_size(cell_size_deg: float) -> float:
    """Validate a grid cell size; it must split the 360 degrees of longitude evenly."""
    size = float(cell_size_deg)
    if not 0 < size <= 90:
        raise ValueError("cell_size_deg must be in (0, 90]")
    cols = round(360.0 / size)
    if abs(cols * size - 360.0) > 1e-9:
        raise ValueError(f"cell_size_deg must divide 360 evenly, got {size}")
    return size


@dataclass(frozen=True)
class _Entry(Generic[T]):
    item: T
    lat: float
    lon: float
    seq: int


class SpatialGridIndex(Generic[T]):
    def __init__(
        self,
        items: Iterable[T],
        *,
        get_latlon: Callable[[T], tuple[float, float]],
        cell_size_deg: float = 0.5,
    ):
        self._cell_size = check_cell_size(cell_size_deg)
        self._rows = int(math.ceil(180.0 / self._cell_size))
        self._cols = round(360.0 / self._cell_size)
        self._cells: dict[tuple[int, int], list[_Entry[T]]] = {}
        self._size = 0

        for seq, it in enumerate(items):
            lat, lon = get_latlon(it)
            e = _Entry(item=it, lat=float(lat), lon=float(lon), seq=seq)
            self._cells.setdefault(self._cell_key(e.lat, e.lon), []).append(e)
            self._size += 1

    def __len__(self) -> int:
        return self._size

    def _row(self, lat: float) -> int:
        return min(self._rows - 1, max(0, int(math.floor((lat + 90.0) / self._cell_size))))

    def _col(self, lon: float) -> int:
        return int(math.floor((lon + 180.0) / self._cell_size)) % self._cols

    def _cell_key(self, lat: float, lon: float) -> tuple[int, int]:
        return (self._row(lat), self._col(lon))

    def _candidate_cols(self, lat: float, lon: float, dlat_deg: float) -> Iterable[int]:
        if lat + dlat_deg >= 90.0 or lat - dlat_deg <= -90.0:
            # The circle covers a pole: every meridian is in range.
            return range(self._cols)
        ratio = math.sin(math.radians(dlat_deg)) / math.cos(math.radians(lat))
        if ratio >= 1.0:
            return range(self._cols)
        dlon_deg = math.degrees(math.asin(ratio))
        first = int(math.floor((lon - dlon_deg + 180.0) / self._cell_size))
        last = int(math.floor((lon + dlon_deg + 180.0) / self._cell_size))
        if last - first + 1 >= self._cols:
            return range(self._cols)
        # Modulo handles windows crossing the antimeridian.
        return sorted({c % self._cols for c in range(first, last + 1)})

    def query_within(self, *, lat: float, lon: float, radius_km: float) -> list[tuple[T, float]]:
        """Return `(item, distance_km)` pairs within `radius_km`, nearest first."""
        r = float(radius_km)
        if r <= 0:
            return []
        lat = float(lat)
        lon = float(lon)
        dlat_deg = math.degrees(r / EARTH_RADIUS_KM)
        rows = range(self._row(lat - dlat_deg), self._row(lat + dlat_deg) + 1)
        cols = list(self._candidate_cols(lat, lon, dlat_deg))

        origin = GeoPoint(lat=lat, lon=lon)
        hits: list[tuple[float, int, T]] = []
        for row in rows:
            for col in cols:
                cell = self._cells.get((row, col))
                if not cell:
                    continue
                for e in cell:
                    d = haversine_km(origin, GeoPoint(lat=e.lat, lon=e.lon))
                    if d <= r:
                        hits.append((d, e.seq, e.item))
        hits.sort(key=lambda h: (h[0], h[1]))
        return [(item, d) for d, _, item in hits]
