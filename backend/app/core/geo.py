"""
Geodesy helpers for the mechanic proximity search.

- great-circle (haversine) distance on a spherical Earth
- geohash spatial key (pygeohash), stored on mechanics and used as the
  index on databases without PostGIS
- covering cells: the set of geohash cells that covers a search circle,
  turned into index range predicates by the query layer
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pygeohash

EARTH_RADIUS_M = 6_371_008.8
METERS_PER_MILE = 1609.34

# 9 chars ~ 4.8m x 4.8m cells
GEOHASH_PRECISION = 9
# Max number of geohash cells a search may expand into
MAX_COVER_CELLS = 24

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def miles_to_meters(miles: float) -> float:
    return float(miles) * METERS_PER_MILE


def meters_to_miles(meters: float) -> float:
    return float(meters) / METERS_PER_MILE


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_valid_position(latitude: float, longitude: float) -> bool:
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def encode_geohash(latitude: float, longitude: float, precision: int = GEOHASH_PRECISION) -> str:
    if not is_valid_position(latitude, longitude):
        raise ValueError(f"position out of range: ({latitude}, {longitude})")
    return pygeohash.encode(latitude, longitude, precision=precision)


def cell_size(precision: int) -> Tuple[float, float]:
    """(lat_degrees, lng_degrees) of one geohash cell at this precision."""
    total_bits = 5 * precision
    lng_bits = (total_bits + 1) // 2
    lat_bits = total_bits // 2
    return 180.0 / (1 << lat_bits), 360.0 / (1 << lng_bits)


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    # may fall outside [-180, 180] when the box crosses the antimeridian
    min_lng: float
    max_lng: float
    full_longitude: bool = False


def bounding_box(latitude: float, longitude: float, radius_m: float) -> BoundingBox:
    """
    Smallest lat/lng box containing every point within radius_m of the center
    on the sphere. A box that reaches a pole spans every longitude.
    """
    angular = max(radius_m, 0.0) / EARTH_RADIUS_M
    lat_r = math.radians(latitude)
    lng_r = math.radians(longitude)

    min_lat = lat_r - angular
    max_lat = lat_r + angular

    if min_lat > -math.pi / 2 and max_lat < math.pi / 2:
        dlng = math.asin(min(1.0, math.sin(angular) / math.cos(lat_r)))
        return BoundingBox(
            min_lat=math.degrees(min_lat),
            max_lat=math.degrees(max_lat),
            min_lng=math.degrees(lng_r - dlng),
            max_lng=math.degrees(lng_r + dlng),
        )

    return BoundingBox(
        min_lat=math.degrees(max(min_lat, -math.pi / 2)),
        max_lat=math.degrees(min(max_lat, math.pi / 2)),
        min_lng=-180.0,
        max_lng=180.0,
        full_longitude=True,
    )


def _index_span(lo: float, hi: float, origin: float, size: float) -> Tuple[int, int]:
    # a bound lying exactly on a cell edge also takes the cell below it
    return math.ceil((lo - origin) / size) - 1, math.floor((hi - origin) / size)


def covering_cells(
    latitude: float,
    longitude: float,
    radius_m: float,
    *,
    max_cells: int = MAX_COVER_CELLS,
    max_precision: int = GEOHASH_PRECISION,
) -> Optional[List[str]]:
    """
    Geohash cells (finest precision within the max_cells budget) that cover
    the search circle. None means no precision fits: scan every positioned row.
    """
    box = bounding_box(latitude, longitude, radius_m)

    for precision in range(max_precision, 0, -1):
        cell_lat, cell_lng = cell_size(precision)
        n_rows = int(round(180.0 / cell_lat))
        n_cols = int(round(360.0 / cell_lng))

        row_lo, row_hi = _index_span(box.min_lat, box.max_lat, -90.0, cell_lat)
        row_lo = min(max(row_lo, 0), n_rows - 1)
        row_hi = min(max(row_hi, 0), n_rows - 1)
        rows = row_hi - row_lo + 1

        if box.full_longitude:
            col_lo, col_hi = 0, n_cols - 1
        else:
            col_lo, col_hi = _index_span(box.min_lng, box.max_lng, -180.0, cell_lng)
            if col_hi - col_lo + 1 >= n_cols:
                col_lo, col_hi = 0, n_cols - 1
        cols = col_hi - col_lo + 1

        if rows * cols > max_cells:
            continue

        cells = set()
        for row in range(row_lo, row_hi + 1):
            center_lat = -90.0 + (row + 0.5) * cell_lat
            for col in range(col_lo, col_hi + 1):
                # columns past +-180 wrap around the antimeridian
                center_lng = -180.0 + ((col % n_cols) + 0.5) * cell_lng
                cells.add(encode_geohash(center_lat, center_lng, precision))
        return sorted(cells)

    return None


def geohash_range(cell: str) -> Tuple[str, Optional[str]]:
    """
    Half-open [lo, hi) string range of every geohash under this cell.
    hi is the next cell in base32 order (None past the last cell), so the
    range holds under any collation that orders digits before lowercase letters.
    """
    chars = list(cell)
    while chars:
        pos = _BASE32.index(chars[-1])
        if pos + 1 < len(_BASE32):
            chars[-1] = _BASE32[pos + 1]
            return cell, "".join(chars)
        chars.pop()
    return cell, None
