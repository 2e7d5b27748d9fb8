"""Great-circle distance, bounding boxes and the submission cell grid"""
import math
from typing import List, Tuple

EARTH_RADIUS_M = 6371000.0

# Grid used to serialize submissions at the same place
CELL_DEG = 0.001
# Rows whose band lies beyond this latitude collapse to one cell each
POLAR_LAT = 85.0


def is_valid_coordinate(lat, lng) -> bool:
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    try:
        la, lo = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(la) and math.isfinite(lo)):
        return False
    return -90.0 <= la <= 90.0 and -180.0 <= lo <= 180.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lng: float, radius_m: float) -> Tuple[float, float, List[Tuple[float, float]]]:
    """Return ``(min_lat, max_lat, lng_ranges)`` enclosing a circle.

    ``lng_ranges`` holds one range, or two when the box wraps across the
    antimeridian. A box touching a pole spans every longitude.
    """
    dlat = math.degrees(radius_m / EARTH_RADIUS_M)
    min_lat = max(-90.0, lat - dlat)
    max_lat = min(90.0, lat + dlat)
    full = [(-180.0, 180.0)]
    if min_lat <= -90.0 or max_lat >= 90.0:
        return min_lat, max_lat, full

    # Longitude degrees shrink fastest at the box edge nearest a pole
    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    if cos_lat <= 1e-12:
        return min_lat, max_lat, full
    dlng = math.degrees(radius_m / (EARTH_RADIUS_M * cos_lat))
    if dlng >= 180.0:
        return min_lat, max_lat, full

    lo, hi = lng - dlng, lng + dlng
    if lo < -180.0:
        return min_lat, max_lat, [(lo + 360.0, 180.0), (-180.0, hi)]
    if hi > 180.0:
        return min_lat, max_lat, [(lo, 180.0), (-180.0, hi - 360.0)]
    return min_lat, max_lat, [(lo, hi)]


def _row(lat: float) -> int:
    return math.floor(lat / CELL_DEG)


def _col(lng: float) -> int:
    return math.floor(lng / CELL_DEG)


def _is_polar_row(row: int) -> bool:
    return row * CELL_DEG >= POLAR_LAT or (row + 1) * CELL_DEG <= -POLAR_LAT


def cell_key(lat: float, lng: float) -> str:
    row = _row(lat)
    if _is_polar_row(row):
        return f"{row}:*"
    return f"{row}:{_col(lng)}"


def cells_for_radius(lat: float, lng: float, radius_m: float) -> List[str]:
    """Sorted keys of every grid cell the circle's bounding box touches."""
    min_lat, max_lat, lng_ranges = bounding_box(lat, lng, radius_m)
    keys = set()
    for row in range(_row(min_lat), _row(max_lat) + 1):
        if _is_polar_row(row):
            keys.add(f"{row}:*")
            continue
        for lo, hi in lng_ranges:
            for col in range(_col(lo), _col(hi) + 1):
                keys.add(f"{row}:{col}")
    return sorted(keys)
