"""Geospatial proximity index over live sightings.

The store narrows candidates to non-deleted rows inside the visibility
window and inside the bounding box of the duplicate radius; the exact
haversine distance then ranks that bounded set.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from geo import bounding_box, cells_for_radius, haversine_m
from locks import claim_cells
from models import Sighting
from time_windows import visibility_cutoff

DUPLICATE_RADIUS_M = 25.0


def find_nearby_active(
    db: Session,
    lat: float,
    lng: float,
    now: datetime,
    radius_m: float = DUPLICATE_RADIUS_M,
) -> Optional[Sighting]:
    """Nearest live sighting within ``radius_m`` of the point, or None."""
    min_lat, max_lat, lng_ranges = bounding_box(lat, lng, radius_m)
    rows = (
        db.query(Sighting)
        .filter(
            Sighting.is_deleted == False,
            Sighting.created_at >= visibility_cutoff(now),
            Sighting.lat >= min_lat,
            Sighting.lat <= max_lat,
            or_(*[and_(Sighting.lng >= lo, Sighting.lng <= hi) for lo, hi in lng_ranges]),
        )
        .all()
    )

    best = None
    best_rank = None
    for row in rows:
        distance = haversine_m(lat, lng, row.lat, row.lng)
        if distance > radius_m:
            continue
        # Nearest first; the newer sighting wins a tie
        rank = (distance, -(row.created_at - datetime.min).total_seconds())
        if best_rank is None or rank < best_rank:
            best, best_rank = row, rank
    return best


def claim_neighbourhood(db: Session, lat: float, lng: float, now: datetime,
                        radius_m: float = DUPLICATE_RADIUS_M):
    """Lock every grid cell a duplicate of this point could live in."""
    return claim_cells(db, cells_for_radius(lat, lng, radius_m), now)
