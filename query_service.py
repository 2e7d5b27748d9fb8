"""Read-only views over sightings enriched with check-in aggregates"""
import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from checkin_service import EMPTY_AGGREGATE, checkin_aggregates
from errors import StoreError
from models import Sighting
from schemas import AdminSightingOut, SightingOut, SpammerOut
from sighting_service import get_sighting_any

logger = logging.getLogger(__name__)

LIST_LIMIT = 500
ADMIN_LIST_LIMIT = 200
SPAMMER_WINDOW = timedelta(hours=24)
SPAMMER_LIMIT = 20


def list_active(db: Session, lookback: timedelta, now: datetime, limit: int = LIST_LIMIT) -> List[SightingOut]:
    """Live sightings created within ``lookback`` of ``now``, newest first."""
    try:
        rows = (
            db.query(Sighting)
            .filter(
                Sighting.is_deleted == False,
                Sighting.created_at >= now - lookback,
            )
            .order_by(Sighting.created_at.desc(), Sighting.id.desc())
            .limit(limit)
            .all()
        )
        aggregates = checkin_aggregates(db, [s.id for s in rows])
    except SQLAlchemyError:
        db.rollback()
        logger.exception("List sightings error")
        raise StoreError()

    result = []
    for s in rows:
        agg = aggregates.get(s.id, EMPTY_AGGREGATE)
        result.append(SightingOut.from_row(s, agg.checkin_count, agg.last_checkin_at))
    return result


def list_recent_for_admin(db: Session, limit: int = ADMIN_LIST_LIMIT) -> List[AdminSightingOut]:
    """Newest sightings including soft-deleted ones, with check-in counts."""
    try:
        rows = db.query(Sighting).order_by(Sighting.created_at.desc()).limit(limit).all()
        aggregates = checkin_aggregates(db, [s.id for s in rows])
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Admin list error")
        raise StoreError()

    result = []
    for s in rows:
        out = AdminSightingOut.model_validate(s)
        out.checkin_count = aggregates.get(s.id, EMPTY_AGGREGATE).checkin_count
        result.append(out)
    return result


def top_posting_devices(db: Session, now: datetime, limit: int = SPAMMER_LIMIT) -> List[SpammerOut]:
    """Devices ranked by sightings posted in the last 24 hours."""
    count = func.count(Sighting.id).label("cnt")
    try:
        rows = (
            db.query(Sighting.device_uuid, count)
            .filter(Sighting.created_at >= now - SPAMMER_WINDOW)
            .group_by(Sighting.device_uuid)
            .order_by(count.desc(), Sighting.device_uuid)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Spammer query error")
        raise StoreError()
    return [SpammerOut(device_uuid=device, count=cnt) for device, cnt in rows]


def admin_sighting(db: Session, sighting_id) -> AdminSightingOut:
    """One sighting by id, soft-deleted or not."""
    s = get_sighting_any(db, sighting_id)
    try:
        agg = checkin_aggregates(db, [s.id]).get(s.id, EMPTY_AGGREGATE)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Aggregate query error for sighting {s.id}")
        raise StoreError()
    out = AdminSightingOut.model_validate(s)
    out.checkin_count = agg.checkin_count
    return out
