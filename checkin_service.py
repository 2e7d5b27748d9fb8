"""Check-in validation and aggregate recomputation"""
import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import CooldownActive, NotFound, SightingError, StoreError, WindowClosed
from models import Checkin
from sighting_service import get_live_sighting
from time_windows import cooldown_cutoff, cooldown_retry_after, in_cooldown, is_checkin_open

logger = logging.getLogger(__name__)


class CheckinAggregate(NamedTuple):
    checkin_count: Optional[int]
    last_checkin_at: Optional[datetime]


EMPTY_AGGREGATE = CheckinAggregate(0, None)


def checkin_aggregates(db: Session, sighting_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, CheckinAggregate]:
    """Count and latest timestamp per sighting, in one grouped query."""
    ids = list(sighting_ids)
    if not ids:
        return {}
    rows = (
        db.query(Checkin.sighting_id, func.count(Checkin.id), func.max(Checkin.created_at))
        .filter(Checkin.sighting_id.in_(ids))
        .group_by(Checkin.sighting_id)
        .all()
    )
    return {sid: CheckinAggregate(count, last) for sid, count, last in rows}


def submit_checkin(
    db: Session,
    sighting_id,
    device_uuid: str,
    anon_user_number: int,
    now: datetime,
) -> CheckinAggregate:
    """Record that ``device_uuid`` still sees the sighting and return fresh aggregates.

    Rejections, in order: missing or deleted sighting (NotFound), sighting
    older than the check-in window (WindowClosed), same device checked in on
    it within the cooldown (CooldownActive).
    """
    try:
        sighting = get_live_sighting(db, sighting_id)
        if sighting is None:
            raise NotFound("Sighting not found.")

        if not is_checkin_open(sighting.created_at, now):
            raise WindowClosed("Check-ins are closed for this sighting (older than 90 minutes).")

        recent = [
            ts for (ts,) in db.query(Checkin.created_at)
            .filter(
                Checkin.sighting_id == sighting.id,
                Checkin.device_uuid == device_uuid,
                Checkin.created_at >= cooldown_cutoff(now),
            )
            .all()
        ]
        if in_cooldown(recent, now):
            raise CooldownActive(
                "Cooldown active: you can check in again in a few minutes.",
                retry_after=cooldown_retry_after(max(recent), now),
            )

        checkin = Checkin(
            id=uuid.uuid4(),
            created_at=now,
            sighting_id=sighting.id,
            device_uuid=device_uuid,
            anon_user_number=anon_user_number,
        )
        db.add(checkin)
        db.commit()
    except SightingError as e:
        db.rollback()
        logger.warning(f"Check-in rejected ({e.code}) on {sighting_id} by {device_uuid}")
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Insert checkin error")
        raise StoreError("Failed to check in")

    sid = sighting.id
    logger.info(f"Check-in on {sid} by {device_uuid}")

    # The insert is committed; a failed recompute must not fail the request
    try:
        return checkin_aggregates(db, [sid]).get(sid, EMPTY_AGGREGATE)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Aggregate query error for sighting {sid}")
        return CheckinAggregate(None, now)
