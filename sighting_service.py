"""Submission of new sightings: field rules, rate limit, duplicate check"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import Duplicate, NotFound, RateLimited, SightingError, StoreError, ValidationError
from geo import is_valid_coordinate
from models import TAGS, Sighting
from proximity import claim_neighbourhood, find_nearby_active
from schemas import SightingCreate
from time_windows import RATE_LIMIT_MAX_SIGHTINGS, rate_limit_cutoff, rate_limit_retry_after

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500


def parse_sighting_id(sighting_id) -> uuid.UUID:
    """Malformed ids cannot reference anything, so they are reported as missing."""
    if isinstance(sighting_id, uuid.UUID):
        return sighting_id
    try:
        return uuid.UUID(str(sighting_id))
    except (TypeError, ValueError):
        raise NotFound("Sighting not found.") from None


def validate_candidate(candidate: SightingCreate, media_prefix: str):
    if candidate.tag not in TAGS:
        raise ValidationError("Invalid tag. Must be Sighting, Warning, or Ticket.")
    if not is_valid_coordinate(candidate.lat, candidate.lng):
        raise ValidationError("Invalid lat/lng coordinates.")
    if not candidate.device_uuid or not candidate.device_uuid.strip():
        raise ValidationError("device_uuid is required.")
    if candidate.anon_user_number is None:
        raise ValidationError("anon_user_number is required.")
    if candidate.description and len(candidate.description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters.")
    if candidate.media_url:
        if not media_prefix or not candidate.media_url.startswith(media_prefix) \
                or len(candidate.media_url) <= len(media_prefix):
            raise ValidationError("Invalid media_url origin.")


def check_rate_limit(db: Session, device_uuid: str, now: datetime):
    count, oldest = (
        db.query(func.count(Sighting.id), func.min(Sighting.created_at))
        .filter(
            Sighting.device_uuid == device_uuid,
            Sighting.is_deleted == False,
            Sighting.created_at >= rate_limit_cutoff(now),
        )
        .one()
    )
    if count >= RATE_LIMIT_MAX_SIGHTINGS:
        raise RateLimited(
            f"Rate limit: you can only post {RATE_LIMIT_MAX_SIGHTINGS} sightings per hour.",
            retry_after=rate_limit_retry_after(oldest, now),
        )


def submit_sighting(
    db: Session,
    candidate: SightingCreate,
    now: datetime,
    media_prefix: str,
) -> Sighting:
    """Validate and persist a new sighting.

    Checks run cheapest first and the first failure wins: field rules, the
    per-device hourly quota, then the duplicate lookup. The duplicate lookup
    and the insert share one transaction that holds row locks on every grid
    cell a duplicate could occupy, so two submissions at the same place are
    serialized and only one of them is created.
    """
    validate_candidate(candidate, media_prefix)

    lat, lng = float(candidate.lat), float(candidate.lng)
    try:
        check_rate_limit(db, candidate.device_uuid, now)

        claim_neighbourhood(db, lat, lng, now)
        existing = find_nearby_active(db, lat, lng, now)
        if existing is not None:
            raise Duplicate(str(existing.id))

        sighting = Sighting(
            id=uuid.uuid4(),
            created_at=now,
            tag=candidate.tag,
            description=(candidate.description or "").strip() or None,
            media_url=candidate.media_url or None,
            lat=lat,
            lng=lng,
            device_uuid=candidate.device_uuid,
            anon_user_number=candidate.anon_user_number,
            is_deleted=False,
        )
        db.add(sighting)
        db.commit()
        db.refresh(sighting)
    except SightingError as e:
        db.rollback()
        logger.warning(f"Sighting rejected ({e.code}) for device {candidate.device_uuid}: {e.message}")
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Insert sighting error")
        raise StoreError()

    logger.info(f"Created sighting {sighting.id} tag={sighting.tag} device={sighting.device_uuid}")
    return sighting


def get_sighting_any(db: Session, sighting_id) -> Sighting:
    """Direct lookup, including soft-deleted rows."""
    sid = parse_sighting_id(sighting_id)
    sighting = _query(db, lambda: db.query(Sighting).filter(Sighting.id == sid).first())
    if sighting is None:
        raise NotFound("Sighting not found.")
    return sighting


def get_live_sighting(db: Session, sighting_id) -> Optional[Sighting]:
    sid = parse_sighting_id(sighting_id)
    return _query(
        db,
        lambda: db.query(Sighting)
        .filter(Sighting.id == sid, Sighting.is_deleted == False)
        .first(),
    )


def soft_delete_sighting(db: Session, sighting_id) -> uuid.UUID:
    sid = parse_sighting_id(sighting_id)
    try:
        sighting = (
            db.query(Sighting)
            .filter(Sighting.id == sid, Sighting.is_deleted == False)
            .first()
        )
        if sighting is None:
            raise NotFound("Sighting not found or already deleted.")
        sighting.is_deleted = True
        db.commit()
    except NotFound:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Soft delete error")
        raise StoreError()

    logger.info(f"Soft-deleted sighting {sid}")
    return sid


def _query(db: Session, run):
    try:
        return run()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Sighting lookup error")
        raise StoreError()


def nearby_check(db: Session, lat, lng, now: datetime) -> Optional[Sighting]:
    """Read-only duplicate probe used before showing the report form."""
    if not is_valid_coordinate(lat, lng):
        raise ValidationError("Invalid lat/lng")
    return _query(db, lambda: find_nearby_active(db, float(lat), float(lng), now))
