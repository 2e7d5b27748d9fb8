"""SQLAlchemy models for the RangerWatch database"""
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid,
)

from database import Base

# Closed set of report categories: observation, caution, enforcement action
TAGS = ("Sighting", "Warning", "Ticket")


class Sighting(Base):
    """A report anchored to a point in time and space"""
    __tablename__ = "sightings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, nullable=False, index=True)
    tag = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    media_url = Column(String(1000), nullable=True)

    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    # Pseudonymous device, used for rate limiting only
    device_uuid = Column(String(255), nullable=False, index=True)
    anon_user_number = Column(Integer, nullable=False)

    # Soft delete (admin)
    is_deleted = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("lat >= -90 AND lat <= 90", name="sightings_lat_range"),
        CheckConstraint("lng >= -180 AND lng <= 180", name="sightings_lng_range"),
        CheckConstraint("tag in ('Sighting','Warning','Ticket')", name="sightings_tag_check"),
        Index("ix_sightings_live", "is_deleted", "created_at"),
    )


class Checkin(Base):
    """Immutable attestation that a sighting is still being observed"""
    __tablename__ = "checkins"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, nullable=False)
    sighting_id = Column(Uuid(as_uuid=True), ForeignKey("sightings.id"), nullable=False, index=True)
    device_uuid = Column(String(255), nullable=False)
    anon_user_number = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_checkins_cooldown", "sighting_id", "device_uuid", "created_at"),
    )


class GeoCell(Base):
    """Lock row for one cell of the submission grid"""
    __tablename__ = "geo_cells"

    key = Column(String(64), primary_key=True)
    last_claimed_at = Column(DateTime, nullable=True)


class Counter(Base):
    """Named monotonically increasing counter"""
    __tablename__ = "counters"

    name = Column(String(100), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
