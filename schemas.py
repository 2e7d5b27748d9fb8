import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


# --- Sightings ---
class SightingCreate(BaseModel):
    # Field rules are enforced by sighting_service.validate_candidate
    tag: Optional[str] = None
    description: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    device_uuid: Optional[str] = None
    anon_user_number: Optional[int] = None
    media_url: Optional[str] = None


class SightingOut(BaseModel):
    id: uuid.UUID
    created_at: datetime
    tag: str
    description: Optional[str] = None
    media_url: Optional[str] = None
    lat: float
    lng: float
    checkin_count: int = 0
    last_checkin_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row, checkin_count: int = 0, last_checkin_at: Optional[datetime] = None):
        return cls(
            id=row.id,
            created_at=row.created_at,
            tag=row.tag,
            description=row.description,
            media_url=row.media_url,
            lat=row.lat,
            lng=row.lng,
            checkin_count=checkin_count,
            last_checkin_at=last_checkin_at,
        )


class NearbyResult(BaseModel):
    duplicate: bool
    existing_sighting_id: Optional[uuid.UUID] = None


# --- Check-ins ---
class CheckinCreate(BaseModel):
    sighting_id: Optional[str] = None
    device_uuid: Optional[str] = None
    anon_user_number: Optional[int] = None


class CheckinResult(BaseModel):
    # None when the count could not be recomputed after a successful insert
    checkin_count: Optional[int] = None
    last_checkin_at: Optional[datetime] = None


# --- Devices / media ---
class AnonNumber(BaseModel):
    anon_user_number: int


class MediaUploaded(BaseModel):
    url: str


# --- Admin ---
class AdminSightingOut(BaseModel):
    id: uuid.UUID
    created_at: datetime
    tag: str
    description: Optional[str] = None
    media_url: Optional[str] = None
    lat: float
    lng: float
    device_uuid: str
    anon_user_number: int
    is_deleted: bool
    checkin_count: int = 0

    class Config:
        from_attributes = True


class SpammerOut(BaseModel):
    device_uuid: str
    count: int


class DeletedOut(BaseModel):
    deleted: bool = True
    id: uuid.UUID
