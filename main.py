"""
RangerWatch API Server
FastAPI backend for anonymous sighting reports, check-ins and abuse controls.
"""
import logging
from datetime import datetime
from io import BytesIO
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from minio.error import S3Error
from sqlalchemy.orm import Session

import checkin_service
import counter_service
import query_service
import sighting_service
from auth import require_admin
from config import settings
from database import Base, engine, get_db
from errors import SightingError, ValidationError
from minio_client import ensure_bucket_exists, get_minio_client, media_url_prefix, upload_media
from schemas import (
    AdminSightingOut, AnonNumber, CheckinCreate, CheckinResult, DeletedOut, MediaUploaded,
    NearbyResult, SightingCreate, SightingOut, SpammerOut,
)
from time_windows import range_lookback, utcnow

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="RangerWatch API",
    description="Anonymous nearby sighting reports with check-ins",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_now() -> datetime:
    """Request clock. Every rule is evaluated against this single reading."""
    return utcnow()


@app.on_event("startup")
async def startup_event():
    """Create tables and the media bucket"""
    Base.metadata.create_all(bind=engine)
    minio_client = get_minio_client()
    ensure_bucket_exists(minio_client, settings.MINIO_BUCKET)
    logger.info("RangerWatch API Server started successfully")


@app.exception_handler(SightingError)
async def sighting_error_handler(request: Request, exc: SightingError):
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query strings are plain 400s, like any other invalid field."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
        message = f"Invalid {field or 'request'}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": message, "code": ValidationError.code})


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": "RangerWatch API",
        "version": "1.0.0",
        "status": "operational"
    }


@app.get("/health")
async def health_check(now: datetime = Depends(get_now)):
    return {
        "status": "healthy",
        "timestamp": now.isoformat() + "Z",
    }


# --- Sightings ---

@app.get("/sightings", response_model=List[SightingOut])
async def list_sightings(
    range_: Optional[str] = Query(None, alias="range"),
    recently: bool = False,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Live sightings for a named range (24h, 2d, 3d, 7d, 30d, 90d) or the last 90 minutes."""
    lookback = range_lookback(range_, recently)
    return query_service.list_active(db, lookback, now)


@app.post("/sightings", response_model=SightingOut, status_code=201)
async def create_sighting(
    body: SightingCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    sighting = sighting_service.submit_sighting(db, body, now, media_url_prefix())
    return SightingOut.from_row(sighting)


@app.get("/nearby", response_model=NearbyResult, response_model_exclude_none=True)
async def nearby(
    lat: float,
    lng: float,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Nearest live sighting within 25 m created in the last 90 minutes.
    Clients call this before showing the report form so users can check in instead.
    """
    existing = sighting_service.nearby_check(db, lat, lng, now)
    if existing is None:
        return NearbyResult(duplicate=False)
    return NearbyResult(duplicate=True, existing_sighting_id=existing.id)


# --- Check-ins ---

@app.post("/checkins", response_model=CheckinResult, status_code=201)
async def create_checkin(
    body: CheckinCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    if not body.sighting_id or not (body.device_uuid or "").strip() or body.anon_user_number is None:
        raise ValidationError("sighting_id, device_uuid, and anon_user_number are required.")

    aggregate = checkin_service.submit_checkin(
        db, body.sighting_id, body.device_uuid, body.anon_user_number, now
    )
    return CheckinResult(**aggregate._asdict())


# --- Device identity / media ---

@app.post("/anon", response_model=AnonNumber)
async def assign_anon_number(db: Session = Depends(get_db)):
    """Atomically assign the next anonymous user number"""
    return AnonNumber(anon_user_number=counter_service.next_counter_value(db))


@app.post("/media", response_model=MediaUploaded, status_code=201)
async def upload_media_file(file: UploadFile = File(...)):
    """Store an image in the media bucket and return its public URL"""
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are allowed")

    try:
        data = await file.read(settings.MEDIA_MAX_BYTES + 1)
    finally:
        await file.close()
    if len(data) > settings.MEDIA_MAX_BYTES:
        raise HTTPException(status_code=400, detail="File too large")
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        url = upload_media(get_minio_client(), BytesIO(data), len(data), file.content_type, file.filename or "")
    except S3Error as e:
        logger.error(f"Media upload error: {e}")
        raise HTTPException(status_code=500, detail="Media upload failed")
    return MediaUploaded(url=url)


# --- Admin ---

@app.get("/admin/sightings", response_model=List[AdminSightingOut])
async def admin_list_sightings(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Latest sightings, deleted ones included"""
    return query_service.list_recent_for_admin(db)


@app.get("/admin/sightings/{sighting_id}", response_model=AdminSightingOut)
async def admin_get_sighting(
    sighting_id: str,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return query_service.admin_sighting(db, sighting_id)


@app.delete("/admin/sightings/{sighting_id}", response_model=DeletedOut)
async def admin_delete_sighting(
    sighting_id: str,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Admin soft-deletes a sighting."""
    deleted_id = sighting_service.soft_delete_sighting(db, sighting_id)
    logger.info(f"Sighting {deleted_id} deleted by {admin}")
    return DeletedOut(id=deleted_id)


@app.get("/admin/spammers", response_model=List[SpammerOut])
async def admin_spammers(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Devices by number of sightings posted in the last 24 hours"""
    return query_service.top_posting_devices(db, now)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
