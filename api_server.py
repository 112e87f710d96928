"""FastAPI REST API server for Smart Reminder Service.

This module provides HTTP endpoints for parsing natural language reminders,
managing reminders and checking location samples against geofences.

Users are identified by the ``user_id`` query parameter.
IMPORTANT: Pydantic automatically converts ISO datetime strings to datetime objects.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional

import crud
import schemas
import database
from assembler import ReminderAssembler, build_assembler
from config import settings
from errors import GeocodeError, InvalidInput, StorageUnavailable
from geocoder import GoogleMapsGeocoder
from location_worker import LocationEventChannel, LocationSample, worker_loop
from logger_config import setup_logger
from trigger_evaluator import TriggerCandidate, TriggerEvaluator, validate_location

logger = setup_logger(__name__, 'api.log')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared components once and run the location worker."""
    app.state.assembler = build_assembler()
    app.state.geocoder = app.state.assembler.resolver
    app.state.location_channel = LocationEventChannel()

    worker_task = None
    if settings.WORKER_ENABLED:
        worker_task = asyncio.create_task(worker_loop(app.state.location_channel))
    else:
        logger.warning("Location worker is disabled in configuration")

    yield

    if worker_task is not None:
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass


# Create FastAPI application
app = FastAPI(
    title="Smart Reminder Service API",
    description="Natural language reminders with time and location triggers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

origins = [
    "http://localhost:19006",     # Expo web
    "http://localhost:3000",      # Alternative frontend port
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_assembler(request: Request) -> ReminderAssembler:
    return request.app.state.assembler


def get_geocoder(request: Request) -> GoogleMapsGeocoder:
    return request.app.state.geocoder


def get_location_channel(request: Request) -> LocationEventChannel:
    return request.app.state.location_channel


def _responses(reminders) -> List[schemas.ReminderResponse]:
    return [schemas.ReminderResponse.from_reminder(r) for r in reminders]


@app.get("/")
def root():
    """Root endpoint - service information"""
    return {
        "service": "Smart Reminder Service API",
        "version": "1.0.0",
        "status": "healthy",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "reminders": "/reminders",
            "parse": "/reminders/parse",
            "check_location": "/reminders/check-location"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "smart_reminder_service",
        "database": settings.DATABASE_URL.split("://")[0],
        "geocoding": bool(settings.GOOGLE_MAPS_API_KEY)
    }


@app.post("/reminders/parse", response_model=schemas.ParsedReminderResponse)
async def parse_reminder(
    request: schemas.ParseRequest,
    assembler: ReminderAssembler = Depends(get_assembler)
):
    """Parse natural language reminder text.

    Request body example:
    ```json
    {"text": "Remind me to buy milk when I'm near a grocery store"}
    ```

    The location phrase is geocoded when possible; geocoding failures
    return the parse result without coordinates.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Please provide reminder text")

    parsed = await assembler.parse(request.text)
    return schemas.ParsedReminderResponse.model_validate(parsed)


@app.post("/reminders", response_model=schemas.ReminderResponse, status_code=201)
async def create_reminder(
    reminder: schemas.ReminderCreate,
    user_id: str = Query(..., min_length=1, description="Owner of the reminder"),
    assembler: ReminderAssembler = Depends(get_assembler),
    db: Session = Depends(database.get_db)
):
    """Create a new reminder.

    Request body example (natural language):
    ```json
    {"original_input": "Pay electricity bill before Sunday", "priority": "high"}
    ```

    Explicit fields always override parsed ones.
    """
    explicit = reminder.model_dump(exclude_unset=True)
    record = await assembler.assemble(explicit, explicit.get('original_input'))

    if not record.get('title'):
        raise HTTPException(status_code=400, detail="Please provide a title or reminder text")

    try:
        created = await run_in_threadpool(crud.create_reminder, db, user_id, record)
    except (SQLAlchemyError, KeyError) as e:
        raise HTTPException(status_code=400, detail=f"Error creating reminder: {str(e)}")
    return schemas.ReminderResponse.from_reminder(created)


@app.get("/reminders", response_model=List[schemas.ReminderResponse])
def list_reminders(
    user_id: str = Query(..., description="Owner of the reminders"),
    status: Optional[str] = Query(None, pattern=schemas.STATUS_PATTERN),
    category: Optional[str] = Query(None, pattern=schemas.CATEGORY_PATTERN),
    trigger_type: Optional[str] = Query(None, pattern=schemas.TRIGGER_PATTERN),
    limit: int = Query(50, ge=1, le=1000, description="Maximum number of results"),
    db: Session = Depends(database.get_db)
):
    """List reminders for a user, newest first, with optional filters."""
    return _responses(crud.get_reminders_by_user(db, user_id, status, category, trigger_type, limit))


@app.post("/reminders/check-location", response_model=schemas.LocationCheckResponse)
def check_location(
    sample: schemas.LocationCheckRequest,
    user_id: str = Query(..., description="Owner of the reminders"),
    db: Session = Depends(database.get_db)
):
    """Check a location sample against the user's location reminders.

    Request body example:
    ```json
    {"latitude": 37.7749, "longitude": -122.4194}
    ```

    Returns reminders that fired for this sample. A reminder is returned by
    at most one call, even when samples overlap.
    """
    try:
        location = validate_location(sample.latitude, sample.longitude)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))

    candidates = [
        TriggerCandidate.from_reminder(r) for r in crud.get_location_candidates(db, user_id)
    ]
    evaluator = TriggerEvaluator(crud.SqlTriggerStore(db))

    try:
        triggered = evaluator.evaluate(location, candidates)
    except StorageUnavailable as e:
        records = [c.record for c in e.triggered]
        for record in records:
            db.refresh(record)
        return JSONResponse(
            status_code=503,
            content={
                "detail": str(e),
                "count": len(records),
                "data": [r.model_dump(mode="json") for r in _responses(records)]
            }
        )

    records = [c.record for c in triggered]
    for record in records:
        db.refresh(record)
    return {"count": len(records), "data": _responses(records)}


@app.post("/locations/samples", status_code=202)
def push_location_sample(
    sample: schemas.LocationSampleRequest,
    channel: LocationEventChannel = Depends(get_location_channel)
):
    """Queue a location sample for the background location worker."""
    try:
        latitude, longitude = validate_location(sample.latitude, sample.longitude)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))

    accepted = channel.publish(LocationSample(sample.user_id, latitude, longitude))
    if not accepted:
        raise HTTPException(status_code=503, detail="Location queue is full, retry later")
    return {"queued": True}


@app.get("/places/search", response_model=List[schemas.PlaceResponse])
async def search_places(
    query: str = Query(..., min_length=1, description="Free-text place query"),
    geocoder: GoogleMapsGeocoder = Depends(get_geocoder)
):
    """Search places by text (e.g. 'Whole Foods Market')."""
    try:
        return await geocoder.search_places(query)
    except GeocodeError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/places/nearby", response_model=List[schemas.PlaceResponse])
async def nearby_places(
    place_type: str = Query(..., min_length=1, description="Place type, e.g. 'supermarket'"),
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: int = Query(5000, gt=0, le=50000, description="Search radius in meters"),
    geocoder: GoogleMapsGeocoder = Depends(get_geocoder)
):
    """Find places of a type around a point."""
    try:
        return await geocoder.find_nearby_places(place_type, latitude, longitude, radius)
    except GeocodeError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/reminders/stats/{user_id}")
def get_user_stats(
    user_id: str,
    db: Session = Depends(database.get_db)
):
    """Get counts of a user's reminders by status and trigger type."""
    reminders = crud.get_reminders_by_user(db, user_id, limit=10000)

    by_status = {status.value: 0 for status in database.StatusEnum}
    by_trigger = {trigger.value: 0 for trigger in database.TriggerTypeEnum}
    for r in reminders:
        by_status[r.status.value] += 1
        by_trigger[r.trigger_type.value] += 1

    return {
        "user_id": user_id,
        "total": crud.get_reminders_count(db, user_id),
        "by_status": by_status,
        "by_trigger_type": by_trigger,
        "triggered": sum(1 for r in reminders if r.is_triggered)
    }


@app.get("/reminders/{reminder_id}", response_model=schemas.ReminderResponse)
def get_reminder(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Get a specific reminder by ID."""
    reminder = crud.get_reminder(db, reminder_id, user_id)
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return schemas.ReminderResponse.from_reminder(reminder)


@app.put("/reminders/{reminder_id}", response_model=schemas.ReminderResponse)
def update_reminder(
    reminder_id: str,
    updates: schemas.ReminderUpdate,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Update an existing reminder. Only provided fields are updated."""
    update_dict = updates.model_dump(exclude_unset=True)
    try:
        reminder = crud.update_reminder(db, reminder_id, user_id, update_dict)
    except (SQLAlchemyError, KeyError) as e:
        raise HTTPException(status_code=400, detail=f"Error updating reminder: {str(e)}")
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return schemas.ReminderResponse.from_reminder(reminder)


@app.put("/reminders/{reminder_id}/complete", response_model=schemas.ReminderResponse)
def complete_reminder(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Mark a reminder as completed."""
    reminder = crud.complete_reminder(db, reminder_id, user_id)
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return schemas.ReminderResponse.from_reminder(reminder)


@app.delete("/reminders/{reminder_id}", status_code=200)
def delete_reminder(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Delete a reminder."""
    success = crud.delete_reminder(db, reminder_id, user_id)
    if not success:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"message": "Reminder deleted successfully", "reminder_id": reminder_id}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
