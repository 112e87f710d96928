"""Pydantic schemas for Smart Reminder Service.

This module defines request and response schemas for API validation.
IMPORTANT: Pydantic automatically parses ISO datetime strings to datetime objects
and serializes datetime objects back to ISO-8601 strings in JSON responses.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional, Union

from database import CategoryEnum, PriorityEnum, StatusEnum, TriggerTypeEnum, RecurringPatternEnum

CATEGORY_PATTERN = "^(Groceries|Bills|Work|Personal|Health|Shopping|Other)$"
PRIORITY_PATTERN = "^(low|medium|high)$"
TRIGGER_PATTERN = "^(time|location|both)$"
STATUS_PATTERN = "^(active|completed|snoozed|cancelled)$"
RECURRING_PATTERN = "^(daily|weekly|monthly|none)$"


class LocationSchema(BaseModel):
    """Geofence description.

    coordinates are [longitude, latitude].
    """

    model_config = ConfigDict(from_attributes=True)

    place_name: Optional[str] = Field(None, description="Place phrase, e.g. 'a grocery store'")
    coordinates: Optional[List[float]] = Field(
        None,
        min_length=2,
        max_length=2,
        description="[longitude, latitude]",
        examples=[[-122.4194, 37.7749]]
    )
    address: Optional[str] = Field(None, description="Formatted address")
    place_type: Optional[str] = Field(None, description="Provider place type")
    radius: float = Field(500, gt=0, description="Geofence radius in meters")


class ParseRequest(BaseModel):
    """Natural language text to parse"""

    text: str = Field(
        ...,
        description="Reminder text",
        examples=["Remind me to buy milk when I'm near a grocery store"]
    )


class ParsedReminderResponse(BaseModel):
    """Structured result of parsing reminder text."""

    model_config = ConfigDict(from_attributes=True)

    original_input: str
    task: str
    category: str
    priority: str
    trigger_type: str
    due_date: Optional[datetime] = None
    location: Optional[LocationSchema] = None


class ReminderCreate(BaseModel):
    """Schema for creating a new reminder.

    Either ``title`` or ``original_input`` is required. When only
    ``original_input`` is given, the text is parsed and explicit fields win.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200, examples=["Buy milk"])
    original_input: Optional[str] = Field(
        None,
        min_length=1,
        description="Natural language text to parse",
        examples=["Remind me to buy milk when I'm near a grocery store"]
    )
    description: Optional[str] = Field(None, description="Optional detailed description")
    category: Optional[str] = Field(None, pattern=CATEGORY_PATTERN)
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    trigger_type: Optional[str] = Field(None, pattern=TRIGGER_PATTERN)
    due_date: Optional[datetime] = Field(None, description="When the reminder is due (ISO 8601)")
    location: Optional[LocationSchema] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = Field(None, pattern=RECURRING_PATTERN)


class ReminderUpdate(BaseModel):
    """Schema for updating an existing reminder.

    All fields are optional - only provided fields will be updated.
    Setting is_triggered to false re-arms a location reminder (e.g. after snooze).
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, pattern=CATEGORY_PATTERN)
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    trigger_type: Optional[str] = Field(None, pattern=TRIGGER_PATTERN)
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    due_date: Optional[datetime] = None
    location: Optional[LocationSchema] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = Field(None, pattern=RECURRING_PATTERN)
    is_triggered: Optional[bool] = None


class ReminderLocationResponse(BaseModel):
    """Location part of a stored reminder."""

    model_config = ConfigDict(from_attributes=True)

    place_name: Optional[str] = None
    coordinates: Optional[List[float]] = None
    address: Optional[str] = None
    place_type: Optional[str] = None
    radius: float


class ReminderResponse(BaseModel):
    """Schema for reminder responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique reminder ID")
    user_id: str
    title: str
    description: str
    original_input: str
    category: CategoryEnum
    priority: PriorityEnum
    trigger_type: TriggerTypeEnum
    status: StatusEnum
    due_date: Optional[datetime] = None
    location: ReminderLocationResponse
    is_recurring: bool
    recurring_pattern: RecurringPatternEnum
    is_triggered: bool
    triggered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notification_sent: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_reminder(cls, reminder) -> "ReminderResponse":
        """Build a response from a database.Reminder, nesting the location columns."""
        data = {column.name: getattr(reminder, column.name) for column in reminder.__table__.columns}
        data['location'] = ReminderLocationResponse(
            place_name=reminder.place_name,
            coordinates=reminder.coordinates,
            address=reminder.address,
            place_type=reminder.place_type,
            radius=reminder.radius,
        )
        return cls(**data)


class LocationCheckRequest(BaseModel):
    """A location sample. Validation happens in trigger_evaluator.validate_location
    so missing values are reported as InvalidInput (400)."""

    latitude: Optional[Union[float, str]] = Field(None, examples=[37.7749])
    longitude: Optional[Union[float, str]] = Field(None, examples=[-122.4194])


class LocationCheckResponse(BaseModel):
    """Reminders that fired for a location sample."""

    count: int
    data: List[ReminderResponse]


class LocationSampleRequest(LocationCheckRequest):
    """A location sample pushed onto the worker channel."""

    user_id: str = Field(..., min_length=1)


class PlaceResponse(BaseModel):
    """A place returned by a search."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    address: str
    coordinates: List[float]
    place_id: str
    types: List[str]
