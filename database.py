"""Database module for Smart Reminder Service.

This module defines the SQLAlchemy model and database session management.
IMPORTANT: due_date, triggered_at and the audit timestamps are stored as
timezone-aware DateTime objects, NOT strings. They are set explicitly by crud.py.
"""

from sqlalchemy import (
    create_engine, Column, String, DateTime, Float, Boolean, Enum as SQLEnum, Index
)
from sqlalchemy.orm import declarative_base, sessionmaker
import enum

from config import settings

# SQLAlchemy Base
Base = declarative_base()


class CategoryEnum(str, enum.Enum):
    """Reminder categories assigned by the parser"""
    GROCERIES = "Groceries"
    BILLS = "Bills"
    WORK = "Work"
    PERSONAL = "Personal"
    HEALTH = "Health"
    SHOPPING = "Shopping"
    OTHER = "Other"


class PriorityEnum(str, enum.Enum):
    """Priority levels for reminders"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StatusEnum(str, enum.Enum):
    """Status values for reminders"""
    ACTIVE = "active"
    COMPLETED = "completed"
    SNOOZED = "snoozed"
    CANCELLED = "cancelled"


class TriggerTypeEnum(str, enum.Enum):
    """What activates a reminder"""
    TIME = "time"
    LOCATION = "location"
    BOTH = "both"


class RecurringPatternEnum(str, enum.Enum):
    """Recurrence patterns"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NONE = "none"


class Reminder(Base):
    """Reminder model - stores all reminder data.

    The geofence is the (latitude, longitude) point plus radius in meters.
    Coordinates stay NULL until geocoding succeeds; such reminders never trigger.
    """

    __tablename__ = "reminders"

    id = Column(String, primary_key=True, doc="Unique reminder ID (UUID)")
    user_id = Column(String, nullable=False, index=True, doc="Owner of the reminder")

    # Reminder Content
    title = Column(String, nullable=False, doc="Reminder title (parsed task)")
    description = Column(String, default="", doc="Optional detailed description")
    original_input = Column(String, nullable=False, default="", doc="Text the reminder was parsed from")
    category = Column(SQLEnum(CategoryEnum), default=CategoryEnum.PERSONAL, doc="Category")

    # Trigger
    trigger_type = Column(SQLEnum(TriggerTypeEnum), default=TriggerTypeEnum.TIME, doc="Trigger type")
    due_date = Column(DateTime(timezone=True), nullable=True, doc="When the reminder is due")

    # Location
    place_name = Column(String, nullable=True, doc="Place phrase from the text")
    longitude = Column(Float, nullable=True, doc="Geofence longitude")
    latitude = Column(Float, nullable=True, doc="Geofence latitude")
    address = Column(String, nullable=True, doc="Formatted address from geocoding")
    place_type = Column(String, nullable=True, doc="Provider place type")
    radius = Column(Float, nullable=False, default=500, doc="Geofence radius in meters")

    # Recurrence
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_pattern = Column(SQLEnum(RecurringPatternEnum), default=RecurringPatternEnum.NONE)

    # State
    priority = Column(SQLEnum(PriorityEnum), default=PriorityEnum.MEDIUM, doc="Priority level")
    status = Column(SQLEnum(StatusEnum), default=StatusEnum.ACTIVE, index=True, doc="Current status")
    is_triggered = Column(Boolean, nullable=False, default=False, doc="Geofence already fired")
    triggered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_user_status', 'user_id', 'status'),
        Index('idx_user_trigger', 'user_id', 'trigger_type', 'is_triggered'),
    )

    @property
    def coordinates(self):
        """[longitude, latitude] or None when not geocoded."""
        if self.longitude is None or self.latitude is None:
            return None
        return [self.longitude, self.latitude]

    def __repr__(self):
        """String representation"""
        return (
            f"<Reminder(id={self.id}, user={self.user_id}, title={self.title}, "
            f"trigger={self.trigger_type.value}, status={self.status.value})>"
        )


# Database Engine Setup
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
    echo=False  # Set to True for SQL debugging
)

# Session Factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Create all tables
Base.metadata.create_all(bind=engine)
