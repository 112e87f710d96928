"""CRUD operations for Smart Reminder Service.

This module provides database operations for reminders, including the atomic
conditional update that marks a location reminder as triggered.
IMPORTANT: All timestamps are assigned here, explicitly, at write time.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional
import uuid
from datetime import datetime, timezone

from database import (
    Reminder, CategoryEnum, PriorityEnum, StatusEnum, TriggerTypeEnum, RecurringPatternEnum
)
from errors import StorageUnavailable
from logger_config import setup_logger
from trigger_evaluator import TriggerStore

logger = setup_logger(__name__, 'crud.log')

ENUM_FIELDS = {
    'category': CategoryEnum,
    'priority': PriorityEnum,
    'status': StatusEnum,
    'trigger_type': TriggerTypeEnum,
    'recurring_pattern': RecurringPatternEnum,
}

LOCATION_FIELDS = ('place_name', 'address', 'place_type', 'radius')


def _to_enum(key: str, value):
    """Convert string enums ('high', 'Groceries', 'both') to enum objects."""
    if isinstance(value, str):
        return ENUM_FIELDS[key][value.upper()]
    return value


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _location_columns(location: Optional[dict]) -> dict:
    """Flatten a location dict into Reminder columns."""
    if not location:
        return {}

    columns = {key: location[key] for key in LOCATION_FIELDS if location.get(key) is not None}
    coordinates = location.get('coordinates')
    if coordinates:
        columns['longitude'], columns['latitude'] = coordinates[0], coordinates[1]
    return columns


def create_reminder(db: Session, user_id: str, reminder_data: dict) -> Reminder:
    """Create a new reminder in the database.

    Args:
        db: Database session
        user_id: Owner of the reminder
        reminder_data: Dictionary with reminder fields
            - title: str
            - original_input: Optional[str]
            - description, category, priority, trigger_type: Optional[str]
            - due_date: Optional[datetime]
            - location: Optional[dict] (place_name, coordinates [lon, lat],
              address, place_type, radius)
            - is_recurring, recurring_pattern: Optional

    Returns:
        Reminder: Created reminder object

    Raises:
        SQLAlchemyError: On database errors
    """
    now = datetime.now(timezone.utc)

    db_reminder = Reminder(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=reminder_data['title'],
        description=reminder_data.get('description') or '',
        original_input=reminder_data.get('original_input') or reminder_data['title'],
        category=_to_enum('category', reminder_data.get('category') or 'Personal'),
        priority=_to_enum('priority', reminder_data.get('priority') or 'medium'),
        trigger_type=_to_enum('trigger_type', reminder_data.get('trigger_type') or 'time'),
        due_date=_ensure_utc(reminder_data.get('due_date')),
        is_recurring=bool(reminder_data.get('is_recurring', False)),
        recurring_pattern=_to_enum('recurring_pattern', reminder_data.get('recurring_pattern') or 'none'),
        status=StatusEnum.ACTIVE,
        is_triggered=False,
        created_at=now,
        updated_at=now,
        **_location_columns(reminder_data.get('location')),
    )

    db.add(db_reminder)
    db.commit()
    db.refresh(db_reminder)
    logger.info(f"Created reminder {db_reminder.id} for user {user_id}: '{db_reminder.title}'")
    return db_reminder


def get_reminders_by_user(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    category: Optional[str] = None,
    trigger_type: Optional[str] = None,
    limit: int = 50
) -> List[Reminder]:
    """Get reminders for a specific user, newest first.

    Args:
        db: Database session
        user_id: Owner of the reminders
        status: Optional status filter
        category: Optional category filter
        trigger_type: Optional trigger type filter
        limit: Maximum number of results (default: 50)
    """
    query = db.query(Reminder).filter(Reminder.user_id == user_id)

    if status:
        query = query.filter(Reminder.status == _to_enum('status', status))
    if category:
        query = query.filter(Reminder.category == _to_enum('category', category))
    if trigger_type:
        query = query.filter(Reminder.trigger_type == _to_enum('trigger_type', trigger_type))

    return query.order_by(Reminder.created_at.desc()).limit(limit).all()


def get_reminder(db: Session, reminder_id: str, user_id: str) -> Optional[Reminder]:
    """Get a specific reminder by ID, scoped to its owner."""
    return db.query(Reminder).filter(
        Reminder.id == reminder_id,
        Reminder.user_id == user_id
    ).first()


def update_reminder(
    db: Session,
    reminder_id: str,
    user_id: str,
    updates: dict
) -> Optional[Reminder]:
    """Update an existing reminder.

    Args:
        db: Database session
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
        updates: Dictionary of fields to update; ``location`` is a nested dict

    Returns:
        Optional[Reminder]: Updated reminder object if found, None otherwise
    """
    reminder = get_reminder(db, reminder_id, user_id)
    if not reminder:
        return None

    location = updates.get('location')
    fields = {key: value for key, value in updates.items() if key != 'location'}
    fields.update(_location_columns(location))

    for key, value in fields.items():
        if value is None:
            continue
        if key in ENUM_FIELDS:
            value = _to_enum(key, value)
        elif isinstance(value, datetime):
            value = _ensure_utc(value)
        setattr(reminder, key, value)

    # Re-arming a reminder clears the previous trigger time
    if fields.get('is_triggered') is False:
        reminder.triggered_at = None

    reminder.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(reminder)
    return reminder


def complete_reminder(db: Session, reminder_id: str, user_id: str) -> Optional[Reminder]:
    """Mark a reminder as completed."""
    reminder = get_reminder(db, reminder_id, user_id)
    if not reminder:
        return None

    now = datetime.now(timezone.utc)
    reminder.status = StatusEnum.COMPLETED
    reminder.completed_at = now
    reminder.updated_at = now

    db.commit()
    db.refresh(reminder)
    return reminder


def delete_reminder(db: Session, reminder_id: str, user_id: str) -> bool:
    """Delete a reminder. Returns False if not found."""
    reminder = get_reminder(db, reminder_id, user_id)
    if not reminder:
        return False

    db.delete(reminder)
    db.commit()
    return True


def get_reminders_count(db: Session, user_id: str) -> int:
    """Get total number of reminders for a user."""
    return db.query(Reminder).filter(Reminder.user_id == user_id).count()


def get_location_candidates(db: Session, user_id: str) -> List[Reminder]:
    """Get active, untriggered location reminders that a location sample can fire.

    Ordered by creation time so evaluation order is stable.
    """
    return db.query(Reminder).filter(
        Reminder.user_id == user_id,
        Reminder.status == StatusEnum.ACTIVE,
        Reminder.trigger_type.in_([TriggerTypeEnum.LOCATION, TriggerTypeEnum.BOTH]),
        Reminder.is_triggered.is_(False)
    ).order_by(Reminder.created_at).all()


def try_set_triggered(db: Session, reminder_id: str) -> bool:
    """Atomically flip is_triggered from False to True.

    Runs a single UPDATE ... WHERE is_triggered = false, so among concurrent
    callers exactly one sees an affected row.

    Returns:
        bool: True iff this call performed the transition

    Raises:
        StorageUnavailable: On database errors
    """
    now = datetime.now(timezone.utc)
    try:
        rowcount = db.query(Reminder).filter(
            Reminder.id == reminder_id,
            Reminder.is_triggered.is_(False)
        ).update(
            {
                Reminder.is_triggered: True,
                Reminder.triggered_at: now,
                Reminder.updated_at: now,
            },
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Could not update reminder {reminder_id}: {str(e)}") from e

    return rowcount == 1


def mark_notification_sent(db: Session, reminder_id: str) -> None:
    """Record that the push notification for a triggered reminder went out."""
    db.query(Reminder).filter(Reminder.id == reminder_id).update(
        {
            Reminder.notification_sent: True,
            Reminder.updated_at: datetime.now(timezone.utc),
        },
        synchronize_session=False
    )
    db.commit()


class SqlTriggerStore(TriggerStore):
    """TriggerStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def try_set_triggered(self, reminder_id: str) -> bool:
        return try_set_triggered(self.db, reminder_id)
