"""Geofence trigger evaluation for location-based reminders.

Given one location sample and the candidate reminders of a user, decides which
reminders fire. A reminder fires at most once: the flip of is_triggered goes
through TriggerStore.try_set_triggered, an atomic conditional update, and only
the caller that wins that update reports the reminder.
"""

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from errors import InvalidInput, StorageUnavailable
from geo import DEFAULT_RADIUS_METERS, within_radius
from logger_config import setup_logger

logger = setup_logger(__name__, 'trigger.log')

LOCATION_TRIGGER_TYPES = ('location', 'both')


@dataclass
class TriggerCandidate:
    """Read-only view of a persisted reminder used for geofence checks."""

    id: str
    status: str
    trigger_type: str
    is_triggered: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: Optional[float] = None
    record: Any = None

    @classmethod
    def from_reminder(cls, reminder) -> "TriggerCandidate":
        """Build a candidate from a database.Reminder row."""
        return cls(
            id=reminder.id,
            status=reminder.status.value,
            trigger_type=reminder.trigger_type.value,
            is_triggered=bool(reminder.is_triggered),
            latitude=reminder.latitude,
            longitude=reminder.longitude,
            radius=reminder.radius,
            record=reminder,
        )


class TriggerStore:
    """Write-back collaborator for the triggered flag."""

    def try_set_triggered(self, reminder_id: str) -> bool:
        """Set is_triggered=True and triggered_at=now only if is_triggered is False.

        Returns:
            bool: True iff this call performed the transition

        Raises:
            StorageUnavailable: When storage cannot be reached
        """
        raise NotImplementedError


def validate_location(latitude: Any, longitude: Any) -> Tuple[float, float]:
    """Validate a raw location sample.

    Raises:
        InvalidInput: If a coordinate is missing, non-numeric or out of range
    """
    coords = []
    for name, value, limit in (('latitude', latitude, 90), ('longitude', longitude, 180)):
        if value is None or isinstance(value, bool):
            raise InvalidInput(f"Please provide {name}")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise InvalidInput(f"{name} must be a number")
        if math.isnan(number) or not -limit <= number <= limit:
            raise InvalidInput(f"{name} must be between -{limit} and {limit}")
        coords.append(number)
    return coords[0], coords[1]


class TriggerEvaluator:
    """Evaluates location samples against candidate reminders.

    Args:
        store: TriggerStore used for the conditional write-back
    """

    def __init__(self, store: TriggerStore):
        self.store = store

    def is_eligible(self, candidate: TriggerCandidate) -> bool:
        return (
            candidate.status == 'active'
            and not candidate.is_triggered
            and candidate.trigger_type in LOCATION_TRIGGER_TYPES
            and candidate.latitude is not None
            and candidate.longitude is not None
        )

    def evaluate(
        self,
        user_location: Tuple[float, float],
        candidates: Sequence[TriggerCandidate],
    ) -> List[TriggerCandidate]:
        """Return the candidates that newly triggered, in input order.

        Raises:
            StorageUnavailable: If any write-back failed. The exception's
                ``triggered`` list holds the candidates that did trigger.
        """
        user_lat, user_lng = user_location
        triggered = []
        failures = []

        for candidate in candidates:
            if not self.is_eligible(candidate):
                continue

            radius = candidate.radius or DEFAULT_RADIUS_METERS
            if radius <= 0:
                logger.warning(f"Skipping reminder {candidate.id}: invalid radius {candidate.radius}")
                continue

            if not within_radius(user_lat, user_lng, candidate.latitude, candidate.longitude, radius):
                continue

            try:
                won = self.store.try_set_triggered(candidate.id)
            except StorageUnavailable as e:
                logger.error(f"Write-back failed for reminder {candidate.id}: {str(e)}")
                failures.append(candidate.id)
                continue

            if won:
                logger.info(f"Reminder {candidate.id} triggered at ({user_lat}, {user_lng})")
                triggered.append(candidate)
            else:
                logger.info(f"Reminder {candidate.id} was already triggered by another evaluation")

        if failures:
            raise StorageUnavailable(
                f"Could not record trigger for {len(failures)} reminder(s): {', '.join(failures)}",
                triggered=triggered,
            )
        return triggered
