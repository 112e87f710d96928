"""Location Worker for Smart Reminder Service.

A location source (the mobile app via POST /locations/samples, or JSON lines on
stdin when run standalone) pushes samples into a LocationEventChannel. The worker
consumes the channel, evaluates each sample against the user's location
reminders and sends a push notification for every reminder that fires.

The worker:
- Evaluates samples off the event loop (database access is synchronous)
- Relies on the conditional trigger update, so overlapping samples never double-fire
- Makes HTTP POST requests to the notification gateway for triggered reminders
- Logs notification errors without retry; the trigger itself is already recorded
"""

import asyncio
import json
import signal
import sys
import threading
from dataclasses import dataclass
from typing import List, Optional

import httpx

import crud
import database
from config import settings
from errors import InvalidInput, StorageUnavailable
from logger_config import setup_logger
from trigger_evaluator import TriggerCandidate, TriggerEvaluator, validate_location

logger = setup_logger(__name__, 'worker.log')

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


@dataclass(frozen=True)
class LocationSample:
    """One location reading for one user."""

    user_id: str
    latitude: float
    longitude: float


class LocationEventChannel:
    """Bounded queue of location samples between a location source and the worker."""

    def __init__(self, maxsize: Optional[int] = None):
        self.queue: asyncio.Queue = asyncio.Queue(
            maxsize=settings.LOCATION_QUEUE_MAXSIZE if maxsize is None else maxsize
        )

    def publish(self, sample: LocationSample) -> bool:
        """Enqueue a sample. Returns False (and drops it) when the channel is full."""
        try:
            self.queue.put_nowait(sample)
        except asyncio.QueueFull:
            logger.warning(f"Location channel full, dropping sample for user {sample.user_id}")
            return False
        return True

    async def get(self, timeout: float = 1.0) -> Optional[LocationSample]:
        """Next sample, or None if nothing arrived within timeout seconds."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def task_done(self):
        self.queue.task_done()


async def send_push_notification(
    reminder, transport: Optional[httpx.AsyncBaseTransport] = None
) -> bool:
    """Send a push notification for a triggered reminder.

    Args:
        reminder: Triggered Reminder object
        transport: Optional httpx transport (tests use httpx.MockTransport)

    Returns:
        bool: True if the gateway accepted the notification
    """
    if not settings.NOTIFICATION_API_URL:
        logger.info(f"[NOTIFY] No gateway configured. Reminder {reminder.id}: '{reminder.title}'")
        return False

    payload = {
        "user_id": reminder.user_id,
        "title": "Smart Reminder",
        "body": reminder.title,
        "data": {"reminder_id": reminder.id},
    }
    api_url = f"{settings.NOTIFICATION_API_URL.rstrip('/')}/api/notifications/send"

    try:
        async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT, transport=transport) as client:
            response = await client.post(api_url, json=payload)

        if response.status_code in (200, 201, 202):
            logger.info(f"Notification sent for reminder {reminder.id}")
            return True

        logger.error(
            f"Failed to send notification for reminder {reminder.id}. "
            f"Status: {response.status_code}, Response: {response.text}"
        )
        return False

    except httpx.TimeoutException:
        logger.error(f"Timeout while sending notification for reminder {reminder.id}")
        return False
    except httpx.RequestError as e:
        logger.error(f"Network error while sending notification for reminder {reminder.id}: {str(e)}")
        return False


def evaluate_sample(db, sample: LocationSample) -> List[TriggerCandidate]:
    """Evaluate one sample against the user's candidates.

    Returns the triggered candidates, including partial results when a
    write-back failed (the failure is logged).
    """
    candidates = [
        TriggerCandidate.from_reminder(reminder)
        for reminder in crud.get_location_candidates(db, sample.user_id)
    ]
    evaluator = TriggerEvaluator(crud.SqlTriggerStore(db))

    try:
        return evaluator.evaluate((sample.latitude, sample.longitude), candidates)
    except StorageUnavailable as e:
        logger.error(f"Storage unavailable while evaluating sample for user {sample.user_id}: {str(e)}")
        return e.triggered


def _evaluate_in_session(sample: LocationSample) -> List:
    db = database.SessionLocal()
    try:
        records = []
        for candidate in evaluate_sample(db, sample):
            db.refresh(candidate.record)
            records.append(candidate.record)
        # Detach loaded rows so they stay readable after the session closes
        db.expunge_all()
        return records
    finally:
        db.close()


def _mark_sent(reminder_id: str):
    db = database.SessionLocal()
    try:
        crud.mark_notification_sent(db, reminder_id)
    finally:
        db.close()


async def process_sample(sample: LocationSample) -> List:
    """Evaluate a sample and notify every reminder that fired.

    Returns:
        List[Reminder]: Reminders triggered by this sample
    """
    triggered = await asyncio.to_thread(_evaluate_in_session, sample)

    if not triggered:
        logger.debug(f"No reminders triggered for user {sample.user_id}")
        return triggered

    logger.info(f"{len(triggered)} reminder(s) triggered for user {sample.user_id}")

    for reminder in triggered:
        if await send_push_notification(reminder):
            await asyncio.to_thread(_mark_sent, reminder.id)

    return triggered


async def worker_loop(channel: LocationEventChannel):
    """Main worker loop that runs until shutdown is requested.

    Waits on the channel in 1-second slices to allow quick shutdown.
    """
    logger.info("Location worker started")
    logger.info(f"Notification gateway: {settings.NOTIFICATION_API_URL or 'disabled (log only)'}")

    processed = 0
    while not shutdown_requested:
        sample = await channel.get(timeout=1.0)
        if sample is None:
            continue

        try:
            await process_sample(sample)
            processed += 1
        except Exception as e:
            logger.error(f"Error processing sample {processed + 1} for user {sample.user_id}: {str(e)}", exc_info=True)
        finally:
            channel.task_done()

    logger.info("Location worker shutting down gracefully")


def parse_sample_line(line: str) -> LocationSample:
    """Parse one JSON line: {"user_id": "...", "latitude": ..., "longitude": ...}.

    Raises:
        InvalidInput: On malformed JSON or coordinates
    """
    try:
        data = json.loads(line)
    except ValueError as e:
        raise InvalidInput(f"Invalid JSON: {str(e)}") from e
    if not isinstance(data, dict) or not data.get('user_id'):
        raise InvalidInput("Sample must be an object with a user_id")

    latitude, longitude = validate_location(data.get('latitude'), data.get('longitude'))
    return LocationSample(str(data['user_id']), latitude, longitude)


def _start_line_reader(stream, loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
    """Pump lines from a blocking stream into a queue from a daemon thread.

    A daemon thread never holds up interpreter exit, even while blocked on a
    read that has no input yet. None marks end of input.
    """
    lines: asyncio.Queue = asyncio.Queue()

    def pump():
        try:
            for line in iter(stream.readline, ''):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)
        except RuntimeError:
            # Event loop already closed
            return

    threading.Thread(target=pump, name="location-sample-reader", daemon=True).start()
    return lines


async def read_stdin_samples(channel: LocationEventChannel, stream=None):
    """Location source for standalone mode: one JSON sample per input line."""
    global shutdown_requested
    lines = _start_line_reader(stream or sys.stdin, asyncio.get_running_loop())

    while not shutdown_requested:
        try:
            line = await asyncio.wait_for(lines.get(), timeout=1.0)
        except asyncio.TimeoutError:
            continue
        if line is None:
            logger.info("End of input, stopping after pending samples")
            await channel.queue.join()
            shutdown_requested = True
            break
        if not line.strip():
            continue
        try:
            channel.publish(parse_sample_line(line))
        except InvalidInput as e:
            logger.warning(f"Skipping sample: {str(e)}")


async def run_standalone(stream=None):
    """Run the worker and the input reader until either one stops."""
    channel = LocationEventChannel()
    tasks = [
        asyncio.create_task(worker_loop(channel)),
        asyncio.create_task(read_stdin_samples(channel, stream)),
    ]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        task.result()


def main():
    """Main entry point for the standalone location worker."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Smart Reminder Service - Location Worker")
    logger.info("=" * 60)

    try:
        asyncio.run(run_standalone())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in location worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Location worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
