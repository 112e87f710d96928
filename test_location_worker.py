"""Tests for the location event channel, worker processing and notifications."""

import asyncio
import io
import os
import signal
import threading
import json

import httpx
import pytest

import crud
import database
import location_worker
from config import settings
from errors import InvalidInput
from location_worker import (
    LocationEventChannel, LocationSample, parse_sample_line, process_sample, send_push_notification
)

USER = "user-1"
OFFICE = {'place_name': 'office', 'coordinates': [-0.1278, 51.5074], 'radius': 200}


@pytest.fixture
def worker_db(session_factory, monkeypatch):
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    return session_factory


def add_reminder(session_factory, **overrides):
    db = session_factory()
    try:
        data = {'title': 'Call John', 'trigger_type': 'location', 'location': dict(OFFICE)}
        data.update(overrides)
        return crud.create_reminder(db, USER, data).id
    finally:
        db.close()


def test_channel_drops_when_full():
    channel = LocationEventChannel(maxsize=1)
    assert channel.publish(LocationSample(USER, 1.0, 2.0)) is True
    assert channel.publish(LocationSample(USER, 3.0, 4.0)) is False
    assert channel.queue.qsize() == 1


@pytest.mark.asyncio
async def test_channel_get_times_out():
    channel = LocationEventChannel(maxsize=1)
    assert await channel.get(timeout=0.01) is None

    channel.publish(LocationSample(USER, 1.0, 2.0))
    sample = await channel.get(timeout=0.01)
    assert sample == LocationSample(USER, 1.0, 2.0)


def test_parse_sample_line():
    sample = parse_sample_line('{"user_id": "u1", "latitude": "51.5", "longitude": -0.12}')
    assert sample == LocationSample("u1", 51.5, -0.12)


@pytest.mark.parametrize("line", [
    "not json",
    "[1, 2]",
    '{"latitude": 1, "longitude": 2}',
    '{"user_id": "u1", "latitude": 1}',
])
def test_parse_sample_line_rejects_bad_input(line):
    with pytest.raises(InvalidInput):
        parse_sample_line(line)


@pytest.mark.asyncio
async def test_process_sample_triggers_and_notifies(worker_db, monkeypatch):
    reminder_id = add_reminder(worker_db)
    add_reminder(worker_db, title='Far away', location={'place_name': 'paris', 'coordinates': [2.35, 48.85]})
    notified = []

    async def fake_notify(reminder, transport=None):
        notified.append(reminder.id)
        return True

    monkeypatch.setattr(location_worker, "send_push_notification", fake_notify)

    triggered = await process_sample(LocationSample(USER, 51.5075, -0.1278))

    assert [r.id for r in triggered] == [reminder_id]
    assert triggered[0].title == 'Call John'
    assert notified == [reminder_id]

    db = worker_db()
    try:
        stored = crud.get_reminder(db, reminder_id, USER)
        assert stored.is_triggered is True
        assert stored.notification_sent is True
    finally:
        db.close()

    # A second, overlapping sample does not fire the reminder again
    assert await process_sample(LocationSample(USER, 51.5074, -0.1278)) == []
    assert notified == [reminder_id]


@pytest.mark.asyncio
async def test_overlapping_samples_fire_once(worker_db, monkeypatch):
    add_reminder(worker_db)

    async def fake_notify(reminder, transport=None):
        return False

    monkeypatch.setattr(location_worker, "send_push_notification", fake_notify)

    results = await asyncio.gather(*[
        process_sample(LocationSample(USER, 51.5074, -0.1278)) for _ in range(4)
    ])
    assert sorted(len(r) for r in results) == [0, 0, 0, 1]


@pytest.mark.asyncio
async def test_send_push_notification_posts_payload(worker_db, monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_API_URL", "https://push.example.test/")
    add_reminder(worker_db)
    db = worker_db()
    reminder = crud.get_reminders_by_user(db, USER)[0]
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(202, json={"queued": True})

    try:
        assert await send_push_notification(reminder, transport=httpx.MockTransport(handler)) is True
    finally:
        db.close()

    assert seen[0].url == "https://push.example.test/api/notifications/send"
    payload = json.loads(seen[0].content)
    assert payload["body"] == "Call John"
    assert payload["data"] == {"reminder_id": reminder.id}


@pytest.mark.asyncio
async def test_send_push_notification_failures(worker_db, monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_API_URL", "https://push.example.test")
    add_reminder(worker_db)
    db = worker_db()
    reminder = crud.get_reminders_by_user(db, USER)[0]

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    try:
        assert await send_push_notification(
            reminder, transport=httpx.MockTransport(lambda request: httpx.Response(500))
        ) is False
        assert await send_push_notification(reminder, transport=httpx.MockTransport(refuse)) is False
    finally:
        db.close()


@pytest.mark.asyncio
async def test_send_push_notification_without_gateway(worker_db):
    add_reminder(worker_db)
    db = worker_db()
    try:
        reminder = crud.get_reminders_by_user(db, USER)[0]
        assert await send_push_notification(reminder) is False
    finally:
        db.close()


@pytest.mark.asyncio
async def test_worker_loop_consumes_channel(worker_db, monkeypatch):
    add_reminder(worker_db)
    processed = []

    async def fake_process(sample):
        processed.append(sample)
        monkeypatch.setattr(location_worker, "shutdown_requested", True)
        return []

    monkeypatch.setattr(location_worker, "process_sample", fake_process)
    monkeypatch.setattr(location_worker, "shutdown_requested", False)

    channel = LocationEventChannel(maxsize=2)
    channel.publish(LocationSample(USER, 51.5074, -0.1278))

    await asyncio.wait_for(location_worker.worker_loop(channel), timeout=5)
    assert processed == [LocationSample(USER, 51.5074, -0.1278)]


@pytest.mark.asyncio
async def test_notification_bookkeeping_runs_off_the_event_loop(worker_db, monkeypatch):
    add_reminder(worker_db)
    loop_thread = threading.current_thread()
    marked_on = []
    original = crud.mark_notification_sent

    def recording_mark(db, reminder_id):
        marked_on.append(threading.current_thread())
        return original(db, reminder_id)

    async def fake_notify(reminder, transport=None):
        return True

    monkeypatch.setattr(crud, "mark_notification_sent", recording_mark)
    monkeypatch.setattr(location_worker, "send_push_notification", fake_notify)

    await process_sample(LocationSample(USER, 51.5074, -0.1278))

    assert len(marked_on) == 1
    assert marked_on[0] is not loop_thread


@pytest.mark.asyncio
async def test_standalone_drains_input_until_end(worker_db, monkeypatch):
    processed = []

    async def fake_process(sample):
        processed.append(sample)
        return []

    monkeypatch.setattr(location_worker, "process_sample", fake_process)
    monkeypatch.setattr(location_worker, "shutdown_requested", False)

    stream = io.StringIO(
        '{"user_id": "u1", "latitude": 51.5, "longitude": -0.12}\n'
        'garbage\n'
        '\n'
        '{"user_id": "u2", "latitude": 48.85, "longitude": 2.35}\n'
    )
    await asyncio.wait_for(location_worker.run_standalone(stream), timeout=10)

    assert processed == [LocationSample("u1", 51.5, -0.12), LocationSample("u2", 48.85, 2.35)]
    assert location_worker.shutdown_requested is True


@pytest.mark.asyncio
async def test_standalone_stops_on_signal_while_input_is_idle(worker_db, monkeypatch):
    monkeypatch.setattr(location_worker, "shutdown_requested", False)
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd)

    async def request_shutdown():
        await asyncio.sleep(0.2)
        location_worker.signal_handler(signal.SIGTERM, None)

    try:
        # Nothing is ever written, so the reader stays blocked on the pipe
        await asyncio.wait_for(
            asyncio.gather(location_worker.run_standalone(stream), request_shutdown()),
            timeout=5,
        )
    finally:
        os.close(write_fd)
