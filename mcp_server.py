"""MCP Server for Smart Reminder Service.

This module provides MCP tools for AI agents to parse and manage reminders.
Uses the same database as the REST API for data consistency.

Transport Support:
- stdio: Standard input/output (local process communication)
- sse: Server-Sent Events over HTTP (network access, scalable)
"""

from mcp.server.fastmcp import FastMCP
import os
import crud
import database
from assembler import build_assembler
from config import settings
from errors import InvalidInput, StorageUnavailable
from logger_config import setup_logger
from trigger_evaluator import TriggerCandidate, TriggerEvaluator, validate_location

logger = setup_logger(__name__, 'mcp.log')
logger.info("MCP Server initialized")

# Create FastMCP server with host and port from settings
mcp = FastMCP(
    "SmartReminderService",
    host=settings.MCP_HOST,
    port=settings.MCP_PORT
)

# Parser and geocoder are built once for the lifetime of the server process
assembler = build_assembler()


def format_reminder(r) -> str:
    """One reminder as a short bullet block."""
    lines = [
        f"• [{r.status.value.upper()}] {r.title}",
        f"  ID: {r.id}",
        f"  Category: {r.category.value} | Priority: {r.priority.value} | Trigger: {r.trigger_type.value}",
    ]
    if r.due_date:
        lines.append(f"  Due: {r.due_date.isoformat()}")
    if r.place_name:
        where = r.address or r.place_name
        coords = f" ({r.latitude}, {r.longitude})" if r.coordinates else " (not geocoded)"
        lines.append(f"  Where: {where}{coords}, radius {int(r.radius)}m")
    if r.is_triggered:
        lines.append(f"  Triggered at: {r.triggered_at.isoformat() if r.triggered_at else 'yes'}")
    return "\n".join(lines)


@mcp.tool()
async def parse_reminder(text: str) -> str:
    """Parse natural language reminder text without saving it.

    Args:
        text: Reminder text (e.g., "Remind me to buy milk when I'm near a grocery store")

    Returns:
        The parsed task, category, priority, trigger type, due date and location
    """
    parsed = await assembler.parse(text)
    lines = [
        f"Task: {parsed.task}",
        f"Category: {parsed.category}",
        f"Priority: {parsed.priority}",
        f"Trigger: {parsed.trigger_type}",
        f"Due: {parsed.due_date.isoformat() if parsed.due_date else 'N/A'}",
    ]
    if parsed.location:
        lines.append(f"Place: {parsed.location.place_name}")
        if parsed.location.coordinates:
            lng, lat = parsed.location.coordinates
            lines.append(f"Coordinates: {lat}, {lng} ({parsed.location.address})")
    return "\n".join(lines)


@mcp.tool()
async def create_reminder(
    user_id: str,
    text: str = None,
    title: str = None,
    priority: str = None,
    radius: float = None
) -> str:
    """Create a reminder, from natural language text or an explicit title.

    Args:
        user_id: Owner of the reminder
        text: Natural language text (e.g., "Pay electricity bill before Sunday")
        title: Optional explicit title; when given the text is not parsed
        priority: Optional priority - "low", "medium", or "high"
        radius: Optional geofence radius in meters for location reminders

    Returns:
        Success message with reminder details, or error message
    """
    if not text and not title:
        return "✗ Provide either text or title."

    explicit = {}
    if title:
        explicit['title'] = title
    if priority:
        explicit['priority'] = priority
    if radius:
        explicit['location'] = {'radius': radius}

    record = await assembler.assemble(explicit, text)
    if not record.get('title'):
        return "✗ Could not derive a title from the text."

    db = database.SessionLocal()
    try:
        logger.info(f"📝 Creating reminder for {user_id}: {record['title']}")
        reminder = crud.create_reminder(db, user_id, record)
        return "✓ Reminder created successfully!\n" + format_reminder(reminder)
    except Exception as e:
        logger.error(f"Error creating reminder: {str(e)}", exc_info=True)
        return f"✗ Error creating reminder: {str(e)}"
    finally:
        db.close()


@mcp.tool()
def list_reminders(
    user_id: str,
    status: str = None,
    trigger_type: str = None,
    limit: int = 50
) -> str:
    """List reminders for a user.

    Args:
        user_id: Owner of the reminders
        status: Optional status filter - "active", "completed", "snoozed", "cancelled"
        trigger_type: Optional trigger filter - "time", "location", "both"
        limit: Maximum number of results (default: 50, max: 1000)

    Returns:
        Formatted list of reminders or message if none found
    """
    db = database.SessionLocal()
    try:
        reminders = crud.get_reminders_by_user(
            db, user_id, status=status, trigger_type=trigger_type, limit=min(limit, 1000)
        )
        if not reminders:
            return "No reminders found."

        result = [f"Found {len(reminders)} reminder(s):"]
        result.extend(format_reminder(r) for r in reminders)
        return "\n\n".join(result)
    finally:
        db.close()


@mcp.tool()
def get_reminder(reminder_id: str, user_id: str) -> str:
    """Get detailed information about a specific reminder.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
    """
    db = database.SessionLocal()
    try:
        reminder = crud.get_reminder(db, reminder_id, user_id)
        if not reminder:
            return "✗ Reminder not found."
        return (
            format_reminder(reminder)
            + f"\n  Original input: {reminder.original_input}"
            + f"\n  Created: {reminder.created_at.isoformat()}"
        )
    finally:
        db.close()


@mcp.tool()
def complete_reminder(reminder_id: str, user_id: str) -> str:
    """Mark a reminder as completed.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
    """
    db = database.SessionLocal()
    try:
        reminder = crud.complete_reminder(db, reminder_id, user_id)
        if not reminder:
            return "✗ Reminder not found."
        return f"✓ Reminder '{reminder.title}' marked as completed."
    finally:
        db.close()


@mcp.tool()
def delete_reminder(reminder_id: str, user_id: str) -> str:
    """Delete a reminder.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
    """
    db = database.SessionLocal()
    try:
        if crud.delete_reminder(db, reminder_id, user_id):
            return f"✓ Reminder {reminder_id} deleted successfully."
        return "✗ Reminder not found."
    finally:
        db.close()


@mcp.tool()
def check_location(user_id: str, latitude: float, longitude: float) -> str:
    """Check which location reminders fire at the given position.

    Args:
        user_id: Owner of the reminders
        latitude: Current latitude
        longitude: Current longitude

    Returns:
        Reminders that fired for this position (each fires only once)
    """
    try:
        location = validate_location(latitude, longitude)
    except InvalidInput as e:
        return f"✗ {str(e)}"

    db = database.SessionLocal()
    try:
        candidates = [
            TriggerCandidate.from_reminder(r) for r in crud.get_location_candidates(db, user_id)
        ]
        evaluator = TriggerEvaluator(crud.SqlTriggerStore(db))
        warning = ""
        try:
            triggered = evaluator.evaluate(location, candidates)
        except StorageUnavailable as e:
            triggered = e.triggered
            warning = f"\n⚠ Storage unavailable for some reminders: {str(e)}"

        if not triggered:
            return "No location reminders triggered here." + warning

        result = [f"📍 {len(triggered)} reminder(s) triggered:"]
        for candidate in triggered:
            db.refresh(candidate.record)
            result.append(format_reminder(candidate.record))
        return "\n\n".join(result) + warning
    finally:
        db.close()


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", settings.MCP_TRANSPORT).lower()

    if transport == "sse":
        print(f"Starting MCP server with SSE transport on {settings.MCP_HOST}:{settings.MCP_PORT}")
        print(f"SSE endpoint: http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
        mcp.run(transport="sse")
    else:
        print("Starting MCP server with stdio transport")
        mcp.run(transport="stdio")
