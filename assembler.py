"""Reminder assembly: parse -> geocode-enrich -> merge with explicit fields.

The assembler turns a create request (explicit fields plus optional natural
language text) into the dict crud.create_reminder persists. Explicit values
always win over parsed ones. Geocoding failures never fail the assembly; the
reminder is kept with an un-enriched location.
"""

from dataclasses import asdict
from typing import Optional

from config import settings
from errors import GeocodeError
from geo import DEFAULT_RADIUS_METERS
from geocoder import GeocodeResolver, GoogleMapsGeocoder
from logger_config import setup_logger
from nlp_parser import ParsedReminder, TextParser

logger = setup_logger(__name__, 'nlp.log')

PARSED_FIELDS = (
    ('title', 'task'),
    ('category', 'category'),
    ('priority', 'priority'),
    ('trigger_type', 'trigger_type'),
)


def _absent(record: dict, key: str) -> bool:
    return record.get(key) is None


class ReminderAssembler:
    """Builds persistable reminder records from explicit fields and raw text.

    Args:
        parser: TextParser used for natural language input
        resolver: GeocodeResolver used to enrich parsed locations
    """

    def __init__(self, parser: TextParser, resolver: GeocodeResolver):
        self.parser = parser
        self.resolver = resolver

    async def enrich(self, parsed: ParsedReminder) -> ParsedReminder:
        """Geocode the parsed location in place. Failures leave it un-enriched."""
        if parsed.location is None or not parsed.location.place_name:
            return parsed

        result = await self._geocode(parsed.location.place_name)
        if result is not None:
            parsed.location.coordinates = result.coordinates
            parsed.location.address = result.address
            parsed.location.place_type = result.place_type
        return parsed

    async def parse(self, text: str) -> ParsedReminder:
        """Parse text and enrich its location, as served by POST /reminders/parse."""
        return await self.enrich(self.parser.parse(text))

    async def assemble(self, explicit: dict, raw_text: Optional[str] = None) -> dict:
        """Merge explicit fields with what can be derived from raw_text.

        Args:
            explicit: Fields supplied by the caller (ReminderCreate, unset fields omitted)
            raw_text: Natural language reminder text

        Returns:
            dict: Record ready for crud.create_reminder
        """
        record = dict(explicit)
        if raw_text and _absent(record, 'original_input'):
            record['original_input'] = raw_text

        if not raw_text or not _absent(record, 'title'):
            return record

        parsed = self.parser.parse(raw_text)

        for field, parsed_field in PARSED_FIELDS:
            if _absent(record, field):
                record[field] = getattr(parsed, parsed_field)
        if parsed.due_date is not None and _absent(record, 'due_date'):
            record['due_date'] = parsed.due_date

        if parsed.location is not None and parsed.location.place_name:
            record['location'] = await self._merge_location(
                record.get('location') or {}, asdict(parsed.location)
            )

        return record

    async def _merge_location(self, explicit: dict, parsed: dict) -> dict:
        location = {key: value for key, value in parsed.items() if value is not None}
        location.update({key: value for key, value in explicit.items() if value is not None})
        location.setdefault('radius', DEFAULT_RADIUS_METERS)

        # Geocode the phrase the parser found; explicit enrichment fields still win
        result = await self._geocode(parsed['place_name'])
        if result is not None:
            location.setdefault('coordinates', list(result.coordinates))
            location.setdefault('address', result.address)
            location.setdefault('place_type', result.place_type)
        return location

    async def _geocode(self, place_name: str):
        try:
            return await self.resolver.geocode(place_name)
        except GeocodeError as e:
            logger.warning(f"Geocoding failed for '{place_name}', keeping un-enriched location: {str(e)}")
            return None


def build_assembler() -> ReminderAssembler:
    """Construct the parser and geocoder once, at process start."""
    return ReminderAssembler(
        parser=TextParser(),
        resolver=GoogleMapsGeocoder(api_key=settings.GOOGLE_MAPS_API_KEY),
    )
