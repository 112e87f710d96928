"""Tests for reminder assembly (parse -> geocode -> merge)."""

from datetime import datetime, timezone

import pytest

from assembler import ReminderAssembler
from errors import GeocodeError
from geocoder import GeocodeResolver, GeocodeResult
from nlp_parser import TextParser

SUNDAY = datetime(2026, 10, 25, 9, 0, tzinfo=timezone.utc)
GROCERY = GeocodeResult(coordinates=(-122.41, 37.77), address="1 Market St", place_type="supermarket")


class StubResolver(GeocodeResolver):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.queries = []

    async def geocode(self, place_name):
        self.queries.append(place_name)
        if self.error:
            raise self.error
        return self.result


def make_assembler(resolver, dates=()):
    parser = TextParser(date_recognizer=lambda text: [d for d in dates if d[0] in text])
    return ReminderAssembler(parser, resolver)


@pytest.mark.asyncio
async def test_assemble_from_text_with_geocoding():
    resolver = StubResolver(result=GROCERY)
    record = await make_assembler(resolver).assemble(
        {}, "Remind me to buy milk when I'm near a grocery store"
    )

    assert record['title'] == "buy milk"
    assert record['category'] == "Groceries"
    assert record['priority'] == "medium"
    assert record['trigger_type'] == "location"
    assert record['original_input'] == "Remind me to buy milk when I'm near a grocery store"
    assert record['location'] == {
        'place_name': "a grocery store",
        'radius': 500,
        'coordinates': [-122.41, 37.77],
        'address': "1 Market St",
        'place_type': "supermarket",
    }
    assert resolver.queries == ["a grocery store"]


@pytest.mark.asyncio
async def test_explicit_fields_win():
    resolver = StubResolver(result=GROCERY)
    record = await make_assembler(resolver).assemble(
        {'priority': 'high', 'category': 'Shopping', 'location': {'radius': 150}},
        "Remind me to buy milk when I'm near a grocery store",
    )

    assert record['priority'] == "high"
    assert record['category'] == "Shopping"
    assert record['title'] == "buy milk"
    assert record['location']['radius'] == 150
    assert record['location']['place_name'] == "a grocery store"
    assert record['location']['coordinates'] == [-122.41, 37.77]


@pytest.mark.asyncio
async def test_explicit_coordinates_are_not_overwritten():
    resolver = StubResolver(result=GROCERY)
    record = await make_assembler(resolver).assemble(
        {'location': {'coordinates': [1.0, 2.0]}},
        "Remind me to buy milk when I'm near a grocery store",
    )
    assert record['location']['coordinates'] == [1.0, 2.0]
    assert record['location']['address'] == "1 Market St"


@pytest.mark.asyncio
async def test_explicit_title_skips_parsing():
    resolver = StubResolver(result=GROCERY)
    record = await make_assembler(resolver).assemble(
        {'title': 'Milk'}, "Remind me to buy milk when I'm near a grocery store"
    )

    assert record == {
        'title': 'Milk',
        'original_input': "Remind me to buy milk when I'm near a grocery store",
    }
    assert resolver.queries == []


@pytest.mark.asyncio
async def test_no_text_returns_explicit_fields():
    record = await make_assembler(StubResolver()).assemble({'title': 'Walk the dog'})
    assert record == {'title': 'Walk the dog'}


@pytest.mark.asyncio
async def test_geocode_failure_keeps_unenriched_location():
    resolver = StubResolver(error=GeocodeError("OVER_QUERY_LIMIT"))
    record = await make_assembler(resolver).assemble({}, "Call John when I reach office")

    assert record['trigger_type'] == "location"
    assert record['location'] == {'place_name': "office", 'radius': 500}


@pytest.mark.asyncio
async def test_geocode_no_results_keeps_unenriched_location():
    record = await make_assembler(StubResolver(result=None)).assemble({}, "Call John when I reach office")
    assert 'coordinates' not in record['location']


@pytest.mark.asyncio
async def test_due_date_only_when_parsed():
    assembler = make_assembler(StubResolver(), dates=[("Sunday", SUNDAY)])

    with_date = await assembler.assemble({}, "Pay electricity bill before Sunday")
    assert with_date['due_date'] == SUNDAY
    assert with_date['trigger_type'] == "time"
    assert 'location' not in with_date

    without_date = await assembler.assemble({}, "Water the plants")
    assert 'due_date' not in without_date


@pytest.mark.asyncio
async def test_explicit_due_date_wins():
    explicit_due = datetime(2027, 1, 1, tzinfo=timezone.utc)
    assembler = make_assembler(StubResolver(), dates=[("Sunday", SUNDAY)])
    record = await assembler.assemble({'due_date': explicit_due}, "Pay electricity bill before Sunday")
    assert record['due_date'] == explicit_due


@pytest.mark.asyncio
async def test_parse_enriches_location():
    parsed = await make_assembler(StubResolver(result=GROCERY)).parse(
        "Remind me to buy milk when I'm near a grocery store"
    )
    assert parsed.location.coordinates == (-122.41, 37.77)
    assert parsed.location.place_name == "a grocery store"
    assert parsed.location.radius == 500


@pytest.mark.asyncio
async def test_parse_survives_geocode_failure():
    parsed = await make_assembler(StubResolver(error=GeocodeError("timeout"))).parse(
        "Call John when I reach office"
    )
    assert parsed.location.coordinates is None
    assert parsed.trigger_type == "location"
