"""Natural language parsing for reminder text.

Turns free-form text such as "Remind me to buy milk when I'm near a grocery store"
into a ParsedReminder: task, category, priority, optional due date, optional
location phrase and the derived trigger type.

The parser is pure. Its only collaborator is a date-phrase recognizer, a callable
returning ``[(matched_text, datetime), ...]`` ordered by position in the text.
The default recognizer is backed by ``dateparser.search.search_dates``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from dateparser.search import search_dates

from config import settings
from geo import DEFAULT_RADIUS_METERS
from logger_config import setup_logger

logger = setup_logger(__name__, 'nlp.log')

DateRecognizer = Callable[[str], Sequence[Tuple[str, datetime]]]

# Precedence order matters: the first category with a keyword hit wins.
CATEGORY_KEYWORDS = [
    ('Groceries', ['grocery', 'store', 'supermarket', 'buy', 'milk', 'bread', 'food', 'shopping']),
    ('Bills', ['bill', 'payment', 'pay', 'electricity', 'water', 'rent', 'insurance']),
    ('Work', ['work', 'office', 'meeting', 'presentation', 'report', 'email', 'call']),
    ('Health', ['doctor', 'appointment', 'medicine', 'pharmacy', 'workout', 'exercise', 'gym']),
    ('Shopping', ['shop', 'buy', 'purchase', 'mall']),
]
DEFAULT_CATEGORY = 'Personal'

HIGH_PRIORITY_KEYWORDS = ['urgent', 'important', 'asap', 'immediately', 'critical']
LOW_PRIORITY_KEYWORDS = ['maybe', 'sometime', 'eventually', 'when possible']

TASK_PREFIX = re.compile(r'^(?:remind\s+me\s+to|remember\s+to)\s+', re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r'[,.]$')


@dataclass
class ParsedLocation:
    """Location phrase found in reminder text, optionally geocoded later."""

    place_name: str
    radius: float = DEFAULT_RADIUS_METERS
    coordinates: Optional[Tuple[float, float]] = None  # (longitude, latitude)
    address: Optional[str] = None
    place_type: Optional[str] = None


@dataclass
class ParsedReminder:
    """Structured result of parsing one piece of reminder text."""

    original_input: str
    task: str
    category: str = DEFAULT_CATEGORY
    priority: str = 'medium'
    trigger_type: str = 'time'
    due_date: Optional[datetime] = None
    location: Optional[ParsedLocation] = None


@dataclass(frozen=True)
class LocationMatch:
    """Span of a location phrase inside the text and the captured place."""

    start: int
    end: int
    place: str


@dataclass(frozen=True)
class LocationPattern:
    """One matcher in the ordered location-phrase chain."""

    name: str
    regex: re.Pattern = field(repr=False)

    def try_match(self, text: str) -> Optional[LocationMatch]:
        match = self.regex.search(text)
        if not match:
            return None
        return LocationMatch(match.start(), match.end(), match.group('place').strip())


def _place_pattern(prefix: str) -> re.Pattern:
    return re.compile(prefix + r'(?P<place>.+?)(?:\.|,|$)', re.IGNORECASE)


LOCATION_PATTERNS: List[LocationPattern] = [
    LocationPattern(
        'conditional_proximity',
        _place_pattern(r"(?:when|if|once)\s+(?:I'?m?|I\s+am)\s+(?:at|near|in|by)\s+"),
    ),
    LocationPattern(
        'bare_proximity',
        _place_pattern(r'(?:at|near|in|by)\s+(?:the\s+)?'),
    ),
    LocationPattern(
        'arrival',
        _place_pattern(r'(?:when|if|once)\s+(?:I|we)\s+(?:reach|get\s+to|arrive\s+at)\s+'),
    ),
]


# dateparser reads some everyday words as dates ("we" -> Wednesday, "may" -> May).
AMBIGUOUS_DATE_WORDS = {'we', 'may', 'mar', 'march', 'sat', 'sun', 'second'}


def is_plausible_date_phrase(span: str) -> bool:
    """Reject recognizer hits made only of short or ambiguous everyday words."""
    phrase = span.strip().lower()
    if any(ch.isdigit() for ch in phrase):
        return True
    words = re.findall(r'[a-z]+', phrase)
    return any(len(word) >= 3 and word not in AMBIGUOUS_DATE_WORDS for word in words)


def default_date_recognizer(text: str) -> List[Tuple[str, datetime]]:
    """Find date phrases with dateparser, resolving relative dates into the future."""
    found = search_dates(
        text,
        languages=settings.DATE_LANGUAGES,
        settings={
            'PREFER_DATES_FROM': 'future',
            'TIMEZONE': settings.TIMEZONE,
            'RETURN_AS_TIMEZONE_AWARE': True,
        },
    )
    return [(span, when) for span, when in found or [] if is_plausible_date_phrase(span)]


def first_location_match(
    text: str, patterns: Sequence[LocationPattern] = LOCATION_PATTERNS
) -> Optional[Tuple[int, LocationMatch]]:
    """Return (pattern index, match) for the first pattern in the chain that matches."""
    for index, pattern in enumerate(patterns):
        match = pattern.try_match(text)
        if match:
            return index, match
    return None


def categorize(text: str) -> str:
    lower_text = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lower_text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def determine_priority(text: str) -> str:
    lower_text = text.lower()
    if any(keyword in lower_text for keyword in HIGH_PRIORITY_KEYWORDS):
        return 'high'
    if any(keyword in lower_text for keyword in LOW_PRIORITY_KEYWORDS):
        return 'low'
    return 'medium'


def derive_trigger_type(due_date: Optional[datetime], location: Optional[ParsedLocation]) -> str:
    if location is not None:
        return 'both' if due_date is not None else 'location'
    return 'time'


class TextParser:
    """Parses reminder text into a ParsedReminder.

    Stateless apart from its collaborators, so one instance can be shared by
    concurrent requests.

    Args:
        date_recognizer: Callable returning (matched_text, datetime) pairs
        patterns: Ordered location matchers; earlier ones take precedence
    """

    def __init__(
        self,
        date_recognizer: Optional[DateRecognizer] = None,
        patterns: Sequence[LocationPattern] = LOCATION_PATTERNS,
    ):
        self.date_recognizer = date_recognizer or default_date_recognizer
        self.patterns = list(patterns)

    def parse(self, text: str) -> ParsedReminder:
        """Parse reminder text. Never raises; unknown input falls back to defaults."""
        date_span, due_date = self._extract_date(text)

        location = None
        winner = first_location_match(text, self.patterns)
        if winner:
            location = ParsedLocation(place_name=winner[1].place)

        result = ParsedReminder(
            original_input=text,
            task=self._extract_task(text, date_span, winner[0] if winner else None),
            category=categorize(text),
            priority=determine_priority(text),
            trigger_type=derive_trigger_type(due_date, location),
            due_date=due_date,
            location=location,
        )
        logger.info(
            f"Parsed '{text}' -> task='{result.task}', category={result.category}, "
            f"trigger={result.trigger_type}, place={location.place_name if location else None}"
        )
        return result

    def _extract_date(self, text: str) -> Tuple[Optional[str], Optional[datetime]]:
        try:
            candidates = self.date_recognizer(text)
        except Exception as e:
            logger.warning(f"Date recognition failed for '{text}': {str(e)}", exc_info=True)
            return None, None

        if not candidates:
            return None, None
        span, resolved = candidates[0]
        return span, resolved

    def _extract_task(self, text: str, date_span: Optional[str], pattern_index: Optional[int]) -> str:
        task = text

        if date_span:
            task = task.replace(date_span, '', 1).strip()

        if pattern_index is not None:
            # Strip with the matcher that found the place; the date removal
            # above can break that phrase, so fall back to the ordered chain.
            match = self.patterns[pattern_index].try_match(task)
            if match is None:
                fallback = first_location_match(task, self.patterns)
                match = fallback[1] if fallback else None
            if match is not None:
                task = (task[:match.start] + task[match.end:]).strip()

        task = TASK_PREFIX.sub('', task).strip()
        task = TRAILING_PUNCTUATION.sub('', task).strip()

        return task or text
