"""Event processor for validating and normalizing event data."""
import logging
import re
from datetime import datetime
from typing import Any, List, Optional

from dateutil import parser as dateutil_parser
from dateutil import tz as dateutil_tz

from processor.errors import EmptyList, InvalidFormat, MissingField, ValidationError
from processor.models import EVENT_MODES, Event, EventCandidate, NormalizedEvent

logger = logging.getLogger(__name__)

REQUIRED_STRING_FIELDS = (
    'title',
    'description',
    'overview',
    'image',
    'venue',
    'location',
    'date',
    'time',
    'mode',
    'audience',
    'organizer',
)
REQUIRED_LIST_FIELDS = ('agenda', 'tags')

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
TIME_PATTERN = re.compile(
    r'^(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\s?(AM|PM))?$', re.IGNORECASE | re.ASCII
)
DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def generate_slug(title: str) -> str:
    """
    Generate a URL-friendly slug from an event title.

    Args:
        title: Event title

    Returns:
        Lowercase, hyphen-separated slug (may be empty for titles
        without any word characters)
    """
    slug = title.lower().strip()
    slug = re.sub(r'[^a-z0-9_\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip('-')


def normalize_date(value: str) -> str:
    """
    Normalize a date to ISO 8601 format (YYYY-MM-DD).

    Timezone-aware values are converted to UTC first; naive values are
    taken to already be UTC. Values missing a year, month or day are
    rejected rather than completed from the current date.

    Args:
        value: Date string in any format dateutil understands

    Returns:
        ISO 8601 formatted date string

    Raises:
        InvalidFormat: If the value cannot be parsed as a date
    """
    if not isinstance(value, str):
        raise InvalidFormat('date', str(value))

    try:
        parsed = dateutil_parser.parse(value.strip(), default=DATE_DEFAULTS[0])
        check = dateutil_parser.parse(value.strip(), default=DATE_DEFAULTS[1])
    except (ValueError, OverflowError) as e:
        raise InvalidFormat('date', value) from e

    # dateutil fills missing year/month/day from the default
    if parsed.date() != check.date():
        raise InvalidFormat('date', value)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dateutil_tz.tzutc())

    return parsed.date().isoformat()


def normalize_time(value: str) -> str:
    """
    Normalize a time to 24-hour format (HH:MM).

    Accepts H:MM, HH:MM and HH:MM:SS, optionally followed by AM/PM.
    Seconds are dropped.

    Args:
        value: Time string

    Returns:
        24-hour formatted time string

    Raises:
        InvalidFormat: If the value does not match a supported format
    """
    if not isinstance(value, str):
        raise InvalidFormat('time', str(value))

    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidFormat('time', value)

    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = match.group(3)
    period = match.group(4).upper() if match.group(4) else None

    if minutes > 59 or (seconds is not None and int(seconds) > 59):
        raise InvalidFormat('time', value)

    if period:
        if not 1 <= hours <= 12:
            raise InvalidFormat('time', value)
        if period == 'PM' and hours != 12:
            hours += 12
        elif period == 'AM' and hours == 12:
            hours = 0
    elif hours > 23:
        raise InvalidFormat('time', value)

    return f'{hours:02d}:{minutes:02d}'


def _field_value(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _non_blank(items: Optional[List[Any]]) -> List[str]:
    return [item for item in items or [] if isinstance(item, str) and item.strip()]


def validate_required_fields(record: Any) -> None:
    """
    Validate that required fields are present and non-empty.

    Args:
        record: EventCandidate, Event or plain dict of event fields

    Raises:
        MissingField: For the first required string field that is absent
            or blank
        EmptyList: If agenda or tags has no non-empty entries
    """
    for name in REQUIRED_STRING_FIELDS:
        value = _field_value(record, name)
        if not isinstance(value, str) or not value.strip():
            raise MissingField(name)

    for name in REQUIRED_LIST_FIELDS:
        if not _non_blank(_field_value(record, name)):
            raise EmptyList(name)


def is_valid_email(value: str) -> bool:
    """Check an email address against a simple local@domain.tld pattern."""
    if not isinstance(value, str):
        return False
    return EMAIL_PATTERN.match(value.strip()) is not None


class EventProcessor:
    """Processor for validating and normalizing event candidates."""

    MAX_DESCRIPTION_LENGTH = 500
    MAX_OVERVIEW_LENGTH = 500

    def normalize(
        self,
        candidate: EventCandidate,
        previous: Optional[Event] = None
    ) -> NormalizedEvent:
        """
        Validate a candidate and return its normalized form.

        When a previous version of the record is given, the slug is only
        regenerated if the title changed, and date/time are only
        re-normalized if they changed.

        Args:
            candidate: Unvalidated event fields
            previous: Currently persisted version of the event, if any

        Returns:
            NormalizedEvent ready for EventStore

        Raises:
            MissingField: If a required string field is absent or blank
            EmptyList: If agenda or tags is empty
            ValidationError: If any field-level check fails
        """
        validate_required_fields(candidate)

        errors = []

        description = candidate.description.strip()
        if len(description) > self.MAX_DESCRIPTION_LENGTH:
            errors.append(
                f'Description cannot exceed {self.MAX_DESCRIPTION_LENGTH} characters'
            )

        overview = candidate.overview.strip()
        if len(overview) > self.MAX_OVERVIEW_LENGTH:
            errors.append(
                f'Overview cannot exceed {self.MAX_OVERVIEW_LENGTH} characters'
            )

        mode = candidate.mode.strip()
        if mode not in EVENT_MODES:
            errors.append(
                f'{mode} is not a valid mode (expected one of: '
                f'{", ".join(EVENT_MODES)})'
            )

        date = candidate.date.strip()
        if previous is None or date != previous.date:
            try:
                date = normalize_date(date)
            except InvalidFormat as e:
                errors.extend(e.errors)

        time = candidate.time.strip()
        if previous is None or time != previous.time:
            try:
                time = normalize_time(time)
            except InvalidFormat as e:
                errors.extend(e.errors)

        title = candidate.title.strip()
        if previous is not None and previous.slug and title == previous.title:
            slug = previous.slug
        else:
            slug = generate_slug(title)
        if not slug:
            errors.append('title must contain at least one letter or digit')

        if errors:
            logger.warning(f"Event '{title}' failed validation: {errors}")
            raise ValidationError(errors)

        return NormalizedEvent(
            slug=slug,
            title=title,
            description=description,
            overview=overview,
            image=candidate.image.strip(),
            venue=candidate.venue.strip(),
            location=candidate.location.strip(),
            date=date,
            time=time,
            mode=mode,
            audience=candidate.audience.strip(),
            organizer=candidate.organizer.strip(),
            agenda=_non_blank(candidate.agenda),
            tags=_non_blank(candidate.tags)
        )
