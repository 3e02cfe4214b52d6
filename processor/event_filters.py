"""Search, filter and sort helpers over an already-fetched list of events."""
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import EventsAppError
from processor.models import Event, EventQuery

logger = logging.getLogger(__name__)

SORT_OPTIONS = ('newest', 'oldest', 'title-asc', 'title-desc')
ALL = 'all'


def search_events(events: List[Event], query: str) -> List[Event]:
    """
    Case-insensitive substring search over title, description, location
    and tags. A blank query returns the events unchanged.
    """
    if not query or not query.strip():
        return list(events)

    needle = query.strip().lower()
    return [
        event for event in events
        if needle in event.title.lower()
        or needle in (event.description or '').lower()
        or needle in event.location.lower()
        or any(needle in tag.lower() for tag in event.tags or [])
    ]


def filter_by_mode(events: List[Event], mode: Optional[str]) -> List[Event]:
    if not mode or mode == ALL:
        return list(events)
    return [event for event in events if event.mode == mode]


def filter_by_location(events: List[Event], location: Optional[str]) -> List[Event]:
    if not location or location == ALL:
        return list(events)
    return [event for event in events if event.location == location]


def sort_events(events: List[Event], order: str = 'newest') -> List[Event]:
    """
    Sort events by creation time or title.

    Args:
        events: Events to sort
        order: One of newest, oldest, title-asc, title-desc

    Returns:
        New sorted list

    Raises:
        ValueError: If order is not a supported option
    """
    if order == 'newest':
        return sorted(events, key=lambda e: e.created_at, reverse=True)
    if order == 'oldest':
        return sorted(events, key=lambda e: e.created_at)
    if order == 'title-asc':
        return sorted(events, key=lambda e: e.title.casefold())
    if order == 'title-desc':
        return sorted(events, key=lambda e: e.title.casefold(), reverse=True)
    raise ValueError(f"Unsupported sort order: {order}")


def limit_events(events: List[Event], limit: Optional[int]) -> List[Event]:
    if not limit:
        return list(events)
    return list(events)[:limit]


def apply_filters(events: List[Event], query: EventQuery) -> List[Event]:
    """Run search, mode/location filters, sort and limit in that order."""
    result = search_events(events, query.search)
    result = filter_by_mode(result, query.mode)
    result = filter_by_location(result, query.location)
    result = sort_events(result, query.sort)
    return limit_events(result, query.limit)


def unique_locations(events: List[Event]) -> List[str]:
    """Sorted distinct locations, used to populate the location filter."""
    return sorted({event.location for event in events})


def similar_events(event: Event, events: List[Event]) -> List[Event]:
    """
    Other events that share at least one tag with the given event.

    Args:
        event: Reference event
        events: Candidate events (any order)

    Returns:
        Matching events, newest first, excluding the reference event
    """
    tags = set(event.tags)
    related = [
        other for other in events
        if other.slug != event.slug and tags.intersection(other.tags)
    ]
    return sort_events(related, 'newest')


def load_events(event_store) -> List[Event]:
    """
    Fetch all events for display.

    Store failures are logged and degrade to an empty list so a listing
    section can still render.
    """
    try:
        return event_store.find_all()
    except (ClientError, BotoCoreError, EventsAppError) as e:
        logger.error(f"Error fetching events for display: {e}", exc_info=True)
        return []
