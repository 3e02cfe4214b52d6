"""Route API Gateway proxy events to the event and booking operations."""
import json
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ingestion.request_parser import merge_submission, parse_event_submission, request_body
from processor.errors import (
    EventsAppError,
    ImageProcessingError,
    InternalError,
    MalformedRequest,
    ValidationError,
)
from processor.event_filters import (
    SORT_OPTIONS,
    apply_filters,
    load_events,
    similar_events,
    unique_locations,
)
from processor.event_processor import EventProcessor
from processor.models import EventQuery
from storage.booking_store import BookingStore
from storage.dynamodb_manager import DynamoDBConnection
from storage.event_store import EventStore, utc_timestamp

logger = logging.getLogger(__name__)

EVENTS_PATH = re.compile(r'^/api/events/?$')
EVENT_PATH = re.compile(r'^/api/events/(?P<slug>[^/]+)/?$')
SIMILAR_PATH = re.compile(r'^/api/events/(?P<slug>[^/]+)/similar/?$')
BOOKINGS_PATH = re.compile(r'^/api/bookings/?$')


def json_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """Build an API Gateway proxy response with a JSON body."""
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def error_response(error: EventsAppError) -> Dict[str, Any]:
    """Map an error from the taxonomy to its client-facing response."""
    body = {'message': error.message}
    if isinstance(error, ValidationError):
        body['errors'] = error.errors
    if isinstance(error, (ImageProcessingError, InternalError)):
        body['error'] = error.detail
    return json_response(error.status_code, body)


class EventsApi:
    """HTTP surface over the event and booking stores."""

    def __init__(
        self,
        connection: DynamoDBConnection,
        processor: Optional[EventProcessor] = None,
        clock: Callable[[], datetime] = utc_timestamp
    ):
        """
        Wire the stores to a shared connection.

        Args:
            connection: Store connection created once per process
            processor: Event normalizer (defaults to EventProcessor())
            clock: Timestamp source passed to the stores
        """
        self.processor = processor or EventProcessor()
        self.event_store = EventStore(connection, clock=clock)
        self.booking_store = BookingStore(connection, self.event_store, clock=clock)

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch a proxy event to the matching route.

        Args:
            event: API Gateway proxy event

        Returns:
            API Gateway proxy response
        """
        method = (event.get('httpMethod') or 'GET').upper()
        path = event.get('path') or '/'

        if EVENTS_PATH.match(path):
            if method == 'POST':
                return self.create_event(event)
            if method == 'GET':
                return self.list_events(event)
            return self._method_not_allowed(method, path)

        match = SIMILAR_PATH.match(path)
        if match:
            if method == 'GET':
                return self.get_similar_events(match.group('slug'))
            return self._method_not_allowed(method, path)

        match = EVENT_PATH.match(path)
        if match:
            if method == 'GET':
                return self.get_event(match.group('slug'))
            if method == 'PUT':
                return self.update_event(match.group('slug'), event)
            return self._method_not_allowed(method, path)

        if BOOKINGS_PATH.match(path):
            if method == 'POST':
                return self.create_booking(event)
            return self._method_not_allowed(method, path)

        return json_response(404, {'message': f'No route for {method} {path}'})

    def create_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Handle POST /api/events."""
        try:
            candidate = parse_event_submission(event)
            normalized = self.processor.normalize(candidate)
            created = self.event_store.create(normalized)
        except EventsAppError as e:
            logger.warning(
                f"Event creation rejected: {e.message}",
                extra={'error_type': e.code.value}
            )
            return error_response(e)
        except Exception as e:
            logger.error(f"Event creation failed: {e}", exc_info=True)
            return error_response(InternalError(str(e), 'Event Creation Failed'))

        return json_response(201, {
            'message': 'Event created successfully',
            'event': created.to_dict()
        })

    def list_events(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Handle GET /api/events, newest first unless ?sort= says otherwise."""
        try:
            query = self._event_query(event.get('queryStringParameters') or {})
        except MalformedRequest as e:
            return error_response(e)

        try:
            events = self.event_store.find_all()
        except Exception as e:
            logger.error(f"Event fetching failed: {e}", exc_info=True)
            return error_response(InternalError(str(e), 'Event fetching failed'))

        return json_response(200, {
            'message': 'Events fetched successfully',
            'events': [e.to_dict() for e in apply_filters(events, query)],
            'locations': unique_locations(events)
        })

    def get_event(self, slug: str) -> Dict[str, Any]:
        """Handle GET /api/events/{slug}, with the number of bookings so far."""
        try:
            found = self.event_store.find_by_slug(slug)
            bookings = self.booking_store.find_by_event(found.id) if found else []
        except Exception as e:
            logger.error(f"Event lookup failed for {slug}: {e}", exc_info=True)
            return error_response(InternalError(str(e), 'Event fetching failed'))

        if found is None:
            return json_response(404, {'message': 'Event not found'})

        return json_response(200, {
            'message': 'Event fetched successfully',
            'event': found.to_dict(),
            'bookingCount': len(bookings)
        })

    def update_event(self, slug: str, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle PUT /api/events/{slug}.

        The multipart body may carry any subset of the creation fields;
        omitted fields keep their stored values. A changed title moves the
        event to its new slug.
        """
        try:
            previous = self.event_store.find_by_slug(slug)
            if previous is None:
                return json_response(404, {'message': 'Event not found'})

            changes = parse_event_submission(event, partial=True)
            candidate = merge_submission(previous.to_candidate(), changes)
            normalized = self.processor.normalize(candidate, previous=previous)
            updated = self.event_store.update(previous, normalized)
        except EventsAppError as e:
            logger.warning(
                f"Event update rejected for {slug}: {e.message}",
                extra={'error_type': e.code.value}
            )
            return error_response(e)
        except Exception as e:
            logger.error(f"Event update failed for {slug}: {e}", exc_info=True)
            return error_response(InternalError(str(e), 'Event Update Failed'))

        return json_response(200, {
            'message': 'Event updated successfully',
            'event': updated.to_dict()
        })

    def get_similar_events(self, slug: str) -> Dict[str, Any]:
        """Handle GET /api/events/{slug}/similar (empty on store failure)."""
        events = load_events(self.event_store)
        reference = next((e for e in events if e.slug == slug), None)
        related = similar_events(reference, events) if reference else []
        return json_response(200, {
            'message': 'Similar events fetched successfully',
            'events': [e.to_dict() for e in related]
        })

    def create_booking(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Handle POST /api/bookings with a JSON {eventId, email} body."""
        try:
            payload = json.loads(request_body(event))
            if not isinstance(payload, dict):
                raise MalformedRequest('Booking payload must be a JSON object')
            self.booking_store.create(payload.get('eventId'), payload.get('email'))
        except ValueError as e:
            logger.warning(f"Booking payload could not be decoded: {e}")
            return json_response(400, {'success': False, 'error': 'Invalid JSON body'})
        except EventsAppError as e:
            logger.warning(f"Create booking failed: {e.message}")
            return json_response(e.status_code, {'success': False, 'error': e.message})
        except Exception as e:
            logger.error(f"Create booking failed: {e}", exc_info=True)
            return json_response(500, {'success': False, 'error': str(e)})

        return json_response(201, {'success': True})

    def _event_query(self, params: Dict[str, str]) -> EventQuery:
        sort = params.get('sort') or 'newest'
        if sort not in SORT_OPTIONS:
            raise MalformedRequest(
                f"sort must be one of: {', '.join(SORT_OPTIONS)}"
            )

        limit = params.get('limit')
        if limit:
            try:
                limit = int(limit) if limit.isascii() else -1
            except ValueError:
                limit = -1
            if limit <= 0:
                raise MalformedRequest('limit must be a positive integer')

        return EventQuery(
            search=params.get('search') or '',
            mode=params.get('mode'),
            location=params.get('location'),
            sort=sort,
            limit=limit or None
        )

    def _method_not_allowed(self, method: str, path: str) -> Dict[str, Any]:
        return json_response(405, {'message': f'Method {method} not allowed on {path}'})
