"""DynamoDB-backed store for booking records."""
import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from boto3.dynamodb.conditions import Key

from processor.errors import EventNotFound, InvalidEmail
from processor.event_processor import is_valid_email
from processor.models import Booking
from storage.dynamodb_manager import BOOKING_EVENT_INDEX, DynamoDBConnection
from storage.event_store import EventStore, format_timestamp, utc_timestamp

logger = logging.getLogger(__name__)


class BookingStore:
    """Persistence boundary for bookings, with an event existence check."""

    def __init__(
        self,
        connection: DynamoDBConnection,
        event_store: EventStore,
        clock: Callable[[], datetime] = utc_timestamp
    ):
        self.connection = connection
        self.table_name = connection.config.bookings_table
        self.event_store = event_store
        self._clock = clock

    def create(self, event_id: str, email: str) -> Booking:
        """
        Persist a booking for an existing event.

        The event lookup and the insert are not atomic; events are never
        deleted so the check cannot be invalidated in between. The lookup
        reads consistently so a just-created event is always found.

        Args:
            event_id: Identifier of the booked event
            email: Attendee email address

        Returns:
            The persisted Booking

        Raises:
            InvalidEmail: If the email is malformed
            EventNotFound: If no event has this id
        """
        if not is_valid_email(email):
            raise InvalidEmail(email if isinstance(email, str) else str(email))
        email = email.strip().lower()

        if self.event_store.find_by_id(event_id, consistent=True) is None:
            logger.warning(f"Booking rejected, unknown event: {event_id}")
            raise EventNotFound(event_id)

        now = format_timestamp(self._clock())
        booking = Booking(
            id=uuid.uuid4().hex,
            event_id=event_id,
            email=email,
            created_at=now,
            updated_at=now
        )

        with self.connection.table(self.table_name) as table:
            table.put_item(Item=booking.to_dict())

        logger.info(f"Created booking {booking.id} for event {event_id}")
        return booking

    def find_by_event(self, event_id: str) -> List[Booking]:
        """
        Retrieve all bookings for an event.

        Args:
            event_id: Event identifier

        Returns:
            Bookings ordered by createdAt ascending
        """
        if not event_id:
            return []

        with self.connection.table(self.table_name) as table:
            response = table.query(
                IndexName=BOOKING_EVENT_INDEX,
                KeyConditionExpression=Key('eventId').eq(event_id)
            )
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = table.query(
                    IndexName=BOOKING_EVENT_INDEX,
                    KeyConditionExpression=Key('eventId').eq(event_id),
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        bookings = [
            booking for booking in (self._item_to_booking(item) for item in items)
            if booking
        ]
        return sorted(bookings, key=lambda b: b.created_at)

    def _item_to_booking(self, item: dict) -> Optional[Booking]:
        try:
            return Booking(
                id=item['id'],
                event_id=item['eventId'],
                email=item['email'],
                created_at=item['createdAt'],
                updated_at=item['updatedAt']
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to Booking: {e}")
            return None
