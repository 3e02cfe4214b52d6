"""DynamoDB-backed store for event records."""
import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Callable, List, Optional

from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from processor.errors import DuplicateSlug, EventNotFound, ValidationError
from processor.models import Event, NormalizedEvent
from storage.dynamodb_manager import EVENT_ID_INDEX, DynamoDBConnection

logger = logging.getLogger(__name__)


def utc_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a timestamp as ISO 8601 UTC with millisecond precision."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f'{moment.microsecond // 1000:03d}Z'


def _cancellation_codes(error: ClientError) -> List[Optional[str]]:
    """Per-item codes of a cancelled transaction, in request order."""
    return [
        reason.get('Code')
        for reason in error.response.get('CancellationReasons') or []
    ]


def _rejected_item(error: ClientError, slug: str) -> Optional[ValidationError]:
    """Translate a ValidationException (e.g. an item over 400 KB) into a client error."""
    if error.response['Error']['Code'] != 'ValidationException':
        return None
    message = error.response['Error'].get('Message', '')
    logger.warning(f"DynamoDB rejected event {slug}: {message}")
    return ValidationError([f'Event could not be stored: {message}'])


class EventStore:
    """Persistence boundary for event records."""

    def __init__(
        self,
        connection: DynamoDBConnection,
        clock: Callable[[], datetime] = utc_timestamp
    ):
        """
        Initialize the event store.

        Args:
            connection: Shared DynamoDB connection
            clock: Source of the createdAt/updatedAt timestamps
        """
        self.connection = connection
        self.table_name = connection.config.events_table
        self._clock = clock

    def create(self, normalized: NormalizedEvent) -> Event:
        """
        Persist a new event.

        The write is conditional on the slug not existing yet, so two
        creations deriving the same slug cannot overwrite each other.

        Args:
            normalized: Event produced by EventProcessor.normalize

        Returns:
            The persisted Event

        Raises:
            DuplicateSlug: If an event with the same slug already exists
            ValidationError: If DynamoDB rejects the item
        """
        now = format_timestamp(self._clock())
        event = Event(
            id=uuid.uuid4().hex,
            created_at=now,
            updated_at=now,
            **asdict(normalized)
        )

        with self.connection.table(self.table_name) as table:
            try:
                table.put_item(
                    Item=self._event_to_item(event),
                    ConditionExpression=Attr('slug').not_exists()
                )
            except ClientError as e:
                if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                    logger.warning(f"Rejected duplicate slug: {event.slug}")
                    raise DuplicateSlug(event.slug) from e
                rejected = _rejected_item(e, event.slug)
                if rejected:
                    raise rejected from e
                raise

        logger.info(f"Created event '{event.title}' with slug {event.slug}")
        return event

    def update(self, previous: Event, normalized: NormalizedEvent) -> Event:
        """
        Replace a persisted event with a re-normalized version.

        A changed slug is written as a single transaction that inserts the
        new key and deletes the old one.

        Args:
            previous: Currently persisted event
            normalized: Result of EventProcessor.normalize(candidate, previous)

        Returns:
            The updated Event

        Raises:
            DuplicateSlug: If the new slug belongs to another event
            EventNotFound: If the previous event no longer exists
            ValidationError: If DynamoDB rejects the item
        """
        event = Event(
            id=previous.id,
            created_at=previous.created_at,
            updated_at=format_timestamp(self._clock()),
            **asdict(normalized)
        )
        item = self._event_to_item(event)

        with self.connection.table(self.table_name) as table:
            if event.slug == previous.slug:
                try:
                    table.put_item(
                        Item=item,
                        ConditionExpression=Attr('slug').exists()
                    )
                except ClientError as e:
                    if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                        raise EventNotFound(previous.slug) from e
                    rejected = _rejected_item(e, event.slug)
                    if rejected:
                        raise rejected from e
                    raise
            else:
                serializer = TypeSerializer()
                try:
                    table.meta.client.transact_write_items(
                        TransactItems=[
                            {
                                'Put': {
                                    'TableName': self.table_name,
                                    'Item': {
                                        key: serializer.serialize(value)
                                        for key, value in item.items()
                                    },
                                    'ConditionExpression': 'attribute_not_exists(slug)'
                                }
                            },
                            {
                                'Delete': {
                                    'TableName': self.table_name,
                                    'Key': {'slug': {'S': previous.slug}},
                                    'ConditionExpression': 'attribute_exists(slug)'
                                }
                            }
                        ]
                    )
                except ClientError as e:
                    if e.response['Error']['Code'] != 'TransactionCanceledException':
                        rejected = _rejected_item(e, event.slug)
                        if rejected:
                            raise rejected from e
                        raise
                    codes = _cancellation_codes(e)
                    if codes:
                        old_slug_missing = (
                            len(codes) > 1 and codes[1] == 'ConditionalCheckFailed'
                            and codes[0] != 'ConditionalCheckFailed'
                        )
                    else:
                        old_slug_missing = 'Item' not in table.get_item(
                            Key={'slug': previous.slug}, ConsistentRead=True
                        )
                    if old_slug_missing:
                        raise EventNotFound(previous.slug) from e
                    logger.warning(f"Rejected duplicate slug on update: {event.slug}")
                    raise DuplicateSlug(event.slug) from e

        logger.info(f"Updated event {event.id} (slug {previous.slug} -> {event.slug})")
        return event

    def find_all(self, newest_first: bool = True) -> List[Event]:
        """
        Retrieve every event using a Scan operation.

        Args:
            newest_first: Sort by createdAt descending (ascending if False)

        Returns:
            List of Event objects
        """
        with self.connection.table(self.table_name) as table:
            response = table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        events = [
            event for event in (self._item_to_event(item) for item in items)
            if event
        ]
        events.sort(key=lambda e: e.created_at, reverse=newest_first)

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def find_by_slug(self, slug: str) -> Optional[Event]:
        """
        Look up an event by slug.

        Args:
            slug: Event slug

        Returns:
            Event, or None if no event has this slug
        """
        if not slug:
            return None

        with self.connection.table(self.table_name) as table:
            response = table.get_item(Key={'slug': slug})

        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def find_by_id(self, event_id: str, consistent: bool = False) -> Optional[Event]:
        """
        Look up an event by its generated identifier.

        The id index is eventually consistent, so an event created a moment
        ago may be missing from it. With consistent=True a miss falls back to
        a strongly consistent scan of the base table.

        Args:
            event_id: Event id
            consistent: Confirm index misses against the base table

        Returns:
            Event, or None if it does not exist
        """
        if not isinstance(event_id, str) or not event_id:
            return None

        with self.connection.table(self.table_name) as table:
            response = table.query(
                IndexName=EVENT_ID_INDEX,
                KeyConditionExpression=Key('id').eq(event_id)
            )
            items = response.get('Items', [])

            if not items and consistent:
                items = self._scan_for_id(table, event_id)

        return self._item_to_event(items[0]) if items else None

    def _scan_for_id(self, table, event_id: str) -> List[dict]:
        params = {
            'FilterExpression': Attr('id').eq(event_id),
            'ConsistentRead': True
        }
        while True:
            response = table.scan(**params)
            if response.get('Items'):
                return response['Items']
            if 'LastEvaluatedKey' not in response:
                return []
            params['ExclusiveStartKey'] = response['LastEvaluatedKey']

    def _item_to_event(self, item: dict) -> Optional[Event]:
        """
        Convert DynamoDB item to Event object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Event object or None if conversion fails
        """
        try:
            return Event(
                id=item['id'],
                slug=item['slug'],
                title=item['title'],
                description=item['description'],
                overview=item['overview'],
                image=item['image'],
                venue=item['venue'],
                location=item['location'],
                date=item['date'],
                time=item['time'],
                mode=item['mode'],
                audience=item['audience'],
                organizer=item['organizer'],
                agenda=list(item['agenda']),
                tags=list(item['tags']),
                created_at=item['createdAt'],
                updated_at=item['updatedAt']
            )
        except (KeyError, TypeError) as e:
            logger.warning(f"Failed to convert item to Event: {e}")
            return None

    def _event_to_item(self, event: Event) -> dict:
        return event.to_dict()
