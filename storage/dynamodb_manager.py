"""DynamoDB connection management and table definitions."""
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import ClientError, ConnectionClosedError, EndpointConnectionError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_URL = 'http://localhost:8000'
DEFAULT_REGION = 'us-east-1'
DEFAULT_EVENTS_TABLE = 'dev-events'
DEFAULT_BOOKINGS_TABLE = 'dev-bookings'

EVENT_ID_INDEX = 'id-index'
BOOKING_EVENT_INDEX = 'eventId-index'


@dataclass
class StoreConfig:
    """Connection settings for the document store."""
    endpoint_url: Optional[str] = DEFAULT_ENDPOINT_URL
    region_name: str = DEFAULT_REGION
    events_table: str = DEFAULT_EVENTS_TABLE
    bookings_table: str = DEFAULT_BOOKINGS_TABLE

    @classmethod
    def from_env(cls) -> 'StoreConfig':
        """
        Build configuration from environment variables.

        DYNAMODB_ENDPOINT_URL falls back to a local DynamoDB instance when
        unset; an empty value selects the regular AWS endpoint.

        Returns:
            StoreConfig
        """
        endpoint_url = os.environ.get('DYNAMODB_ENDPOINT_URL', DEFAULT_ENDPOINT_URL)
        return cls(
            endpoint_url=endpoint_url or None,
            region_name=os.environ.get('AWS_REGION', DEFAULT_REGION),
            events_table=os.environ.get('EVENTS_TABLE_NAME', DEFAULT_EVENTS_TABLE),
            bookings_table=os.environ.get('BOOKINGS_TABLE_NAME', DEFAULT_BOOKINGS_TABLE)
        )


def table_definitions(config: StoreConfig) -> List[Dict[str, Any]]:
    """
    Create-table arguments for the events and bookings tables.

    Events are keyed by slug so a conditional put enforces slug uniqueness;
    the id index serves lookups by event id.
    """
    return [
        {
            'TableName': config.events_table,
            'KeySchema': [
                {'AttributeName': 'slug', 'KeyType': 'HASH'}
            ],
            'AttributeDefinitions': [
                {'AttributeName': 'slug', 'AttributeType': 'S'},
                {'AttributeName': 'id', 'AttributeType': 'S'}
            ],
            'GlobalSecondaryIndexes': [
                {
                    'IndexName': EVENT_ID_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'id', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            'BillingMode': 'PAY_PER_REQUEST'
        },
        {
            'TableName': config.bookings_table,
            'KeySchema': [
                {'AttributeName': 'id', 'KeyType': 'HASH'}
            ],
            'AttributeDefinitions': [
                {'AttributeName': 'id', 'AttributeType': 'S'},
                {'AttributeName': 'eventId', 'AttributeType': 'S'}
            ],
            'GlobalSecondaryIndexes': [
                {
                    'IndexName': BOOKING_EVENT_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'eventId', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            'BillingMode': 'PAY_PER_REQUEST'
        }
    ]


class DynamoDBConnection:
    """
    Store connection shared by the event and booking stores.

    Construct once per process and pass it to each store. The boto3
    resource is created on the first acquire() and reused until release()
    is called, which happens automatically when an endpoint error is seen
    so the next request reconnects.
    """

    def __init__(self, config: StoreConfig):
        """
        Initialize the connection without performing any I/O.

        Args:
            config: Store connection settings
        """
        self.config = config
        self._resource = None

    @property
    def is_connected(self) -> bool:
        return self._resource is not None

    def acquire(self):
        """
        Return the cached DynamoDB resource, creating it if needed.

        Returns:
            boto3 DynamoDB service resource
        """
        if not self.is_connected:
            self._resource = boto3.resource(
                'dynamodb',
                endpoint_url=self.config.endpoint_url,
                region_name=self.config.region_name
            )
            logger.info(
                f"Connected to DynamoDB at "
                f"{self.config.endpoint_url or 'default AWS endpoint'}"
            )
        return self._resource

    def release(self) -> None:
        """Drop the cached resource; the next acquire() reconnects."""
        if self.is_connected:
            self._resource = None
            logger.info("Released DynamoDB connection")

    @property
    def client(self):
        """Low-level client sharing the resource's session."""
        return self.acquire().meta.client

    @contextmanager
    def table(self, table_name: str) -> Iterator[Any]:
        """
        Provide a table handle for a single store operation.

        Endpoint and connection errors release the cached resource before
        propagating.

        Args:
            table_name: Name of the DynamoDB table
        """
        table = self.acquire().Table(table_name)
        try:
            yield table
        except (EndpointConnectionError, ConnectionClosedError) as e:
            logger.error(f"Lost connection to DynamoDB: {e}")
            self.release()
            raise

    def ensure_tables(self) -> None:
        """Create the events and bookings tables if they do not exist."""
        resource = self.acquire()
        existing = set(self.client.list_tables().get('TableNames', []))

        for definition in table_definitions(self.config):
            name = definition['TableName']
            if name in existing:
                continue
            try:
                table = resource.create_table(**definition)
                table.wait_until_exists()
                logger.info(f"Created DynamoDB table: {name}")
            except ClientError as e:
                if e.response['Error']['Code'] != 'ResourceInUseException':
                    raise
                logger.info(f"Table {name} was created concurrently")
