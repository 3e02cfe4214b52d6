"""Shared fixtures for store and API tests."""
import base64
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from moto import mock_aws
from requests_toolbelt import MultipartEncoder

from processor.event_processor import EventProcessor
from processor.models import EventCandidate
from storage.booking_store import BookingStore
from storage.dynamodb_manager import DynamoDBConnection, StoreConfig
from storage.event_store import EventStore

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16


class TickingClock:
    """Returns a timestamp one minute later on every call."""

    def __init__(self, start=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        moment = self.current
        self.current += timedelta(minutes=1)
        return moment


@pytest.fixture
def aws_credentials():
    """Fake credentials so boto3 never reaches real AWS."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def store_config():
    return StoreConfig(
        endpoint_url=None,
        region_name='us-east-1',
        events_table='test-events',
        bookings_table='test-bookings'
    )


@pytest.fixture
def connection(aws_credentials, store_config):
    """DynamoDBConnection backed by mock tables."""
    with mock_aws():
        conn = DynamoDBConnection(store_config)
        conn.ensure_tables()
        yield conn


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def event_store(connection, clock):
    return EventStore(connection, clock=clock)


@pytest.fixture
def booking_store(connection, event_store, clock):
    return BookingStore(connection, event_store, clock=clock)


@pytest.fixture
def processor():
    return EventProcessor()


def make_candidate(**overrides) -> EventCandidate:
    fields = {
        'title': 'Dev Conf 2024',
        'description': 'A conference for developers',
        'overview': 'Two days of talks and workshops',
        'image': 'data:image/png;base64,AAAA',
        'venue': 'Convention Center',
        'location': 'Berlin, Germany',
        'date': '2024-03-05',
        'time': '9:30 AM',
        'mode': 'offline',
        'audience': 'Developers',
        'organizer': 'Dev Community',
        'agenda': ['Registration', 'Keynote'],
        'tags': ['ai', 'cloud']
    }
    fields.update(overrides)
    return EventCandidate(**fields)


@pytest.fixture
def candidate_factory():
    return make_candidate


def make_multipart_event(fields=None, image=PNG_BYTES, image_type='image/png',
                         path='/api/events'):
    """Build an API Gateway proxy event with a multipart/form-data body."""
    form = {
        'title': 'Dev Conf 2024',
        'description': 'A conference for developers',
        'overview': 'Two days of talks and workshops',
        'venue': 'Convention Center',
        'location': 'Berlin, Germany',
        'date': '2024-03-05',
        'time': '9:30 AM',
        'mode': 'offline',
        'audience': 'Developers',
        'organizer': 'Dev Community',
        'tags': '["ai", "cloud"]',
        'agenda': '["Registration", "Keynote"]'
    }
    form.update(fields or {})
    form = {name: value for name, value in form.items() if value is not None}
    if image is not None:
        form['image'] = ('cover.png', image, image_type)

    encoder = MultipartEncoder(fields=form)
    return {
        'httpMethod': 'POST',
        'path': path,
        'headers': {'content-type': encoder.content_type},
        'body': base64.b64encode(encoder.to_string()).decode('ascii'),
        'isBase64Encoded': True
    }


@pytest.fixture
def multipart_event_factory():
    return make_multipart_event
