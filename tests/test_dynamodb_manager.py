"""Unit tests for the DynamoDB connection and configuration."""
import os
from unittest.mock import patch

import pytest
from botocore.exceptions import EndpointConnectionError
from moto import mock_aws

from storage.dynamodb_manager import (
    DEFAULT_ENDPOINT_URL,
    DynamoDBConnection,
    StoreConfig,
)


class TestStoreConfig:
    """Test cases for environment configuration."""

    def test_defaults_to_local_endpoint(self):
        with patch.dict(os.environ, {}, clear=True):
            config = StoreConfig.from_env()

        assert config.endpoint_url == DEFAULT_ENDPOINT_URL
        assert config.region_name == 'us-east-1'
        assert config.events_table == 'dev-events'
        assert config.bookings_table == 'dev-bookings'

    def test_reads_environment(self):
        env_vars = {
            'DYNAMODB_ENDPOINT_URL': 'http://dynamodb:8000',
            'AWS_REGION': 'eu-west-1',
            'EVENTS_TABLE_NAME': 'prod-events',
            'BOOKINGS_TABLE_NAME': 'prod-bookings'
        }
        with patch.dict(os.environ, env_vars, clear=True):
            config = StoreConfig.from_env()

        assert config.endpoint_url == 'http://dynamodb:8000'
        assert config.region_name == 'eu-west-1'
        assert config.events_table == 'prod-events'
        assert config.bookings_table == 'prod-bookings'

    def test_empty_endpoint_selects_aws(self):
        with patch.dict(os.environ, {'DYNAMODB_ENDPOINT_URL': ''}, clear=True):
            assert StoreConfig.from_env().endpoint_url is None


class TestDynamoDBConnection:
    """Test cases for connection lifecycle."""

    def test_construction_does_not_connect(self, store_config):
        connection = DynamoDBConnection(store_config)
        assert not connection.is_connected

    def test_acquire_reuses_resource(self, aws_credentials, store_config):
        with mock_aws():
            connection = DynamoDBConnection(store_config)
            first = connection.acquire()
            second = connection.acquire()

        assert first is second
        assert connection.is_connected

    def test_release_forces_reconnect(self, aws_credentials, store_config):
        with mock_aws():
            connection = DynamoDBConnection(store_config)
            first = connection.acquire()
            connection.release()
            assert not connection.is_connected
            second = connection.acquire()

        assert first is not second

    def test_endpoint_error_releases_connection(self, aws_credentials, store_config):
        with mock_aws():
            connection = DynamoDBConnection(store_config)

            with pytest.raises(EndpointConnectionError):
                with connection.table(store_config.events_table):
                    raise EndpointConnectionError(endpoint_url='http://localhost:8000')

        assert not connection.is_connected

    def test_other_errors_keep_connection(self, aws_credentials, store_config):
        with mock_aws():
            connection = DynamoDBConnection(store_config)

            with pytest.raises(RuntimeError):
                with connection.table(store_config.events_table):
                    raise RuntimeError('boom')

        assert connection.is_connected

    def test_ensure_tables_creates_tables_once(self, aws_credentials, store_config):
        with mock_aws():
            connection = DynamoDBConnection(store_config)
            connection.ensure_tables()
            connection.ensure_tables()

            names = connection.client.list_tables()['TableNames']
            indexes = connection.client.describe_table(
                TableName=store_config.events_table
            )['Table']['GlobalSecondaryIndexes']

        assert sorted(names) == ['test-bookings', 'test-events']
        assert [index['IndexName'] for index in indexes] == ['id-index']
