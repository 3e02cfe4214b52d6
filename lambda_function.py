"""AWS Lambda handler for the DevEvents API."""
import json
import logging
import os
import time
from typing import Dict, Any

from api.router import EventsApi, json_response
from storage.dynamodb_manager import DynamoDBConnection, StoreConfig


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key in ('error_type', 'request_id', 'status_code', 'duration_seconds',
                    'warm_start'):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # botocore logs every request at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)


# Created once per container and reused across invocations
CONNECTION = DynamoDBConnection(StoreConfig.from_env())


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the DevEvents API.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    start_time = time.time()
    method = event.get('httpMethod')
    path = event.get('path')
    request_id = getattr(context, 'aws_request_id', None)

    logger.info(
        f"Request started: {method} {path}",
        extra={'request_id': request_id, 'warm_start': CONNECTION.is_connected}
    )

    try:
        api = EventsApi(CONNECTION)
        response = api.handle(event)
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Request failed: {str(e)}",
            extra={
                'request_id': request_id,
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            },
            exc_info=True
        )
        return json_response(500, {
            'message': 'Internal server error',
            'error': str(e),
            'error_type': type(e).__name__
        })

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {method} {path} -> {response['statusCode']}",
        extra={
            'request_id': request_id,
            'status_code': response['statusCode'],
            'duration_seconds': round(duration, 2)
        }
    )

    return response
