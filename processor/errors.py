"""Error taxonomy for event ingestion, validation and storage."""
from enum import Enum
from typing import List, Optional


class ErrorCode(Enum):
    """Error codes reported to clients."""

    MALFORMED_REQUEST = 'MALFORMED_REQUEST'
    MISSING_FIELD = 'MISSING_FIELD'
    MISSING_IMAGE = 'MISSING_IMAGE'
    INVALID_LIST_FORMAT = 'INVALID_LIST_FORMAT'
    EMPTY_LIST = 'EMPTY_LIST'
    INVALID_FORMAT = 'INVALID_FORMAT'
    INVALID_EMAIL = 'INVALID_EMAIL'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    DUPLICATE_SLUG = 'DUPLICATE_SLUG'
    EVENT_NOT_FOUND = 'EVENT_NOT_FOUND'
    IMAGE_TOO_LARGE = 'IMAGE_TOO_LARGE'
    IMAGE_PROCESSING_ERROR = 'IMAGE_PROCESSING_ERROR'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


class EventsAppError(Exception):
    """Base error with code, user-safe message and HTTP status."""

    code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MalformedRequest(EventsAppError):
    """Raised when a submission cannot be decoded as a field set."""

    code = ErrorCode.MALFORMED_REQUEST
    status_code = 400


class MissingImage(EventsAppError):
    """Raised when the image part is absent or empty."""

    code = ErrorCode.MISSING_IMAGE
    status_code = 400

    def __init__(self) -> None:
        super().__init__('Image file is required')


class InvalidListFormat(EventsAppError):
    """Raised when tags or agenda is not a JSON array of strings."""

    code = ErrorCode.INVALID_LIST_FORMAT
    status_code = 400


class ImageProcessingError(EventsAppError):
    """Raised when the image payload cannot be read or encoded."""

    code = ErrorCode.IMAGE_PROCESSING_ERROR
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__('Failed to process image')
        self.detail = detail


class ValidationError(EventsAppError):
    """Aggregate of field-level validation messages."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, errors: List[str], message: Optional[str] = None) -> None:
        super().__init__(message or 'Validation error')
        self.errors = list(errors)


class MissingField(ValidationError):
    """Raised for a required scalar field that is absent or blank."""

    code = ErrorCode.MISSING_FIELD

    def __init__(self, field_name: str) -> None:
        detail = f'{field_name} is required and cannot be empty'
        super().__init__([detail], message=detail)
        self.field_name = field_name


class EmptyList(ValidationError):
    """Raised when agenda or tags has no non-empty entries."""

    code = ErrorCode.EMPTY_LIST

    def __init__(self, field_name: str) -> None:
        detail = f'{field_name} is required and must contain at least one item'
        super().__init__([detail], message=detail)
        self.field_name = field_name


class InvalidFormat(ValidationError):
    """Raised when a date or time value cannot be parsed."""

    code = ErrorCode.INVALID_FORMAT

    def __init__(self, kind: str, value: str) -> None:
        detail = f'Invalid {kind} format: {value}'
        super().__init__([detail], message=detail)
        self.kind = kind
        self.value = value


class InvalidEmail(ValidationError):
    """Raised when an email address does not look like local@domain.tld."""

    code = ErrorCode.INVALID_EMAIL

    def __init__(self, value: str) -> None:
        detail = f'{value} is not a valid email address'
        super().__init__([detail], message=detail)
        self.value = value


class ImageTooLarge(ValidationError):
    """Raised when an uploaded image would not fit in a stored event."""

    code = ErrorCode.IMAGE_TOO_LARGE

    def __init__(self, size: int, limit: int) -> None:
        detail = f'Image cannot exceed {limit // 1024} KB'
        super().__init__([detail], message=detail)
        self.size = size
        self.limit = limit


class DuplicateSlug(EventsAppError):
    """Raised when the store rejects a write on an existing slug."""

    code = ErrorCode.DUPLICATE_SLUG
    status_code = 409

    def __init__(self, slug: str) -> None:
        super().__init__('An event with this title already exists')
        self.slug = slug


class EventNotFound(EventsAppError):
    """Raised when a referenced event does not exist."""

    code = ErrorCode.EVENT_NOT_FOUND
    status_code = 404

    def __init__(self, event_ref: str) -> None:
        super().__init__(f'Event with ID {event_ref} does not exist')
        self.event_ref = event_ref


class InternalError(EventsAppError):
    """Unclassified failure; detail is the underlying exception text."""

    def __init__(self, detail: str, message: str = 'Internal server error') -> None:
        super().__init__(message)
        self.detail = detail
