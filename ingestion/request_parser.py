"""Decode event-creation submissions into candidate event records."""
import base64
import binascii
import json
import logging
from dataclasses import asdict, dataclass, replace
from email.message import Message
from email.utils import collapse_rfc2231_value
from typing import Any, Dict, List, Optional

from requests_toolbelt.multipart.decoder import (
    ImproperBodyPartContentException,
    MultipartDecoder,
    NonMultipartContentTypeException,
)

from processor.errors import (
    EmptyList,
    ImageProcessingError,
    ImageTooLarge,
    InvalidListFormat,
    MalformedRequest,
    MissingImage,
)
from processor.models import EventCandidate

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME_TYPE = 'image/jpeg'
# Raw upload size; base64 grows it by a third and DynamoDB items cap at 400 KB
MAX_IMAGE_BYTES = 256 * 1024
SCALAR_FIELDS = (
    'title',
    'description',
    'overview',
    'venue',
    'location',
    'date',
    'time',
    'mode',
    'audience',
    'organizer',
)


@dataclass
class FormPart:
    """One decoded part of a multipart/form-data body."""
    name: str
    content: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def text(self) -> str:
        try:
            return self.content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedRequest(f"Field '{self.name}' is not valid UTF-8") from e


def header_value(headers: Optional[Dict[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup on an API Gateway headers mapping."""
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def request_body(event: Dict[str, Any]) -> bytes:
    """
    Extract the raw request body from an API Gateway proxy event.

    Args:
        event: API Gateway proxy event

    Returns:
        Body bytes

    Raises:
        MalformedRequest: If there is no body or it is not valid base64
    """
    body = event.get('body')
    if body is None:
        raise MalformedRequest('Request body is required')

    if event.get('isBase64Encoded'):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedRequest('Request body is not valid base64') from e

    return body.encode('utf-8') if isinstance(body, str) else body


def _disposition_param(disposition: str, param: str) -> Optional[str]:
    message = Message()
    message['content-disposition'] = disposition
    value = message.get_param(param, header='content-disposition')
    if value is None:
        return None
    return collapse_rfc2231_value(value)


def parse_multipart(body: bytes, content_type: Optional[str]) -> Dict[str, FormPart]:
    """
    Decode a multipart/form-data body into named parts.

    Later parts with the same name replace earlier ones.

    Args:
        body: Raw request body
        content_type: Request Content-Type header including the boundary

    Returns:
        Dictionary mapping field name to FormPart

    Raises:
        MalformedRequest: If the body cannot be decoded as form data
    """
    if not content_type or 'boundary=' not in content_type.lower():
        raise MalformedRequest('Invalid form data format')

    try:
        decoder = MultipartDecoder(body, content_type)
    except (NonMultipartContentTypeException, ImproperBodyPartContentException) as e:
        logger.warning(f"Error parsing form data: {e}")
        raise MalformedRequest('Invalid form data format') from e

    parts = {}
    for part in decoder.parts:
        disposition = part.headers.get(b'Content-Disposition')
        if not disposition:
            raise MalformedRequest('Invalid form data format')

        disposition = disposition.decode('utf-8', errors='replace')
        name = _disposition_param(disposition, 'name')
        if not name:
            raise MalformedRequest('Invalid form data format')

        part_type = part.headers.get(b'Content-Type')
        parts[name] = FormPart(
            name=name,
            content=part.content,
            content_type=part_type.decode('utf-8', errors='replace') if part_type else None,
            filename=_disposition_param(disposition, 'filename')
        )

    return parts


def parse_string_list(raw: Optional[str], field_name: str) -> List[str]:
    """
    Parse a JSON-encoded array of strings and drop blank entries.

    Args:
        raw: JSON text submitted for the field
        field_name: Field name used in error messages

    Returns:
        Non-blank entries in submitted order

    Raises:
        InvalidListFormat: If the value is missing, not JSON, not an array
            or holds non-string entries
        EmptyList: If no non-blank entries remain
    """
    if not raw:
        raise InvalidListFormat('Tags and agenda are required')

    try:
        items = json.loads(raw)
    except ValueError as e:
        raise InvalidListFormat('Invalid tags or agenda format') from e

    if not isinstance(items, list):
        raise InvalidListFormat('Tags and agenda must be arrays')

    if any(item is not None and not isinstance(item, str) for item in items):
        raise InvalidListFormat('Invalid tags or agenda format')

    items = [item for item in items if item and item.strip()]
    if not items:
        raise EmptyList(field_name)

    return items


def encode_image(part: FormPart) -> str:
    """
    Build a data URI for an uploaded image.

    Args:
        part: Uploaded image part

    Returns:
        data:<mime>;base64,<payload> string

    Raises:
        ImageTooLarge: If the payload exceeds MAX_IMAGE_BYTES
        ImageProcessingError: If the payload cannot be encoded
    """
    if len(part.content) > MAX_IMAGE_BYTES:
        raise ImageTooLarge(len(part.content), MAX_IMAGE_BYTES)

    try:
        payload = base64.b64encode(bytes(part.content)).decode('ascii')
    except (TypeError, ValueError) as e:
        logger.error(f"Error processing image: {e}")
        raise ImageProcessingError(str(e)) from e

    mime_type = (part.content_type or '').split(';')[0].strip() or DEFAULT_IMAGE_MIME_TYPE
    return f'data:{mime_type};base64,{payload}'


def parse_event_submission(event: Dict[str, Any], partial: bool = False) -> EventCandidate:
    """
    Turn an event-creation or event-update request into a candidate event.

    Args:
        event: API Gateway proxy event carrying multipart/form-data
        partial: Allow any field, including the image, tags and agenda, to
            be left out (updates); omitted fields are None

    Returns:
        EventCandidate with scalar fields, tags, agenda and the image as a
        data URI

    Raises:
        MalformedRequest: If the form data cannot be decoded
        MissingImage: If no non-empty image was uploaded on creation
        InvalidListFormat: If tags or agenda is missing or not a JSON array
        EmptyList: If tags or agenda has no non-blank entries
        ImageTooLarge: If the image exceeds MAX_IMAGE_BYTES
        ImageProcessingError: If the image cannot be encoded
    """
    content_type = header_value(event.get('headers'), 'Content-Type')
    parts = parse_multipart(request_body(event), content_type)

    image = parts.get('image')
    if image is None or not image.content:
        if not partial:
            raise MissingImage()
        image = None

    lists = {}
    for name in ('tags', 'agenda'):
        part = parts.get(name)
        if part is None and partial:
            continue
        lists[name] = parse_string_list(part.text if part else None, name)

    fields = {
        name: parts[name].text
        for name in SCALAR_FIELDS
        if name in parts
    }

    return EventCandidate(
        image=encode_image(image) if image else None,
        **lists,
        **fields
    )


def merge_submission(base: EventCandidate, changes: EventCandidate) -> EventCandidate:
    """Overlay the submitted (non-None) fields of an update onto the stored event."""
    merged = {
        name: value
        for name, value in asdict(changes).items()
        if value is not None
    }
    return replace(base, **merged)
