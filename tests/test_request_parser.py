"""Unit tests for multipart event submission parsing."""
import base64

import pytest
from requests_toolbelt import MultipartEncoder

from ingestion.request_parser import (
    MAX_IMAGE_BYTES,
    FormPart,
    encode_image,
    header_value,
    merge_submission,
    parse_event_submission,
    parse_multipart,
    parse_string_list,
    request_body,
)
from processor.errors import (
    EmptyList,
    ImageTooLarge,
    InvalidListFormat,
    MalformedRequest,
    MissingImage,
    ValidationError,
)
from processor.models import EventCandidate

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16


class TestParseEventSubmission:
    """Test cases for turning a request into an EventCandidate."""

    def test_valid_submission(self, multipart_event_factory):
        candidate = parse_event_submission(multipart_event_factory())

        assert candidate.title == 'Dev Conf 2024'
        assert candidate.mode == 'offline'
        assert candidate.tags == ['ai', 'cloud']
        assert candidate.agenda == ['Registration', 'Keynote']
        assert candidate.image == (
            'data:image/png;base64,' + base64.b64encode(PNG_BYTES).decode('ascii')
        )

    def test_blank_list_entries_dropped(self, multipart_event_factory):
        candidate = parse_event_submission(multipart_event_factory({
            'tags': '["ai", "", "  ", "cloud"]'
        }))
        assert candidate.tags == ['ai', 'cloud']

    def test_missing_scalar_left_for_validation(self, multipart_event_factory):
        candidate = parse_event_submission(multipart_event_factory({'venue': None}))
        assert candidate.venue is None

    def test_plain_text_body(self, multipart_event_factory):
        event = multipart_event_factory(image=b'GIF89a')
        event['body'] = base64.b64decode(event['body']).decode('latin-1')
        event['isBase64Encoded'] = False

        candidate = parse_event_submission(event)

        assert candidate.title == 'Dev Conf 2024'

    def test_missing_image(self, multipart_event_factory):
        with pytest.raises(MissingImage):
            parse_event_submission(multipart_event_factory(image=None))

    def test_empty_image(self, multipart_event_factory):
        with pytest.raises(MissingImage):
            parse_event_submission(multipart_event_factory(image=b''))

    def test_image_checked_before_lists(self, multipart_event_factory):
        with pytest.raises(MissingImage):
            parse_event_submission(multipart_event_factory({'tags': 'oops'}, image=None))

    def test_missing_tags(self, multipart_event_factory):
        with pytest.raises(InvalidListFormat):
            parse_event_submission(multipart_event_factory({'tags': None}))

    def test_agenda_not_json(self, multipart_event_factory):
        with pytest.raises(InvalidListFormat):
            parse_event_submission(multipart_event_factory({'agenda': 'Registration, Keynote'}))

    def test_empty_agenda(self, multipart_event_factory):
        with pytest.raises(EmptyList) as exc_info:
            parse_event_submission(multipart_event_factory({'agenda': '[" "]'}))
        assert exc_info.value.field_name == 'agenda'

    def test_partial_submission_leaves_omitted_fields_unset(self):
        encoder = MultipartEncoder(fields={'time': '7:00 PM', 'agenda': '["Talks"]'})
        event = {
            'headers': {'Content-Type': encoder.content_type},
            'body': encoder.to_string().decode('utf-8')
        }

        candidate = parse_event_submission(event, partial=True)

        assert candidate.time == '7:00 PM'
        assert candidate.agenda == ['Talks']
        assert candidate.tags is None
        assert candidate.image is None
        assert candidate.title is None

    def test_partial_submission_still_checks_lists(self, multipart_event_factory):
        with pytest.raises(EmptyList):
            parse_event_submission(multipart_event_factory({'tags': '[]'}), partial=True)

    def test_not_multipart(self):
        event = {
            'httpMethod': 'POST',
            'path': '/api/events',
            'headers': {'Content-Type': 'application/json'},
            'body': '{"title": "Dev Conf"}'
        }
        with pytest.raises(MalformedRequest):
            parse_event_submission(event)

    def test_missing_body(self):
        event = {'headers': {'Content-Type': 'multipart/form-data; boundary=abc'}}
        with pytest.raises(MalformedRequest):
            parse_event_submission(event)


class TestParseStringList:
    """Test cases for JSON array fields."""

    def test_valid_list(self):
        assert parse_string_list('["a", "b"]', 'tags') == ['a', 'b']

    @pytest.mark.parametrize('raw', [None, ''])
    def test_missing(self, raw):
        with pytest.raises(InvalidListFormat):
            parse_string_list(raw, 'tags')

    @pytest.mark.parametrize('raw', ['{"a": 1}', '"ai"', '42', '[1, 2]', '[not json'])
    def test_not_an_array_of_strings(self, raw):
        with pytest.raises(InvalidListFormat):
            parse_string_list(raw, 'tags')

    @pytest.mark.parametrize('raw', ['[]', '["", "   "]', '[null]'])
    def test_empty_after_filtering(self, raw):
        with pytest.raises(EmptyList):
            parse_string_list(raw, 'tags')


class TestHelpers:
    """Test cases for lower-level parsing helpers."""

    def test_encode_image_defaults_mime_type(self):
        part = FormPart(name='image', content=b'abc')
        assert encode_image(part) == 'data:image/jpeg;base64,YWJj'

    def test_encode_image_rejects_oversized_payload(self):
        part = FormPart(name='image', content=b'\x00' * (MAX_IMAGE_BYTES + 1))
        with pytest.raises(ImageTooLarge) as exc_info:
            encode_image(part)
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.size == MAX_IMAGE_BYTES + 1

    def test_encode_image_uses_part_type(self):
        part = FormPart(name='image', content=b'abc', content_type='image/webp')
        assert encode_image(part) == 'data:image/webp;base64,YWJj'

    def test_header_value_is_case_insensitive(self):
        assert header_value({'CONTENT-TYPE': 'text/plain'}, 'Content-Type') == 'text/plain'
        assert header_value(None, 'Content-Type') is None

    def test_request_body_rejects_bad_base64(self):
        with pytest.raises(MalformedRequest):
            request_body({'body': '***', 'isBase64Encoded': True})

    def test_parse_multipart_reads_filename_and_type(self):
        encoder = MultipartEncoder(fields={
            'title': 'Café Talks',
            'image': ('cover.png', b'\x89PNG', 'image/png')
        })

        parts = parse_multipart(encoder.to_string(), encoder.content_type)

        assert parts['title'].text == 'Café Talks'
        assert parts['title'].filename is None
        assert parts['image'].filename == 'cover.png'
        assert parts['image'].content_type == 'image/png'
        assert parts['image'].content == b'\x89PNG'

    def test_parse_multipart_requires_boundary(self):
        with pytest.raises(MalformedRequest):
            parse_multipart(b'', 'multipart/form-data')

    def test_invalid_utf8_text_field(self):
        part = FormPart(name='title', content=b'\xff\xfe')
        with pytest.raises(MalformedRequest):
            part.text


def test_merge_submission_overlays_submitted_fields(candidate_factory):
    stored = candidate_factory()
    changes = EventCandidate(title='Dev Conf 2025', tags=['web'])

    merged = merge_submission(stored, changes)

    assert merged.title == 'Dev Conf 2025'
    assert merged.tags == ['web']
    assert merged.venue == stored.venue
    assert merged.agenda == stored.agenda
    assert stored.title == 'Dev Conf 2024'
