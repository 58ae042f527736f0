"""Unit tests for rate limit request body validation."""

import pytest

from app.core.errors import ValidationAppError
from app.core.request_validation import decode_json_body, parse_rate_limit_request


class TestParseRateLimitRequest:
    def test_minimal_body(self):
        req = parse_rate_limit_request({"key": "user-1"})

        assert req.key == "user-1"
        assert req.points is None
        assert req.duration is None

    def test_full_body(self):
        req = parse_rate_limit_request({"key": "user-1", "points": 5, "duration": 10})

        assert (req.points, req.duration) == (5, 10)

    def test_unknown_fields_ignored(self):
        req = parse_rate_limit_request({"key": "k", "cost": 3})

        assert not hasattr(req, "cost")

    def test_integral_float_accepted(self):
        req = parse_rate_limit_request({"key": "k", "points": 5.0})

        assert req.points == 5

    @pytest.mark.parametrize(
        "body,field,message",
        [
            ({}, "key", '"key" is required'),
            ({"key": ""}, "key", '"key" is not allowed to be empty'),
            ({"key": None}, "key", '"key" must be a string'),
            ({"key": "k", "points": 0}, "points", '"points" must be greater than or equal to 1'),
            ({"key": "k", "points": -3}, "points", '"points" must be greater than or equal to 1'),
            ({"key": "k", "points": "many"}, "points", '"points" must be an integer'),
            ({"key": "k", "duration": 2.5}, "duration", '"duration" must be an integer'),
            ({"key": "k", "duration": False}, "duration", '"duration" must be an integer'),
        ],
    )
    def test_invalid_fields(self, body, field, message):
        with pytest.raises(ValidationAppError) as exc_info:
            parse_rate_limit_request(body)

        assert exc_info.value.code == "invalid_body"
        assert exc_info.value.message == message
        assert exc_info.value.details == {"field": field}

    @pytest.mark.parametrize("body", [None, [], "key", 42])
    def test_non_object_body(self, body):
        with pytest.raises(ValidationAppError) as exc_info:
            parse_rate_limit_request(body)

        assert exc_info.value.message == "Request body must be a JSON object"


class TestDecodeJsonBody:
    def test_decodes_object(self):
        assert decode_json_body(b'{"key": "k"}') == {"key": "k"}

    @pytest.mark.parametrize("raw", [b"", b"   ", b"\n"])
    def test_empty_body_is_missing(self, raw):
        with pytest.raises(ValidationAppError) as exc_info:
            decode_json_body(raw)

        assert exc_info.value.message == "Request body is required"

    @pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe", b"{'key': 'k'}"])
    def test_malformed_json(self, raw):
        with pytest.raises(ValidationAppError) as exc_info:
            decode_json_body(raw)

        assert exc_info.value.code == "invalid_json"
