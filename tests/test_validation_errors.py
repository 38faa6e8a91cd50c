from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from processor.errors import (
    AcquisitionError,
    InvalidReferenceError,
    UpstreamError,
    is_retryable,
    user_friendly_message,
)
from processor.validation import build_detail_url, build_page_url, extract_page_id, parse_page_reference


@pytest.mark.parametrize("reference, expected", [
    ("123456789", "123456789"),
    ("  123456789 ", "123456789"),
    ("https://www.facebook.com/ads/library/?active_status=all&view_all_page_id=98765", "98765"),
    ("https://facebook.com/ads/library/?id=5551234", "5551234"),
    ("https://www.example.com/ads/library/?view_all_page_id=98765", None),
    ("https://www.facebook.com/somepage", None),
    ("not a url", None),
    ("", None),
    (None, None),
])
def test_extract_page_id(reference, expected):
    assert extract_page_id(reference) == expected


def test_parse_page_reference_raises():
    with pytest.raises(InvalidReferenceError):
        parse_page_reference("https://www.facebook.com/ads/library/")


def test_urls():
    url = build_page_url("123", "DE", "ALL")
    assert "view_all_page_id=123" in url
    assert "country=DE" in url
    assert "active_status=all" in url
    assert build_detail_url("42").endswith("?id=42")


def test_friendly_messages():
    assert "Invalid Ad Library URL" in user_friendly_message(InvalidReferenceError("bad"))
    assert "Too many requests" in user_friendly_message(UpstreamError("x", code=4, category="quota"))
    assert "took too long" in user_friendly_message(TimeoutError("Acquisition timed out after 5s"))
    assert "Network" in user_friendly_message(OSError("ECONNREFUSED"))
    assert user_friendly_message(ValueError("boom")) == "Something went wrong. Please try again."


def test_retryability():
    assert is_retryable(InvalidReferenceError("bad")) is False
    assert is_retryable(UpstreamError("x", retryable=True)) is True
    assert is_retryable(UpstreamError("x")) is False
    assert is_retryable(AcquisitionError("no page")) is True
    assert is_retryable(RuntimeError("flaky")) is True
