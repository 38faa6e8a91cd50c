"""페이지 참조(page id / Ad Library URL) 파싱."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

from processor.errors import InvalidReferenceError

AD_LIBRARY_URL = "https://www.facebook.com/ads/library/"

_NUMERIC_ID = re.compile(r"^\d{3,25}$")
_PAGE_ID_PARAM = re.compile(r"[?&]view_all_page_id=(\d+)")


def extract_page_id(reference: str | None) -> str | None:
    """Return the page id contained in ``reference`` or None.

    Accepts a bare numeric id or an Ad Library URL with ``view_all_page_id``
    (preferred) or a numeric ``id`` parameter.
    """
    if not reference:
        return None
    value = reference.strip()
    if _NUMERIC_ID.match(value):
        return value

    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    host = (parsed.hostname or "").lower()
    if not (host == "facebook.com" or host.endswith(".facebook.com")):
        return None
    if "/ads/library" not in parsed.path:
        return None

    params = parse_qs(parsed.query)
    for key in ("view_all_page_id", "id"):
        for candidate in params.get(key, []):
            if _NUMERIC_ID.match(candidate):
                return candidate

    match = _PAGE_ID_PARAM.search(value)
    return match.group(1) if match else None


def parse_page_reference(reference: str | None) -> str:
    """Like :func:`extract_page_id` but raises on failure."""
    page_id = extract_page_id(reference)
    if not page_id:
        raise InvalidReferenceError(
            "Invalid Ad Library URL. Provide a page id or a URL with the "
            "view_all_page_id parameter."
        )
    return page_id


def build_page_url(
    page_id: str,
    country: str = "ALL",
    active_status: str = "ACTIVE",
) -> str:
    """Ad Library listing URL for one page."""
    status = {"ACTIVE": "active", "INACTIVE": "inactive"}.get(active_status.upper(), "all")
    return (
        f"{AD_LIBRARY_URL}?active_status={status}&ad_type=all"
        f"&country={country}&media_type=all&search_type=page"
        f"&view_all_page_id={page_id}"
    )


def build_detail_url(detail_id: str) -> str:
    return f"{AD_LIBRARY_URL}?id={detail_id}"
