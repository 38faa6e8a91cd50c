"""수집 에러 분류 -- invalid input / upstream / acquisition.

The controller converts these into ``AcquisitionFailure`` values; nothing in
this module performs I/O.
"""

from __future__ import annotations


class AdReachError(Exception):
    """Base class for acquisition errors."""

    kind = "acquisition"
    retryable = True


class InvalidReferenceError(AdReachError):
    """Page reference could not be parsed. Raised before any I/O."""

    kind = "invalid_input"
    retryable = False


class UpstreamError(AdReachError):
    """The source answered with a structured error (rate limit, permission, params)."""

    kind = "upstream"

    def __init__(
        self,
        message: str,
        code: int | None = None,
        subcode: int | None = None,
        status: int | None = None,
        category: str = "unknown",
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.subcode = subcode
        self.status = status
        self.category = category
        self.retryable = retryable


class AcquisitionError(AdReachError):
    """Browser session could not be established or no first page was returned."""

    kind = "acquisition"


def user_friendly_message(error: BaseException) -> str:
    """Map a technical error to text the presentation layer can show as-is."""
    if isinstance(error, UpstreamError):
        if error.category == "quota":
            return "Too many requests. Please wait a moment and try again."
        if error.category == "auth":
            return "Unable to connect to Facebook. Please try again later."

    if isinstance(error, InvalidReferenceError):
        return "Invalid Ad Library URL. Please paste a URL with a page ID."

    msg = str(error).lower()
    if "access token" in msg or "meta_access_token" in msg:
        return "Unable to connect to Facebook. Please try again later."
    if "rate limit" in msg or "too many" in msg:
        return "Too many requests. Please wait a moment and try again."
    if "page id" in msg or "view_all_page_id" in msg:
        return "Invalid Ad Library URL. Please paste a URL with a page ID."
    if "network" in msg or "connect" in msg or "econnrefused" in msg:
        return "Network connection issue. Please check your internet and try again."
    if "timeout" in msg or "timed out" in msg:
        return "The request took too long. Please try again."
    return "Something went wrong. Please try again."


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, AdReachError):
        return error.retryable
    msg = str(error).lower()
    if "invalid url" in msg or "page id" in msg:
        return False
    return True
