"""Fetch failure classification.

Maps the heterogeneous failures raised while fetching and parsing a feed
(httpx exceptions, socket and TLS errors, parser exceptions) to a closed set
of categories, each with a fixed user-facing message.
"""

import errno
import socket
import ssl
import xml.sax
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional
from xml.parsers.expat import ExpatError

import httpx


class ErrorCategory(str, Enum):
    """Categories a fetch failure can be classified into."""

    HOST_UNREACHABLE = "host_unreachable"
    TLS_FAILURE = "tls_failure"
    TIMEOUT = "timeout"
    ACCESS_FORBIDDEN = "access_forbidden"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    MALFORMED_FEED = "malformed_feed"
    UNKNOWN = "unknown"


MESSAGES = {
    ErrorCategory.HOST_UNREACHABLE: (
        "Could not reach the feed host. Check your internet connection and the URL."
    ),
    ErrorCategory.TLS_FAILURE: (
        "The site's SSL certificate could not be verified. Check that the site is safe."
    ),
    ErrorCategory.TIMEOUT: "The connection timed out. Please try again later.",
    ErrorCategory.ACCESS_FORBIDDEN: "Access to this feed was denied.",
    ErrorCategory.NOT_FOUND: "The feed was not found. Check that the URL is correct.",
    ErrorCategory.SERVER_ERROR: "The feed server returned an error. Please try again later.",
    ErrorCategory.RATE_LIMITED: (
        "The feed server is rate limiting requests. Please wait before retrying."
    ),
    ErrorCategory.MALFORMED_FEED: (
        "The document is not a valid RSS or Atom feed. Check that the URL points to a feed."
    ),
    ErrorCategory.UNKNOWN: "Failed to fetch the feed: {cause}",
}

# Error codes assigned by describe_failure for failures without an HTTP status
CODE_TIMEOUT = "timeout"
CODE_TLS = "tls"
CODE_DNS = "dns"
CODE_REFUSED = "refused"

_DNS_ERRNOS = {
    getattr(socket, name)
    for name in ("EAI_NONAME", "EAI_NODATA", "EAI_AGAIN", "EAI_FAIL")
    if hasattr(socket, name)
}
_REFUSED_ERRNOS = {errno.ECONNREFUSED, errno.EHOSTUNREACH, errno.ENETUNREACH}

# Substring fallback for failures that carry nothing but text
_MESSAGE_PATTERNS = [
    (ErrorCategory.HOST_UNREACHABLE, (
        "enotfound", "econnrefused", "name or service not known",
        "nodename nor servname", "getaddrinfo", "connection refused",
        "no address associated", "temporary failure in name resolution",
    )),
    (ErrorCategory.TLS_FAILURE, ("certificate", "ssl", "tls", "cert_")),
    (ErrorCategory.TIMEOUT, ("timed out", "timeout")),
    (ErrorCategory.MALFORMED_FEED, (
        "not well-formed", "mismatched tag", "xml syntax", "parse error", "syntax error",
    )),
]


class MalformedFeedError(Exception):
    """Raised when a fetched document is not a recognizable RSS/Atom feed."""


class FeedFetchError(Exception):
    """A classified fetch failure.

    Attributes:
        category: The classified ErrorCategory
        message: User-facing message for the category
        cause: Text of the underlying failure
    """

    def __init__(self, category: ErrorCategory, message: str, cause: str = ""):
        super().__init__(message)
        self.category = category
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "message": self.message,
            "cause": self.cause,
        }


@dataclass
class FailureDescriptor:
    """Structured view of a raw failure."""

    status_code: Optional[int] = None
    error_code: Optional[str] = None
    parse_error: Optional[str] = None
    message: str = ""


def _walk_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _error_code_for(exc: BaseException) -> Optional[str]:
    if isinstance(exc, (httpx.TimeoutException, TimeoutError, socket.timeout)):
        return CODE_TIMEOUT
    if isinstance(exc, ssl.SSLError):
        return CODE_TLS
    if isinstance(exc, socket.gaierror):
        return CODE_DNS
    if isinstance(exc, ConnectionRefusedError):
        return CODE_REFUSED
    if isinstance(exc, OSError) and exc.errno is not None:
        if exc.errno in _REFUSED_ERRNOS:
            return CODE_REFUSED
        if exc.errno in _DNS_ERRNOS:
            return CODE_DNS
    return None


def describe_failure(exc: BaseException) -> FailureDescriptor:
    """Extract a FailureDescriptor from an exception and its cause chain.

    Args:
        exc: The raw failure

    Returns:
        FailureDescriptor with whatever structured signals were found
    """
    descriptor = FailureDescriptor(message=str(exc) or type(exc).__name__)

    for link in _walk_chain(exc):
        if descriptor.status_code is None and isinstance(link, httpx.HTTPStatusError):
            descriptor.status_code = link.response.status_code
        if descriptor.error_code is None:
            descriptor.error_code = _error_code_for(link)
        if descriptor.parse_error is None and isinstance(
            link, (MalformedFeedError, xml.sax.SAXException, ExpatError)
        ):
            descriptor.parse_error = type(link).__name__

    return descriptor


def classify_failure(descriptor: FailureDescriptor) -> ErrorCategory:
    """Map a FailureDescriptor to exactly one ErrorCategory.

    Status codes win over error codes, which win over parse errors; the
    message substring match is only consulted when no structured signal
    was found. Anything unmatched is UNKNOWN.
    """
    status = descriptor.status_code
    if status is not None:
        if status in (401, 403):
            return ErrorCategory.ACCESS_FORBIDDEN
        if status == 404:
            return ErrorCategory.NOT_FOUND
        if status == 429:
            return ErrorCategory.RATE_LIMITED
        if 500 <= status <= 599:
            return ErrorCategory.SERVER_ERROR
        return ErrorCategory.UNKNOWN

    code = descriptor.error_code
    if code == CODE_TIMEOUT:
        return ErrorCategory.TIMEOUT
    if code == CODE_TLS:
        return ErrorCategory.TLS_FAILURE
    if code in (CODE_DNS, CODE_REFUSED):
        return ErrorCategory.HOST_UNREACHABLE

    if descriptor.parse_error:
        return ErrorCategory.MALFORMED_FEED

    text = descriptor.message.lower()
    for category, needles in _MESSAGE_PATTERNS:
        if any(needle in text for needle in needles):
            return category

    return ErrorCategory.UNKNOWN


def classify_error(exc: BaseException) -> FeedFetchError:
    """Classify a raw failure into a FeedFetchError.

    Already-classified errors are returned unchanged.

    Args:
        exc: The raw failure

    Returns:
        FeedFetchError carrying the category, message and cause text
    """
    if isinstance(exc, FeedFetchError):
        return exc

    descriptor = describe_failure(exc)
    category = classify_failure(descriptor)

    cause = descriptor.message
    if descriptor.status_code is not None and str(descriptor.status_code) not in cause:
        cause = f"HTTP {descriptor.status_code}: {cause}"

    message = MESSAGES[category]
    if category is ErrorCategory.UNKNOWN:
        message = message.format(cause=cause)

    return FeedFetchError(category, message, cause)
