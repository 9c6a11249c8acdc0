"""
Input validation for the short link service.

Pure functions: no state, no I/O. Each returns the cleaned value or raises
LinkValidationError with a client-facing message.
"""

import ipaddress
import math
import re
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import validators

from shortlink_app.errors import LinkValidationError

SCHEME_PATTERN = re.compile(r"^https?://")
CUSTOM_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")
PRIVATE_172_PATTERN = re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\.")
HTML_TAG_PATTERN = re.compile(r"<[^>]*>")

BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}

MAX_VALIDITY_MINUTES = 525600  # One year
MIN_CUSTOM_CODE_LENGTH = 4
MAX_CUSTOM_CODE_LENGTH = 20
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 1000
MAX_CLIENT_IP_LENGTH = 64  # clicks.ip column width


def _is_blocked_host(hostname: str) -> bool:
    """True for loopback, unspecified and private-range targets"""
    if hostname in BLOCKED_HOSTS or hostname.endswith(".localhost"):
        return True
    if hostname.startswith("10.") or hostname.startswith("192.168."):
        return True
    if PRIVATE_172_PATTERN.match(hostname):
        return True

    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return address.is_loopback or address.is_private or address.is_unspecified


def validate_url(value: Any) -> str:
    """
    Validate a target URL and return it trimmed.

    This is an SSRF guard as much as a syntax check: the scheme must be an
    explicit http:// or https:// and the host must not be loopback,
    unspecified or in a private range.

    Raises:
        LinkValidationError: If the URL is missing, malformed or unsafe
    """
    if not value or not isinstance(value, str):
        raise LinkValidationError("URL is required and must be a string")

    url = value.strip()
    if not url:
        raise LinkValidationError("URL cannot be empty")

    if not SCHEME_PATTERN.match(url):
        raise LinkValidationError("URL must include http:// or https:// protocol")

    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        raise LinkValidationError("Malformed URL")

    if not hostname:
        raise LinkValidationError("Malformed URL")

    if _is_blocked_host(hostname):
        raise LinkValidationError("URLs pointing to private/local addresses are not allowed")

    if not validators.url(url, strict_query=False):
        raise LinkValidationError("Invalid URL format")

    return url


def _to_number(value: Any) -> Optional[float]:
    """Coerce a JSON number or numeric string, None when it is not one"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def validate_ttl_minutes(
    value: Any,
    default: int = 30,
    maximum: int = MAX_VALIDITY_MINUTES,
) -> int:
    """
    Validate a validity period in minutes.

    Absent means the default. Fractions round half-up, and a value that
    rounds to zero is rejected so expiry is always after creation.

    Raises:
        LinkValidationError: If the value is not a number or out of range
    """
    if value is None:
        return default

    number = _to_number(value)
    if number is None:
        raise LinkValidationError("Validity must be a number")

    if number <= 0:
        raise LinkValidationError("Validity must be greater than 0 minutes")

    if number > maximum:
        raise LinkValidationError(f"Validity cannot exceed 1 year ({maximum} minutes)")

    minutes = int(math.floor(number + 0.5))
    if minutes < 1:
        raise LinkValidationError("Validity must be at least 1 minute")
    return minutes


def validate_custom_code(
    value: Any,
    min_length: int = MIN_CUSTOM_CODE_LENGTH,
    max_length: int = MAX_CUSTOM_CODE_LENGTH,
) -> str:
    """
    Validate a caller-supplied shortcode and return it trimmed.

    Raises:
        LinkValidationError: If the code is not 4-20 alphanumeric characters
    """
    if not value or not isinstance(value, str):
        raise LinkValidationError("Shortcode must be a non-empty string")

    code = value.strip()

    if len(code) < min_length:
        raise LinkValidationError(f"Shortcode must be at least {min_length} characters long")

    if len(code) > max_length:
        raise LinkValidationError(f"Shortcode must be at most {max_length} characters long")

    if not CUSTOM_CODE_PATTERN.match(code):
        raise LinkValidationError(
            "Shortcode must contain only alphanumeric characters (a-z, A-Z, 0-9)"
        )

    return code


def validate_pagination(
    page: Any = None,
    limit: Any = None,
    default_limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> Tuple[int, int]:
    """
    Validate click-listing pagination.

    Returns:
        (page, limit) with page >= 1 and 1 <= limit <= max_limit

    Raises:
        LinkValidationError: If either parameter is not a positive number
    """
    page_number = 1
    page_limit = default_limit

    if page is not None:
        number = _to_number(page)
        if number is None or number < 1:
            raise LinkValidationError("Page must be a positive integer")
        page_number = int(math.floor(number))

    if limit is not None:
        number = _to_number(limit)
        if number is None or number < 1:
            raise LinkValidationError("Limit must be a positive integer")
        if number > max_limit:
            raise LinkValidationError(f"Limit cannot exceed {max_limit}")
        page_limit = int(math.floor(number))

    return page_number, page_limit


def sanitize_header(value: Optional[str], max_length: int = 500) -> Optional[str]:
    """
    Clean a captured header value: strip HTML tags, trim, cap the length.

    Not a security boundary; values are stored verbatim otherwise.
    """
    if not value or not isinstance(value, str):
        return None

    cleaned = HTML_TAG_PATTERN.sub("", value)
    cleaned = cleaned.replace("<", "").replace(">", "").strip()
    return cleaned[:max_length] or None


def extract_client_ip(headers: Mapping[str, str], peer_host: Optional[str]) -> str:
    """
    First X-Forwarded-For entry, else the socket peer, else "unknown".

    The forwarded entry is client-controlled, so it is only taken when it
    parses as an IP address.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        try:
            return str(ipaddress.ip_address(first))[:MAX_CLIENT_IP_LENGTH]
        except ValueError:
            pass
    return (peer_host or "unknown")[:MAX_CLIENT_IP_LENGTH]


def extract_referrer(headers: Mapping[str, str]) -> Optional[str]:
    return headers.get("referer") or headers.get("referrer")
