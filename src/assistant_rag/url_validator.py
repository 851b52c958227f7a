"""URL validation guarding outbound fetches against SSRF."""

import re
import socket
import ipaddress
from urllib.parse import urlsplit, urlunsplit

from .models import UrlValidationResult
from .config import logger

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOST_PATTERNS = [
    # Loopback
    re.compile(r"^127\."),
    re.compile(r"^localhost$", re.IGNORECASE),
    re.compile(r"^::1$"),
    re.compile(r"^0\.0\.0\.0$"),
    # Private ranges (RFC 1918)
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2\d|3[01])\."),
    re.compile(r"^192\.168\."),
    # Link-local
    re.compile(r"^169\.254\."),
    re.compile(r"^fe80:", re.IGNORECASE),
    # Multicast
    re.compile(r"^224\."),
    re.compile(r"^ff00:", re.IGNORECASE),
    # Documentation ranges
    re.compile(r"^192\.0\.2\."),
    re.compile(r"^198\.51\.100\."),
    re.compile(r"^203\.0\.113\."),
    # Other special-use
    re.compile(r"^0\."),
    re.compile(r"^255\."),
]


def _is_reserved_ip(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_reserved
        or address.is_unspecified
    )


NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]*|\d+)(\.(0x[0-9a-f]*|\d+)){0,3}$")


def canonical_hostname(hostname: str) -> str:
    """
    Lowercase a hostname, drop IPv6 brackets and a trailing dot, and rewrite
    IPv4 hosts written in decimal, hex, octal or short dotted form (e.g.
    "2130706433", "0x7f000001", "127.1") as dotted quads, the way resolvers read them.
    """
    hostname = hostname.lower().strip("[]").rstrip(".")
    if NUMERIC_HOST_RE.match(hostname):
        try:
            return str(ipaddress.IPv4Address(socket.inet_aton(hostname)))
        except OSError:
            return hostname
    return hostname


def is_blocked_hostname(hostname: str) -> bool:
    """Check whether a hostname points at a private or internal address."""
    hostname = canonical_hostname(hostname)
    if hostname.endswith(".localhost"):
        return True
    return any(pattern.search(hostname) for pattern in BLOCKED_HOST_PATTERNS) or _is_reserved_ip(hostname)


def validate_url_safety(url: str) -> UrlValidationResult:
    """
    Validate a URL before any network request is made.

    Args:
        url: The URL to validate

    Returns:
        UrlValidationResult: valid flag and an error message when rejected
    """
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname or ""
        username, password = parts.username, parts.password
    except ValueError as e:
        return UrlValidationResult(valid=False, error=f"Invalid URL format: {e}")

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return UrlValidationResult(
            valid=False,
            error=f'Protocol "{parts.scheme}:" not allowed. Only HTTP and HTTPS are supported.'
        )

    if not hostname:
        return UrlValidationResult(valid=False, error="Invalid URL format: missing hostname")

    if is_blocked_hostname(hostname):
        logger.warning(f"SSRF attempt blocked: {hostname}")
        return UrlValidationResult(
            valid=False,
            error="Access to private/internal addresses is not allowed for security reasons."
        )

    if username or password:
        return UrlValidationResult(valid=False, error="URLs with embedded credentials are not allowed.")

    if "@" in hostname:
        return UrlValidationResult(valid=False, error="Invalid hostname format.")

    return UrlValidationResult(valid=True)


def normalize_url(url: str) -> str:
    """Strip the fragment from a URL; an empty path becomes "/"."""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, ""))


def validate_scraping_url(url: str) -> UrlValidationResult:
    """Validate a URL for scraping and return its normalized form."""
    safety = validate_url_safety(url)
    if not safety.valid:
        return safety

    try:
        normalized = normalize_url(url)
    except ValueError:
        return UrlValidationResult(valid=False, error="Invalid URL format")

    return UrlValidationResult(valid=True, url=normalized)
