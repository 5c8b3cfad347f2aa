"""Validation and normalization of user-supplied job input."""
import hashlib
import ipaddress
import re
from typing import Any, Iterable
from urllib.parse import quote, urlsplit, urlunsplit

from mediafetch.core.logging import get_logger
from mediafetch.services.errors import InvalidInputError

logger = get_logger(__name__)

DEFAULT_ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
BLOCKED_HOSTNAMES = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}

# RFC 3986 reserved + unreserved characters, plus '%' so existing escapes survive
_URL_SAFE_CHARS = "/%:@!$&'()*+,;=-._~"
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_FILENAME_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9._-]+")

FILENAME_MAX_LENGTH = 80


def normalize_url(
    raw: Any,
    allowed_schemes: Iterable[str] = DEFAULT_ALLOWED_SCHEMES,
    block_private_networks: bool = False,
) -> str:
    """Validate a target URL and return its normalized absolute form.

    Args:
        raw: URL as received from the client
        allowed_schemes: Lower-case schemes that may be fetched
        block_private_networks: Also reject loopback/private hosts

    Returns:
        Normalized URL (lower-case scheme and host, default port dropped,
        "/" path when empty, unsafe characters percent-encoded)

    Raises:
        InvalidInputError: If the URL cannot be accepted
    """
    if not isinstance(raw, str):
        raise InvalidInputError()

    url = raw.strip()
    if not url or _CONTROL_CHARS_RE.search(url):
        raise InvalidInputError()

    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        logger.debug(f"Failed to parse URL: {e}")
        raise InvalidInputError() from e

    scheme = parsed.scheme.lower()
    if scheme not in {s.lower() for s in allowed_schemes}:
        raise InvalidInputError("Invalid URL. Only http and https links are supported.")

    host = parsed.hostname
    if not host:
        raise InvalidInputError("Invalid URL. A hostname is required.")

    if block_private_networks:
        _reject_private_host(host)

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    userinfo, has_userinfo, _ = parsed.netloc.rpartition("@")
    if has_userinfo:
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((
        scheme,
        netloc,
        quote(parsed.path or "/", safe=_URL_SAFE_CHARS),
        quote(parsed.query, safe=_URL_SAFE_CHARS + "?"),
        quote(parsed.fragment, safe=_URL_SAFE_CHARS + "?"),
    ))


def _reject_private_host(host: str) -> None:
    """SSRF guard for literal IPs and well-known local host names."""
    if host.lower() in BLOCKED_HOSTNAMES:
        raise InvalidInputError("Localhost URLs are not allowed")

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        # Not an IP address, hostname is OK
        return

    if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified:
        logger.warning(f"Blocked private network URL: {host}")
        raise InvalidInputError("Private network URLs are not allowed")


def clean_filename_hint(raw: Any, max_length: int = FILENAME_MAX_LENGTH) -> str:
    """Reduce a client filename hint to a safe base name.

    Every character outside letters, digits, ``.``, ``_`` and ``-`` is removed,
    leading dots are dropped and the result is cut to ``max_length``.  An empty
    string means "no usable hint" and callers fall back to tool-side naming.
    """
    if not isinstance(raw, str):
        return ""
    cleaned = _FILENAME_DISALLOWED_RE.sub("", raw.strip())
    return cleaned.lstrip(".")[:max_length]


def redact_url(url: str) -> str:
    """Create a safe version of URL for logging (hide query params)."""
    try:
        parsed = urlsplit(url)
        url_hash = hashlib.sha256(url.encode()).hexdigest()[:8]
        return f"{parsed.scheme}://{parsed.hostname}{parsed.path} (hash:{url_hash})"
    except ValueError:
        return "invalid-url"
