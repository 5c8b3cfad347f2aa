"""Mapping of produced files to public download URLs.

Only files that canonicalize to a location inside the output directory are
ever linked.  This is what keeps the download route from exposing anything
else on disk, whatever path the tool claims to have written.
"""
import os
from typing import Mapping
from urllib.parse import quote

from mediafetch.core.logging import get_logger

logger = get_logger(__name__)


def contained_relative_path(candidate: str, root: str) -> str | None:
    """Return ``candidate`` relative to ``root`` if it lies inside it.

    Both paths are canonicalized first (``..``, symlinks, relative segments);
    a relative candidate is taken relative to ``root``, which is also the
    working directory the tool runs in.  The root itself yields ``""``.

    Args:
        candidate: Path reported by the tool or requested by a client
        root: Output directory

    Returns:
        POSIX-style relative path, or None when the candidate escapes the root
    """
    if not candidate or "\x00" in candidate:
        return None

    real_root = os.path.realpath(root)
    real_candidate = os.path.realpath(os.path.join(real_root, candidate))

    if real_candidate == real_root:
        return ""
    prefix = real_root if real_root.endswith(os.sep) else real_root + os.sep
    if not real_candidate.startswith(prefix):
        return None
    return real_candidate[len(prefix):].replace(os.sep, "/")


def resolve_public_base_url(
    configured: str,
    headers: Mapping[str, str],
    scheme: str = "http",
) -> str:
    """Determine the origin download links are built on.

    Explicit configuration wins.  Otherwise the forwarded protocol/host headers
    set by a reverse proxy are used, then the plain ``Host`` header.

    Returns:
        Origin without trailing slash, or "" when no host can be determined
    """
    if configured:
        return configured.rstrip("/")

    host = _first_value(headers.get("x-forwarded-host")) or _first_value(headers.get("host"))
    if not host:
        return ""
    proto = _first_value(headers.get("x-forwarded-proto")) or scheme or "http"
    return f"{proto.lower()}://{host}"


def _first_value(header: str | None) -> str:
    """First entry of a possibly comma-joined proxy header."""
    if not header:
        return ""
    return header.split(",")[0].strip()


def build_download_url(
    candidate: str | None,
    root: str,
    base_url: str,
    prefix: str = "/downloads",
) -> str | None:
    """Build ``<base><prefix>/<relative>`` for a produced file.

    Returns None when there is no candidate, no base URL, or the candidate
    is not contained in ``root``.
    """
    if not candidate or not base_url:
        return None

    relative = contained_relative_path(candidate, root)
    if relative is None:
        logger.warning(f"Refusing to link path outside output directory: {candidate!r}")
        return None
    if not relative:
        return None

    return f"{base_url.rstrip('/')}{prefix}/{quote(relative, safe='/')}"
