"""Serving of finished files from the output directory."""
import os
import re
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from mediafetch.core.config import Settings
from mediafetch.core.logging import get_logger
from mediafetch.core.security import get_settings, require_basic_auth
from mediafetch.models.fetch import ErrorResponse
from mediafetch.services.errors import DownloadNotFoundError
from mediafetch.services.url_resolver import contained_relative_path

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_basic_auth)])


def _sanitize_filename(filename: str) -> str:
    """Sanitize a filename for safe use in Content-Disposition header.

    Args:
        filename: Raw filename

    Returns:
        Sanitized filename safe for headers (ASCII only)
    """
    filename = re.sub(r'[^a-zA-Z0-9\s\-\.\[\]_]', '', filename, flags=re.ASCII)
    filename = re.sub(r'\s+', '_', filename)
    return filename[:200] or "download"


def _build_content_disposition(filename: str) -> str:
    """Build Content-Disposition header with an RFC 5987 UTF-8 variant.

    Args:
        filename: Original filename (may contain Unicode characters)

    Returns:
        Header value with both ``filename=`` and ``filename*=`` forms
    """
    ascii_filename = _sanitize_filename(filename)
    encoded_filename = quote(filename, safe='')
    return f"attachment; filename=\"{ascii_filename}\"; filename*=UTF-8''{encoded_filename}"


@router.get(
    "/{file_path:path}",
    summary="Download a produced file",
    response_class=FileResponse,
    responses={
        200: {"description": "File contents"},
        404: {"description": "No such file in the output directory", "model": ErrorResponse},
    },
)
async def download_file(
    file_path: str,
    app_settings: Settings = Depends(get_settings),
) -> FileResponse:
    """Send a file from the output directory as an attachment.

    Paths are canonicalized and must stay inside the output directory.

    Raises:
        DownloadNotFoundError: If the path escapes the directory or is not a file
    """
    relative = contained_relative_path(file_path, app_settings.OUTPUT_DIR)
    if not relative:
        raise DownloadNotFoundError()

    full_path = os.path.join(os.path.realpath(app_settings.OUTPUT_DIR), relative)
    if not os.path.isfile(full_path):
        raise DownloadNotFoundError()

    logger.info(f"Serving download: {relative}")
    return FileResponse(
        full_path,
        headers={"Content-Disposition": _build_content_disposition(os.path.basename(full_path))},
    )
