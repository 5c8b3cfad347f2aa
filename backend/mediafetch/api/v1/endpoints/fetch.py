"""Fetch job endpoints (Server-Sent Events)."""
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from sse_starlette.sse import EventSourceResponse

from mediafetch.core.config import Settings
from mediafetch.core.logging import get_logger
from mediafetch.core.security import get_settings, require_basic_auth
from mediafetch.models.fetch import ErrorResponse, FetchRequest
from mediafetch.services.fetch_pipeline import FetchPipeline, PipelineConfig
from mediafetch.services.url_resolver import resolve_public_base_url

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_basic_auth)])

_RESPONSES = {
    200: {
        "description": (
            "Event stream: one `start` {jobId}, `log` {line} per output line, "
            "then one `done` {ok, code, downloadUrl} or {ok: false, error}"
        ),
        "content": {"text/event-stream": {}},
    },
    400: {"description": "Invalid URL", "model": ErrorResponse},
    401: {"description": "Missing or wrong credentials"},
}


def _start_fetch(
    request: Request,
    app_settings: Settings,
    url: object,
    mode: Literal["audio", "video"],
    filename: object,
) -> EventSourceResponse:
    """Validate input, then stream the job.

    Validation errors propagate before the response exists, so they become a
    plain 400; anything later is reported inside the stream.
    """
    base_url = resolve_public_base_url(
        app_settings.PUBLIC_BASE_URL,
        request.headers,
        request.url.scheme,
    )
    pipeline = FetchPipeline(PipelineConfig.from_settings(app_settings, base_url))
    job = pipeline.prepare(url, mode, filename)
    logger.debug(f"Streaming job {job.id} (base URL: {base_url or 'none'})")

    return EventSourceResponse(
        pipeline.events(job),
        ping=app_settings.SSE_PING_SECONDS,
        headers={"Cache-Control": "no-cache"},
    )


@router.post(
    "/fetch",
    status_code=status.HTTP_200_OK,
    summary="Fetch media (POST)",
    description="Run yt-dlp for a URL and stream its progress as Server-Sent Events",
    responses=_RESPONSES,
)
async def fetch_post(
    body: FetchRequest,
    request: Request,
    app_settings: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """Start a fetch job from a JSON body.

    Args:
        body: URL, mode and optional filename
        request: Incoming request (used to infer the public base URL)
        app_settings: Application settings

    Returns:
        Event stream of the job
    """
    return _start_fetch(request, app_settings, body.url, body.mode, body.filename)


@router.get(
    "/fetch",
    status_code=status.HTTP_200_OK,
    summary="Fetch media (GET)",
    description="Same as POST, with query parameters (for browser EventSource)",
    responses=_RESPONSES,
)
async def fetch_get(
    request: Request,
    url: str | None = Query(None, description="Media page URL", max_length=2048),
    mode: Literal["audio", "video"] = Query("video", description="audio or video"),
    filename: str | None = Query(None, description="Optional output base name"),
    app_settings: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """Start a fetch job from query parameters."""
    return _start_fetch(request, app_settings, url, mode, filename)
