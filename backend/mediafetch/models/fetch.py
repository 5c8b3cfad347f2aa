"""Pydantic models for fetch API contracts and stream events."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class FetchRequest(BaseModel):
    """Request model for starting a fetch job."""

    url: Any = Field(
        default=None,
        description="http(s) URL of the media page to download",
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )
    mode: Literal["audio", "video"] = Field(
        default="video",
        description="audio extracts an mp3, video merges best video+audio into mp4",
    )
    filename: Any = Field(
        default=None,
        description="Optional base name for the output file (cleaned and cut to 80 characters server-side)",
        examples=["my-clip"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "url": "https://example.com/video",
                "mode": "video",
                "filename": "clip123",
            }
        }
    )


class StartEvent(BaseModel):
    """Payload of the ``start`` event."""

    job_id: str = Field(..., serialization_alias="jobId")


class LogEvent(BaseModel):
    """Payload of a ``log`` event: one line of tool output."""

    line: str


class DoneEvent(BaseModel):
    """Payload of the ``done`` event when the tool ran to completion."""

    ok: bool
    code: int | None = Field(
        default=None,
        description="Exit status of the tool",
    )
    download_url: str | None = Field(
        default=None,
        serialization_alias="downloadUrl",
        description="Public link to the produced file (null when it could not be resolved)",
    )


class FailedEvent(BaseModel):
    """Payload of the ``done`` event when the job could not run."""

    ok: Literal[False] = False
    error: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    code: Literal[
        "INVALID_INPUT",
        "SPAWN_FAILED",
        "NOT_FOUND",
        "INTERNAL_ERROR",
    ] = Field(
        ...,
        description="Stable error code for programmatic handling",
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        min_length=1,
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "INVALID_INPUT",
                "message": "Invalid URL.",
            }
        }
    )


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(
        default="healthy",
        description="Health status of the service",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
