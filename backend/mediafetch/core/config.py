"""Application configuration using pydantic-settings."""
import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENV: Literal["development", "production", "test"] = "development"
    DEBUG: bool = False
    PORT: int = Field(default=3000, ge=1, le=65535)

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Output / public links
    OUTPUT_DIR: str = Field(
        default="/data/downloads",
        description="Directory the download tool writes into and files are served from",
    )
    PUBLIC_BASE_URL: str = Field(
        default="",
        description="Public origin used for download links (inferred from the request when empty)",
    )
    DOWNLOADS_PREFIX: str = Field(
        default="/downloads",
        description="URL prefix under which OUTPUT_DIR is served",
    )

    # Basic auth
    AUTH_ENABLED: bool = True
    BASIC_AUTH_USER: str = "admin"
    BASIC_AUTH_PASS: str = "changeme"
    AUTH_REALM: str = "MediaFetch"

    # Security
    BLOCK_PRIVATE_NETWORKS: bool = Field(
        default=True,
        description="Block URLs pointing to private networks (SSRF protection)",
    )
    ALLOWED_URL_SCHEMES: str = Field(
        default="http,https",
        description="Comma-separated list of allowed URL schemes",
    )

    # Output naming
    FILENAME_MAX_LENGTH: int = Field(default=80, ge=1, le=200)
    FILENAME_COLLISION_POLICY: Literal["always_suffix", "best_effort"] = Field(
        default="always_suffix",
        description=(
            "always_suffix appends the job id to custom filenames; "
            "best_effort uses the filename as given and may overwrite"
        ),
    )

    # Job pipeline
    LOG_BUFFER_MAX_LINES: int = Field(
        default=1000,
        ge=1,
        le=1_000_000,
        description="Max tool output lines held between the process and the event stream",
    )
    LOG_BUFFER_OVERFLOW: Literal["block", "drop_oldest", "drop_newest"] = Field(
        default="block",
        description="What to do with new output lines when the buffer is full",
    )
    OUTPUT_PATH_MATCH: Literal["last", "first"] = Field(
        default="last",
        description="Which destination line wins when the tool reports several",
    )
    CANCEL_ON_DISCONNECT: bool = Field(
        default=False,
        description="Terminate the tool when the client closes the event stream",
    )
    SSE_PING_SECONDS: int = Field(default=15, ge=1, le=300)

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v: str) -> str:
        """Ensure CORS_ORIGINS is properly formatted."""
        return v.strip()

    @field_validator("OUTPUT_DIR")
    @classmethod
    def absolute_output_dir(cls, v: str) -> str:
        """Resolve OUTPUT_DIR to an absolute path once, at startup."""
        v = v.strip()
        if not v:
            raise ValueError("OUTPUT_DIR cannot be empty")
        return os.path.abspath(os.path.expanduser(v))

    @field_validator("PUBLIC_BASE_URL")
    @classmethod
    def validate_public_base_url(cls, v: str) -> str:
        """Accept only http(s) origins and drop the trailing slash."""
        v = v.strip().rstrip("/")
        if v and not v.lower().startswith(("http://", "https://")):
            raise ValueError("PUBLIC_BASE_URL must start with http:// or https://")
        return v

    @field_validator("DOWNLOADS_PREFIX", "API_V1_PREFIX")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Route prefixes start with a slash and never end with one."""
        v = "/" + v.strip().strip("/")
        if v == "/":
            raise ValueError("Route prefix cannot be the root path")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def allowed_schemes_list(self) -> list[str]:
        """Get allowed URL schemes as a list."""
        return [scheme.strip().lower() for scheme in self.ALLOWED_URL_SCHEMES.split(",") if scheme.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "production"

    # yt-dlp invocation
    YTDLP_BINARY: str = Field(
        default="yt-dlp",
        description="Executable name or path of the download tool",
    )
    YTDLP_AUDIO_FORMAT: str = Field(default="mp3", description="yt-dlp --audio-format for audio mode")
    YTDLP_AUDIO_QUALITY: str = Field(default="192K", description="yt-dlp --audio-quality for audio mode")
    YTDLP_VIDEO_FORMAT: str = Field(default="bv*+ba/b", description="yt-dlp -f selector for video mode")
    YTDLP_MERGE_OUTPUT_FORMAT: str = Field(
        default="mp4",
        description="Container for merged video+audio downloads",
    )
    YTDLP_SOCKET_TIMEOUT: int | None = Field(
        default=None,
        ge=1,
        le=300,
        description="yt-dlp --socket-timeout value in seconds"
    )
    YTDLP_COOKIES_FROM_BROWSER: str | None = Field(
        default=None,
        description="Browser to extract cookies from (chrome, firefox, edge, etc.)"
    )
    YTDLP_USER_AGENT: str | None = Field(
        default=None,
        description="Custom user agent string to avoid detection"
    )
    YTDLP_PROXY: str | None = Field(
        default=None,
        description="HTTP/HTTPS/SOCKS proxy URL (e.g., http://proxy:8080)"
    )


# Global settings instance
settings = Settings()
