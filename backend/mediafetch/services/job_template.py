"""Job identity, output naming and yt-dlp command construction."""
import os
import uuid
from dataclasses import dataclass, field
from typing import Literal

FetchMode = Literal["audio", "video"]
CollisionPolicy = Literal["always_suffix", "best_effort"]

# Placeholders are expanded by yt-dlp itself
EXT_PLACEHOLDER = "%(ext)s"
DEFAULT_NAME_TEMPLATE = f"%(title).200B [%(id)s].{EXT_PLACEHOLDER}"

# Flags every job gets, regardless of mode
BASE_FLAGS = [
    "--no-warnings",
    "--newline",
    "--restrict-filenames",
    "--no-playlist",
    "--no-part",
]


@dataclass(frozen=True)
class ToolProfile:
    """Mode profiles and optional network tuning for the download tool."""

    binary: str = "yt-dlp"
    audio_format: str = "mp3"
    audio_quality: str = "192K"
    video_format: str = "bv*+ba/b"
    merge_output_format: str = "mp4"
    socket_timeout: int | None = None
    user_agent: str | None = None
    cookies_from_browser: str | None = None
    proxy: str | None = None


@dataclass
class FetchJob:
    """A single request-scoped run of the download tool."""

    id: str
    mode: FetchMode
    url: str
    output_template: str
    command: list[str] = field(default_factory=list)
    # Filled in while/after the tool runs
    resolved_path: str | None = None
    exit_code: int | None = None


def make_job_id() -> str:
    """Return a random job token (not sequenced; collisions are merely improbable)."""
    return uuid.uuid4().hex[:16]


def build_output_template(
    output_dir: str,
    job_id: str,
    filename_hint: str = "",
    policy: CollisionPolicy = "always_suffix",
) -> str:
    """Build the absolute ``-o`` template for a job.

    Args:
        output_dir: Absolute output directory
        job_id: Job token, appended to custom names under ``always_suffix``
        filename_hint: Already-sanitized base name, or "" for tool naming
        policy: ``always_suffix`` keeps concurrent same-name jobs apart;
            ``best_effort`` honours the name exactly and may overwrite

    Returns:
        Output path template containing yt-dlp placeholders
    """
    if not filename_hint:
        return os.path.join(output_dir, DEFAULT_NAME_TEMPLATE)
    if policy == "always_suffix":
        return os.path.join(output_dir, f"{filename_hint}-{job_id}.{EXT_PLACEHOLDER}")
    return os.path.join(output_dir, f"{filename_hint}.{EXT_PLACEHOLDER}")


def build_command(
    url: str,
    mode: FetchMode,
    output_template: str,
    profile: ToolProfile | None = None,
) -> list[str]:
    """Build the full yt-dlp argument list for a job."""
    profile = profile or ToolProfile()

    cmd: list[str] = [profile.binary, *BASE_FLAGS, "-o", output_template]

    if mode == "audio":
        cmd.extend([
            "-x",
            "--audio-format", profile.audio_format,
            "--audio-quality", profile.audio_quality,
        ])
    else:
        cmd.extend([
            "-f", profile.video_format,
            "--merge-output-format", profile.merge_output_format,
        ])

    if profile.socket_timeout:
        cmd.extend(["--socket-timeout", str(profile.socket_timeout)])
    if profile.user_agent:
        cmd.extend(["--user-agent", profile.user_agent])
    if profile.cookies_from_browser:
        cmd.extend(["--cookies-from-browser", profile.cookies_from_browser])
    if profile.proxy:
        cmd.extend(["--proxy", profile.proxy])

    cmd.append(url)
    return cmd


def create_job(
    url: str,
    mode: FetchMode,
    output_dir: str,
    filename_hint: str = "",
    policy: CollisionPolicy = "always_suffix",
    profile: ToolProfile | None = None,
) -> FetchJob:
    """Create a job for an already-sanitized URL and filename hint."""
    job_id = make_job_id()
    template = build_output_template(output_dir, job_id, filename_hint, policy)
    return FetchJob(
        id=job_id,
        mode=mode,
        url=url,
        output_template=template,
        command=build_command(url, mode, template, profile),
    )
