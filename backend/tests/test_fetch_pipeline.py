"""Tests for job event streams, driven without the HTTP layer."""
import asyncio
import json
import os
from pathlib import Path
from typing import Any, Callable
from unittest.mock import patch

import pytest

from mediafetch.core.config import Settings
from mediafetch.services import fetch_pipeline
from mediafetch.services.errors import InvalidInputError
from mediafetch.services.fetch_pipeline import FetchPipeline, PipelineConfig
from mediafetch.services.job_template import FetchJob, ToolProfile

Events = list[tuple[str, dict[str, Any]]]


def _pipeline(output_dir: Path, tool: str, **overrides: Any) -> FetchPipeline:
    values: dict[str, Any] = {
        "output_dir": str(output_dir),
        "base_url": "http://media.test",
        "tool": ToolProfile(binary=tool),
    }
    values.update(overrides)
    return FetchPipeline(PipelineConfig(**values))


async def _collect(pipeline: FetchPipeline, job: FetchJob) -> Events:
    return [(event.event, json.loads(event.data)) async for event in pipeline.events(job)]


def _assert_well_formed(events: Events) -> None:
    names = [name for name, _ in events]
    assert names[0] == "start"
    assert names[-1] == "done"
    assert names.count("start") == 1
    assert names.count("done") == 1
    assert all(name == "log" for name in names[1:-1])


class TestPrepare:
    """Tests for job preparation."""

    def test_rejects_before_building_job(self, output_dir: Path) -> None:
        pipeline = _pipeline(output_dir, "yt-dlp")
        with pytest.raises(InvalidInputError):
            pipeline.prepare("ftp://x")

    def test_builds_job(self, output_dir: Path) -> None:
        pipeline = _pipeline(output_dir, "/usr/local/bin/yt-dlp", collision_policy="best_effort")

        job = pipeline.prepare(" https://Example.com/v ", "audio", "my clip")

        assert job.url == "https://example.com/v"
        assert job.mode == "audio"
        assert job.output_template == f"{output_dir}/myclip.%(ext)s"
        assert job.command[0] == "/usr/local/bin/yt-dlp"

    def test_private_hosts_follow_config(self, output_dir: Path) -> None:
        strict = _pipeline(output_dir, "yt-dlp")
        relaxed = _pipeline(output_dir, "yt-dlp", block_private_networks=False)

        with pytest.raises(InvalidInputError):
            strict.prepare("http://127.0.0.1/v")
        assert relaxed.prepare("http://127.0.0.1/v").url == "http://127.0.0.1/v"

    def test_config_from_settings(self, output_dir: Path) -> None:
        app_settings = Settings(
            OUTPUT_DIR=str(output_dir),
            LOG_BUFFER_OVERFLOW="drop_newest",
            OUTPUT_PATH_MATCH="first",
            YTDLP_BINARY="/opt/yt-dlp",
            YTDLP_PROXY="socks5://p:1080",
        )

        config = PipelineConfig.from_settings(app_settings, "https://h")

        assert config.output_dir == str(output_dir)
        assert config.base_url == "https://h"
        assert config.overflow == fetch_pipeline.OverflowPolicy.DROP_NEWEST
        assert config.path_match == "first"
        assert config.tool.binary == "/opt/yt-dlp"
        assert config.tool.proxy == "socks5://p:1080"


class TestEvents:
    """Tests for the start/log/done sequence."""

    def test_success_with_link(self, output_dir: Path, fake_tool: Callable[..., str]) -> None:
        tool = fake_tool(lines=[
            f"[download] Destination: {output_dir}/clip.f137.mp4",
            f"[download] Destination: {output_dir}/clip.f140.m4a",
            f'[Merger] Merging formats into "{output_dir}/clip.mp4"',
            "Deleting original file clip.f137.mp4",
        ])
        pipeline = _pipeline(output_dir, tool)
        job = pipeline.prepare("https://example.com/v")

        events = asyncio.run(_collect(pipeline, job))

        _assert_well_formed(events)
        assert events[0][1] == {"jobId": job.id}
        assert len(events) == 6
        assert events[-1][1] == {
            "ok": True,
            "code": 0,
            "downloadUrl": "http://media.test/downloads/clip.mp4",
        }
        assert job.resolved_path == f"{output_dir}/clip.mp4"
        assert job.exit_code == 0

    def test_first_match_policy(self, output_dir: Path, fake_tool: Callable[..., str]) -> None:
        tool = fake_tool(lines=[
            f"[download] Destination: {output_dir}/clip.f137.mp4",
            f'[Merger] Merging formats into "{output_dir}/clip.mp4"',
        ])
        pipeline = _pipeline(output_dir, tool, path_match="first")

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert events[-1][1]["downloadUrl"] == "http://media.test/downloads/clip.f137.mp4"

    def test_success_without_marker_is_unresolved(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=["[youtube] abc: Downloading webpage"])
        pipeline = _pipeline(output_dir, tool)

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert events[-1] == ("done", {"ok": True, "code": 0, "downloadUrl": None})

    def test_success_without_base_url_is_unresolved(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=[f"[download] Destination: {output_dir}/a.mp4"])
        pipeline = _pipeline(output_dir, tool, base_url="")

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert events[-1] == ("done", {"ok": True, "code": 0, "downloadUrl": None})

    def test_nonzero_exit_passes_code_through(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=[f"[download] Destination: {output_dir}/a.mp4"], exit_code=2)
        pipeline = _pipeline(output_dir, tool)

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert events[-1] == ("done", {"ok": False, "code": 2, "downloadUrl": None})

    def test_spawn_failure(self, output_dir: Path) -> None:
        pipeline = _pipeline(output_dir, str(output_dir / "absent"))

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert [name for name, _ in events] == ["start", "done"]
        assert events[-1][1]["ok"] is False
        assert events[-1][1]["error"]

    def test_concurrent_jobs_are_independent(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool_a = fake_tool(lines=[f"a{i}" for i in range(20)] + [f"[download] Destination: {output_dir}/a.mp4"])
        tool_b = fake_tool(lines=[f"b{i}" for i in range(20)] + [f"[download] Destination: {output_dir}/b.mp4"])
        pipeline_a = _pipeline(output_dir, tool_a)
        pipeline_b = _pipeline(output_dir, tool_b)
        job_a = pipeline_a.prepare("https://example.com/a")
        job_b = pipeline_b.prepare("https://example.com/b")

        async def _both() -> tuple[Events, Events]:
            return await asyncio.gather(_collect(pipeline_a, job_a), _collect(pipeline_b, job_b))

        events_a, events_b = asyncio.run(_both())

        for events, prefix, job in ((events_a, "a", job_a), (events_b, "b", job_b)):
            _assert_well_formed(events)
            assert events[0][1]["jobId"] == job.id
            logged = [payload["line"] for name, payload in events if name == "log"]
            assert logged[:20] == [f"{prefix}{i}" for i in range(20)]
            assert events[-1][1]["downloadUrl"] == f"http://media.test/downloads/{prefix}.mp4"
        assert job_a.id != job_b.id

    def test_relative_destination_resolved_in_output_dir(
        self, output_dir: Path, fake_tool: Callable[..., str], tmp_path: Path
    ) -> None:
        tool = fake_tool(lines=["[download] Destination: clip.mp4"])
        pipeline = _pipeline(output_dir, tool)

        events = asyncio.run(_collect(pipeline, pipeline.prepare("https://example.com/v")))

        assert events[-1][1]["downloadUrl"] == "http://media.test/downloads/clip.mp4"
        # The link only holds if the tool really wrote relative names there
        cwd = (tmp_path / "cwd-1.txt").read_text()
        assert os.path.realpath(cwd) == os.path.realpath(output_dir)

    def test_unexpected_error_stops_tool(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=["first", "second"], sleep=30)
        pipeline = _pipeline(output_dir, tool)
        job = pipeline.prepare("https://example.com/v")

        async def _run() -> tuple[Events, list[int]]:
            events = await _collect(pipeline, job)
            pending = list(fetch_pipeline._abandoned)
            assert pending
            return events, await asyncio.gather(*pending)

        with patch(
            "mediafetch.services.fetch_pipeline.OutputPathTracker.feed",
            side_effect=RuntimeError("boom"),
        ):
            events, codes = asyncio.run(_run())

        _assert_well_formed(events)
        assert events[-1][1]["ok"] is False
        assert "boom" in events[-1][1]["error"]
        assert codes[0] != 0


class TestDisconnect:
    """Tests for clients that stop listening mid-job."""

    @staticmethod
    async def _abandon_after_first_log(pipeline: FetchPipeline, job: FetchJob) -> list[int]:
        stream = pipeline.events(job)
        assert (await stream.__anext__()).event == "start"
        assert (await stream.__anext__()).event == "log"
        await stream.aclose()

        pending = list(fetch_pipeline._abandoned)
        assert pending
        return await asyncio.gather(*pending)

    def test_job_keeps_running_by_default(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=["first", "second", "third"], sleep=0.2, exit_code=0)
        pipeline = _pipeline(output_dir, tool)
        job = pipeline.prepare("https://example.com/v")

        codes = asyncio.run(self._abandon_after_first_log(pipeline, job))

        assert codes == [0]

    def test_job_terminated_when_configured(
        self, output_dir: Path, fake_tool: Callable[..., str]
    ) -> None:
        tool = fake_tool(lines=["first"], sleep=30)
        pipeline = _pipeline(output_dir, tool, cancel_on_disconnect=True)
        job = pipeline.prepare("https://example.com/v")

        codes = asyncio.run(self._abandon_after_first_log(pipeline, job))

        assert codes[0] != 0
