"""Test configuration and fixtures."""
import os
import stat
import sys
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import AppStatus

from mediafetch.core.config import Settings
from mediafetch.main import create_app

AUTH = ("tester", "s3cret")


@pytest.fixture(autouse=True)
def reset_sse_app_status() -> Generator[None, None, None]:
    """sse-starlette keeps a module-level exit event bound to the first event loop."""
    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Empty output directory for a test."""
    directory = tmp_path / "downloads"
    directory.mkdir()
    return directory


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[..., str]:
    """Factory writing an executable stand-in for yt-dlp.

    The script prints the given stdout/stderr lines, optionally sleeps, and
    exits with ``exit_code``.  It also dumps its argv to ``argv-N.txt`` and
    its working directory to ``cwd-N.txt``.

    Returns:
        Function returning the path of a new script
    """
    counter = {"n": 0}

    def _make(
        lines: list[str] | None = None,
        exit_code: int = 0,
        stderr_lines: list[str] | None = None,
        sleep: float = 0,
    ) -> str:
        counter["n"] += 1
        path = tmp_path / f"fake-yt-dlp-{counter['n']}"
        argv_path = tmp_path / f"argv-{counter['n']}.txt"
        cwd_path = tmp_path / f"cwd-{counter['n']}.txt"
        path.write_text(
            f"#!{sys.executable}\n"
            "import os, sys, time\n"
            f"open({str(argv_path)!r}, 'w').write('\\n'.join(sys.argv[1:]))\n"
            f"open({str(cwd_path)!r}, 'w').write(os.getcwd())\n"
            f"for line in {lines or []!r}:\n"
            "    print(line, flush=True)\n"
            f"for line in {stderr_lines or []!r}:\n"
            "    print(line, file=sys.stderr, flush=True)\n"
            f"time.sleep({sleep!r})\n"
            f"sys.exit({exit_code})\n"
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def make_client(output_dir: Path) -> Generator[Callable[..., TestClient], None, None]:
    """Factory for test clients bound to an app with custom settings.

    Yields:
        Function taking Settings overrides (and ``credentials``) and
        returning a started TestClient
    """
    clients: list[TestClient] = []

    def _make(credentials: tuple[str, str] | None = AUTH, **overrides: object) -> TestClient:
        values: dict[str, object] = {
            "ENV": "test",
            "OUTPUT_DIR": str(output_dir),
            "PUBLIC_BASE_URL": "",
            "AUTH_ENABLED": True,
            "BASIC_AUTH_USER": AUTH[0],
            "BASIC_AUTH_PASS": AUTH[1],
            "YTDLP_BINARY": os.path.join(str(output_dir), "missing-yt-dlp"),
        }
        values.update(overrides)
        app = create_app(Settings(**values))
        test_client = TestClient(app)
        test_client.__enter__()
        if credentials is not None:
            test_client.auth = credentials
        clients.append(test_client)
        return test_client

    yield _make

    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """Create a test client for the FastAPI app with default test settings."""
    return make_client()
