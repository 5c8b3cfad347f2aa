"""Child-process supervision for the download tool.

The tool's stdout and stderr are read concurrently and turned into a single
sequence of text lines.  Reads return arbitrary chunks, so each stream gets
its own splitter that keeps an incomplete trailing line until the rest of it
arrives.

Lines pass through a bounded buffer between the pipes and the consumer (the
event stream).  The overflow policy decides what happens when the consumer is
slower than the tool:

* ``block``: stop reading the pipes until there is room.  The OS pipe then
  fills up and the tool itself stalls on write.  Nothing is lost.
* ``drop_oldest``: discard the oldest buffered line.
* ``drop_newest``: discard the incoming line.

Dropped lines are counted on the buffer and logged when the process ends.
"""
import asyncio
import codecs
import re
from collections import deque
from enum import Enum
from typing import AsyncIterator

from mediafetch.core.logging import get_logger
from mediafetch.services.errors import SpawnFailureError

logger = get_logger(__name__)

READ_CHUNK_SIZE = 4096

_LINE_BREAK_RE = re.compile(r"\r?\n")


class OverflowPolicy(str, Enum):
    """Behaviour of :class:`LineBuffer` when it is full."""

    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class LineSplitter:
    """Incremental UTF-8 decoder and ``\\r?\\n`` line splitter for one stream."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Return the complete, non-empty lines finished by ``chunk``."""
        text = self._pending + self._decoder.decode(chunk)
        parts = _LINE_BREAK_RE.split(text)
        self._pending = parts.pop()
        return [part for part in parts if part]

    def flush(self) -> list[str]:
        """Return whatever unterminated text is left at end of stream."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        text = text.rstrip("\r")
        return [text] if text else []


class LineBuffer:
    """Bounded single-consumer line queue with an explicit overflow policy."""

    def __init__(
        self,
        maxsize: int = 1000,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self.overflow = OverflowPolicy(overflow)
        self.dropped = 0
        self._lines: deque[str] = deque()
        self._closed = False
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, line: str) -> None:
        """Append a line, applying the overflow policy when full."""
        while len(self._lines) >= self.maxsize:
            if self.overflow is OverflowPolicy.DROP_NEWEST:
                self.dropped += 1
                return
            if self.overflow is OverflowPolicy.DROP_OLDEST:
                self._lines.popleft()
                self.dropped += 1
                break
            self._writable.clear()
            await self._writable.wait()

        self._lines.append(line)
        self._readable.set()

    def close(self) -> None:
        """Mark end of input; iteration stops once the buffer is empty."""
        self._closed = True
        self._readable.set()

    def __aiter__(self) -> "LineBuffer":
        return self

    async def __anext__(self) -> str:
        while not self._lines:
            if self._closed:
                raise StopAsyncIteration
            self._readable.clear()
            await self._readable.wait()

        line = self._lines.popleft()
        self._writable.set()
        return line


class ToolProcess:
    """A running download-tool process and its merged output lines."""

    def __init__(self, process: asyncio.subprocess.Process, buffer: LineBuffer) -> None:
        self.process = process
        self.buffer = buffer
        self._pump_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @classmethod
    async def spawn(
        cls,
        command: list[str],
        max_buffered_lines: int = 1000,
        overflow: OverflowPolicy = OverflowPolicy.BLOCK,
        cwd: str | None = None,
    ) -> "ToolProcess":
        """Start the tool with stdin closed and both output streams piped.

        Args:
            command: Executable followed by its arguments
            max_buffered_lines: Capacity of the line buffer
            overflow: Policy applied when the buffer is full
            cwd: Working directory of the child; relative paths it prints are
                relative to this directory

        Returns:
            Running process wrapper with its output pumps started

        Raises:
            SpawnFailureError: If the executable cannot be started
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=True,  # Prevent signal propagation
            )
        except OSError as e:
            logger.error(f"Failed to start {command[0]}: {e}")
            raise SpawnFailureError(f"Failed to start {command[0]}: {e.strerror or e}") from e

        runner = cls(process, LineBuffer(max_buffered_lines, overflow))
        runner._pump_task = asyncio.create_task(runner._pump_all())
        logger.debug(f"Started {command[0]} (pid {process.pid})")
        return runner

    async def _pump(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        splitter = LineSplitter()
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in splitter.feed(chunk):
                await self.buffer.put(line)
        for line in splitter.flush():
            await self.buffer.put(line)

    async def _pump_all(self) -> None:
        try:
            await asyncio.gather(
                self._pump(self.process.stdout),
                self._pump(self.process.stderr),
            )
        finally:
            self.buffer.close()

    def lines(self) -> AsyncIterator[str]:
        """Output lines of both streams, in the order they were read."""
        return self.buffer

    async def wait(self) -> int:
        """Wait for the output to be fully read and the process to exit."""
        if self._pump_task is not None:
            await self._pump_task
        code = await self.process.wait()
        if self.buffer.dropped:
            logger.warning(
                f"Dropped {self.buffer.dropped} output lines of pid {self.pid} "
                f"(policy: {self.buffer.overflow.value})"
            )
        return code

    def terminate(self) -> None:
        """Ask the process to stop (SIGTERM); no-op once it has exited."""
        if self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            pass

    async def drain(self) -> int:
        """Discard remaining output and reap the process."""
        async for _ in self.buffer:
            pass
        return await self.wait()
