"""Async byte sources for streamed responses.

Both sources are opened before response headers go out, so a failure to open
can still become an error status. Each must be closed exactly once; closing is
idempotent and is what releases the file handle or the child process when a
client disconnects.
"""

import asyncio
from collections import deque
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import aiofiles

from vidstream.utils.logger import get_logger

logger = get_logger(__name__)

STDERR_TAIL_LINES = 20


class FileStream:
    """Read a byte span of a file in chunks."""

    def __init__(self, path: Path, start: int, length: int, chunk_size: int):
        self.path = path
        self.start = start
        self.length = length
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self._file = None
        self._closed = False

    async def open(self) -> "FileStream":
        """Open the file and seek to the start offset.

        Raises:
            OSError: If the file cannot be opened
        """
        self._file = await aiofiles.open(self.path, "rb")
        if self.start:
            await self._file.seek(self.start)
        return self

    async def __aiter__(self) -> AsyncIterator[bytes]:
        remaining = self.length
        while remaining > 0:
            chunk = await self._file.read(min(self.chunk_size, remaining))
            if not chunk:
                # File shrank underneath us; the declared length can't be honored.
                logger.warning(
                    "File ended early",
                    file=str(self.path),
                    expected=self.length,
                    sent=self.bytes_sent,
                )
                break
            remaining -= len(chunk)
            self.bytes_sent += len(chunk)
            yield chunk

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._file is not None:
            await self._file.close()
        logger.debug(
            "File stream closed",
            file=str(self.path),
            bytes_sent=self.bytes_sent,
            complete=self.bytes_sent == self.length,
        )


class ProcessStream:
    """Stream stdout of a child process.

    stderr is drained in the background into a short tail used for error
    reporting, so a chatty child never blocks on a full pipe.
    """

    def __init__(
        self,
        cmd: list[str],
        chunk_size: int,
        kill_grace_seconds: float,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.cmd = cmd
        self.chunk_size = chunk_size
        self.kill_grace_seconds = kill_grace_seconds
        self.on_close = on_close
        self.process: Optional[asyncio.subprocess.Process] = None
        self.bytes_sent = 0
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_task: Optional[asyncio.Task] = None
        self._first_chunk = b""
        self._closed = False

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode if self.process else None

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    async def start(self) -> bytes:
        """Spawn the process and wait for its first chunk of output.

        Returns:
            The first chunk, or b"" if the process exited without output

        Raises:
            OSError: If the process cannot be launched
        """
        self.process = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._stderr_task = asyncio.create_task(self._drain_stderr())

        # Hold the first chunk back so an early failure can still become a 500
        self._first_chunk = await self.process.stdout.read(self.chunk_size)
        if not self._first_chunk:
            # EOF before any output: reap the process so returncode is set
            await self.process.wait()
            await self._stderr_task
        return self._first_chunk

    async def _drain_stderr(self) -> None:
        async for line in self.process.stderr:
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        # Primed chunk from start() goes out first
        if self._first_chunk:
            chunk, self._first_chunk = self._first_chunk, b""
            self.bytes_sent += len(chunk)
            yield chunk

        while True:
            chunk = await self.process.stdout.read(self.chunk_size)
            if not chunk:
                break
            self.bytes_sent += len(chunk)
            yield chunk

        returncode = await self.process.wait()
        if returncode != 0:
            # Headers are already out; all we can do is end the body early.
            logger.error(
                "Process failed mid-stream",
                cmd=self.cmd[0],
                returncode=returncode,
                bytes_sent=self.bytes_sent,
                stderr=self.stderr_tail,
            )

    async def close(self) -> None:
        """Terminate the process if still running and reap it.

        Sends SIGTERM, then SIGKILL if the process outlives the grace period.
        """
        if self._closed:
            return
        self._closed = True

        try:
            # Still running means the client went away or the body was cut short
            if self.process is not None and self.process.returncode is None:
                logger.info(
                    "Terminating process",
                    cmd=self.cmd[0],
                    pid=self.process.pid,
                    bytes_sent=self.bytes_sent,
                )
                try:
                    self.process.terminate()
                    await asyncio.wait_for(self.process.wait(), timeout=self.kill_grace_seconds)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    logger.warning(
                        "Process ignored SIGTERM, killing",
                        pid=self.process.pid,
                        grace_seconds=self.kill_grace_seconds,
                    )
                    self.process.kill()
                    await self.process.wait()
        finally:
            if self._stderr_task is not None and not self._stderr_task.done():
                self._stderr_task.cancel()
            logger.info(
                "Process stream closed",
                cmd=self.cmd[0],
                returncode=self.returncode,
                bytes_sent=self.bytes_sent,
            )
            if self.on_close is not None:
                self.on_close()


ByteSource = FileStream | ProcessStream
