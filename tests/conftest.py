"""Shared pytest fixtures for vidstream tests."""

import asyncio
import json

import pytest

from vidstream.config import Config, TranscodeConfig

MOVIE_BYTES = bytes(range(256)) * 4  # 1024 bytes


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process.

    Output is fed up front. With ``hang=True`` stdout stays open until the
    process is terminated; with ``ignore_sigterm=True`` only kill() ends it.
    """

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        returncode: int = 0,
        hang: bool = False,
        ignore_sigterm: bool = False,
    ):
        self.pid = 4242
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.ignore_sigterm = ignore_sigterm
        self._exited = asyncio.Event()

        self.stdout = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()

        if not hang:
            self.stdout.feed_eof()
            self._exit(returncode)

    def _exit(self, code: int):
        self.returncode = code
        if not self.stdout.at_eof():
            self.stdout.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    async def communicate(self):
        out = await self.stdout.read()
        err = await self.stderr.read()
        await self.wait()
        return out, err

    def terminate(self):
        self.terminated = True
        if self.returncode is None and not self.ignore_sigterm:
            self._exit(-15)

    def kill(self):
        self.killed = True
        if self.returncode is None:
            self._exit(-9)


class SubprocessRecorder:
    """Replacement for asyncio.create_subprocess_exec keyed by program name."""

    def __init__(self):
        self.calls = []
        self.processes = []
        self.responses = {}

    def respond(self, program: str, **process_kwargs):
        """Configure the FakeProcess returned when ``program`` is spawned."""
        self.responses[program] = process_kwargs

    def calls_for(self, program: str):
        return [cmd for cmd in self.calls if cmd[0] == program]

    async def __call__(self, *cmd, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] not in self.responses:
            raise FileNotFoundError(f"No such file or directory: '{cmd[0]}'")
        process = FakeProcess(**self.responses[cmd[0]])
        self.processes.append(process)
        return process


@pytest.fixture
def fake_subprocess(monkeypatch):
    """Intercept every subprocess spawned through asyncio."""
    recorder = SubprocessRecorder()
    monkeypatch.setattr(asyncio, "create_subprocess_exec", recorder)
    return recorder


@pytest.fixture
def media_dir(tmp_path):
    """Create a media directory with a few files."""
    root = tmp_path / "media"
    root.mkdir()
    (root / "movie.mp4").write_bytes(MOVIE_BYTES)
    (root / "show.MKV").write_bytes(b"\x1a\x45\xdf\xa3" + b"\0" * 60)
    (root / "notes.txt").write_text("not a video")
    (root / "movie.srt").write_text(
        "1\n00:00:01,000 --> 00:00:02,500\nHello\n\n2\n00:00:03,000 --> 00:00:04,000\nWorld\n"
    )
    (root / "folder.mp4").mkdir()
    return root


@pytest.fixture
def config(media_dir):
    """Create a test configuration rooted at the media directory."""
    return Config(
        media_dir=media_dir,
        transcode=TranscodeConfig(chunk_size=256, kill_grace_seconds=0.5),
    )


@pytest.fixture
def ffprobe_report():
    """A typical ffprobe report: H.264 video, AC-3 5.1 audio, SRT subtitles."""
    return {
        "streams": [
            {
                "index": 0,
                "codec_name": "h264",
                "codec_long_name": "H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10",
                "profile": "High",
                "codec_type": "video",
                "width": 1920,
                "height": 1080,
                "display_aspect_ratio": "16:9",
                "r_frame_rate": "24000/1001",
                "bit_rate": "8000000",
            },
            {
                "index": 1,
                "codec_name": "ac3",
                "codec_long_name": "ATSC A/52A (AC-3)",
                "codec_type": "audio",
                "sample_rate": "48000",
                "channels": 6,
                "channel_layout": "5.1(side)",
                "bit_rate": "640000",
                "tags": {"language": "eng", "title": "Surround"},
            },
            {
                "index": 2,
                "codec_name": "subrip",
                "codec_long_name": "SubRip subtitle",
                "codec_type": "subtitle",
                "tags": {"language": "spa"},
            },
            {
                "index": 3,
                "codec_name": "bin_data",
                "codec_type": "attachment",
            },
        ],
        "format": {
            "filename": "/media/movie.mkv",
            "format_name": "matroska,webm",
            "duration": "5400.123000",
            "size": "4500000000",
            "bit_rate": "6666000",
        },
    }


@pytest.fixture
def ffprobe_json(ffprobe_report):
    """ffprobe report encoded as process output."""
    return json.dumps(ffprobe_report).encode()
