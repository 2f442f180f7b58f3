"""Per-request delivery: whole file, byte range, or live transcode."""

import mimetypes
import os
import stat
from pathlib import Path
from typing import Optional

import anyio
from starlette.responses import Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from vidstream.config import Config
from vidstream.core.errors import NotFound, StreamFailure
from vidstream.core.probe import MetadataProbe
from vidstream.core.ranges import parse_range
from vidstream.core.streams import ByteSource, FileStream
from vidstream.core.transcoder import TranscodeLimiter, TranscodePipeline
from vidstream.models.media import ProbeResult
from vidstream.utils.logger import get_logger
from vidstream.utils.paths import PathResolver

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"


class ClosingStreamingResponse(StreamingResponse):
    """StreamingResponse that always closes its byte source.

    The source is closed however the response ends: completion, a write
    error, or the client going away. Closing is shielded from cancellation
    so a transcoder is always reaped.
    """

    def __init__(self, source: ByteSource, **kwargs):
        super().__init__(source, **kwargs)
        self.source = source

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.source.close()


def guess_content_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    if mime and mime.startswith("video/"):
        return mime
    return DEFAULT_CONTENT_TYPE


class DeliveryEngine:
    """Resolve a requested file and build the response that delivers it."""

    def __init__(
        self,
        config: Config,
        resolver: Optional[PathResolver] = None,
        probe: Optional[MetadataProbe] = None,
        transcoder: Optional[TranscodePipeline] = None,
        limiter: Optional[TranscodeLimiter] = None,
    ):
        """Initialize delivery engine.

        Args:
            config: Application configuration
            resolver: Filename resolver (built from config.media_dir if omitted)
            probe: Metadata probe (built from config if omitted)
            transcoder: Transcode pipeline (built from config if omitted)
            limiter: Transcode admission limiter, used when transcoder is built here
        """
        self.config = config
        self.chunk_size = config.transcode.chunk_size
        self.resolver = resolver or PathResolver(config.media_dir)
        self.probe = probe or MetadataProbe(config.transcode)
        self.transcoder = transcoder or TranscodePipeline(config, self.probe, limiter)

    def locate(self, filename: str) -> tuple[Path, os.stat_result]:
        """Resolve a filename to an existing regular file.

        Raises:
            InvalidName: If the filename is unsafe
            NotFound: If nothing regular exists at the resolved path
        """
        path = self.resolver.resolve(filename)
        try:
            st = path.stat()
        except OSError:
            raise NotFound() from None
        if not stat.S_ISREG(st.st_mode):
            raise NotFound()
        return path, st

    async def describe(self, filename: str) -> ProbeResult:
        """Probe a file by name for the metadata endpoint.

        Raises:
            InvalidName, NotFound, ProbeFailure
        """
        path, _ = self.locate(filename)
        return await self.probe.probe(path)

    async def deliver(
        self,
        filename: str,
        transcode: bool = False,
        start_time: float = 0.0,
        range_header: Optional[str] = None,
        head: bool = False,
    ) -> Response:
        """Build the response for a stream request.

        Transcoding takes precedence over a Range header. All errors raised
        here happen before any header is sent.

        Args:
            filename: Untrusted filename from the URL
            transcode: Remux through ffmpeg with audio fix-up
            start_time: Seek offset in seconds (transcode only)
            range_header: Raw Range header, if any
            head: Answer with headers only; nothing is opened or spawned

        Returns:
            Streaming response owning an opened byte source, or a bodiless
            response for HEAD

        Raises:
            InvalidName, NotFound, Unsatisfiable, ProbeFailure, StreamFailure, ServiceBusy
        """
        path, st = self.locate(filename)

        if transcode:
            if head:
                return _head_response(200, {}, DEFAULT_CONTENT_TYPE, with_length=False)
            return await self._deliver_transcode(path, start_time)

        size = st.st_size
        headers = {"Accept-Ranges": "bytes"}

        if range_header is not None:
            byte_range = parse_range(range_header, size)
            start, length, status_code = byte_range.start, byte_range.length, 206
            headers["Content-Range"] = byte_range.content_range
        else:
            start, length, status_code = 0, size, 200

        headers["Content-Length"] = str(length)

        if head:
            return _head_response(status_code, headers, guess_content_type(path))

        source = FileStream(path, start, length, self.chunk_size)
        try:
            await source.open()
        except OSError as e:
            logger.error("Failed to open file", file=str(path), error=str(e))
            raise StreamFailure() from e

        logger.debug(
            "Serving file",
            file=str(path),
            status=status_code,
            start=start,
            length=length,
            size=size,
        )

        return ClosingStreamingResponse(
            source,
            status_code=status_code,
            headers=headers,
            media_type=guess_content_type(path),
        )

    async def _deliver_transcode(self, path: Path, start_time: float) -> StreamingResponse:
        source = await self.transcoder.open(path, max(0.0, start_time))
        # No Content-Length: the server falls back to chunked transfer.
        return ClosingStreamingResponse(
            source,
            status_code=200,
            media_type=DEFAULT_CONTENT_TYPE,
        )


def _head_response(
    status_code: int, headers: dict, media_type: str, with_length: bool = True
) -> Response:
    response = Response(status_code=status_code, headers=headers, media_type=media_type)
    if not with_length:
        # Transcoded output has no known length; Response would claim 0.
        del response.headers["content-length"]
    return response
