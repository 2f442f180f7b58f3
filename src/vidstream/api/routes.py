"""API routes for listing, probing and streaming media."""

import shutil
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from vidstream import __version__
from vidstream.api.models import (
    ErrorResponse,
    FileListResponse,
    HealthResponse,
    MediaFileModel,
    MetadataResponse,
)
from vidstream.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid filename"},
    404: {"model": ErrorResponse, "description": "File not found"},
    500: {"model": ErrorResponse, "description": "Probe or stream failure"},
}


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint.

    Reports whether the media directory and the ffmpeg tools are available.
    """
    app_state = request.app.state.vidstream
    config = app_state.config

    checks = {
        "media_dir": config.media_dir.is_dir(),
        "ffprobe": shutil.which(config.transcode.ffprobe_bin) is not None,
        "ffmpeg": shutil.which(config.transcode.ffmpeg_bin) is not None,
    }

    return HealthResponse(
        status="ok" if all(checks.values()) else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        uptime_seconds=time.time() - app_state.start_time,
        checks=checks,
    )


@router.api_route("/api/files", methods=["GET", "HEAD"], response_model=FileListResponse)
async def list_files(request: Request):
    """List video files in the media directory."""
    scanner = request.app.state.vidstream.scanner

    files = await run_in_threadpool(scanner.scan)

    return FileListResponse(
        files=[MediaFileModel.from_media_file(f) for f in files],
        total=len(files),
    )


@router.api_route(
    "/api/metadata/{filename}",
    methods=["GET", "HEAD"],
    response_model=MetadataResponse,
    responses=ERROR_RESPONSES,
)
async def get_metadata(request: Request, filename: str):
    """Probe a video file and return its container and stream metadata."""
    engine = request.app.state.vidstream.engine

    result = await engine.describe(filename)

    return MetadataResponse.from_probe(result)


@router.api_route(
    "/api/stream/{filename}",
    methods=["GET", "HEAD"],
    responses={
        **ERROR_RESPONSES,
        206: {"description": "Partial content for a Range request"},
        416: {"description": "Range not satisfiable"},
        503: {"model": ErrorResponse, "description": "Transcode limit reached"},
    },
)
async def stream_file(
    request: Request,
    filename: str,
    transcode: str = Query(
        default="false", description="\"true\" remuxes with browser-compatible audio"
    ),
    start_time: float = Query(
        default=0.0,
        alias="startTime",
        allow_inf_nan=False,
        description="Seek offset in seconds (transcode only)",
    ),
    range_header: Optional[str] = Header(default=None, alias="range"),
):
    """Stream a video file directly, by byte range, or through the transcoder.

    Transcoding takes precedence over the Range header. Any transcode value
    other than "true" means a direct stream. HEAD answers with the same
    headers and opens nothing.
    """
    engine = request.app.state.vidstream.engine

    return await engine.deliver(
        filename,
        transcode=transcode == "true",
        start_time=start_time,
        range_header=range_header,
        head=request.method == "HEAD",
    )


@router.get("/api/subtitles/{filename}", responses=ERROR_RESPONSES)
async def get_subtitles(request: Request, filename: str):
    """Serve the sidecar subtitles for a video as WebVTT."""
    subtitles = request.app.state.vidstream.subtitles

    subtitle = await subtitles.load(filename)
    logger.debug(
        "Serving subtitles",
        file=str(subtitle.path),
        converted_from_srt=subtitle.converted,
    )

    return Response(content=subtitle.content, media_type="text/vtt")
