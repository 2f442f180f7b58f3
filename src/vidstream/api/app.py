"""FastAPI application for vidstream."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from vidstream import __version__
from vidstream.api import routes
from vidstream.api.middleware import RequestLoggingMiddleware
from vidstream.config import Config
from vidstream.core.delivery import DeliveryEngine
from vidstream.core.errors import Unsatisfiable, VidstreamError
from vidstream.core.probe import MetadataProbe
from vidstream.core.scanner import MediaScanner
from vidstream.core.subtitles import SubtitleLocator
from vidstream.core.transcoder import TranscodeLimiter, TranscodePipeline
from vidstream.utils.logger import get_logger
from vidstream.utils.paths import PathResolver

logger = get_logger(__name__)


class AppState:
    """Application state container.

    Everything here is either immutable or, for the transcode limiter, only
    touched from the event loop.
    """

    def __init__(self, config: Config):
        self.config = config
        self.start_time = time.time()

        resolver = PathResolver(config.media_dir)
        probe = MetadataProbe(config.transcode)

        self.limiter = TranscodeLimiter(config.transcode.max_concurrent)
        self.scanner = MediaScanner(config.media_dir)
        self.subtitles = SubtitleLocator(resolver)
        self.engine = DeliveryEngine(
            config,
            resolver=resolver,
            probe=probe,
            transcoder=TranscodePipeline(config, probe, self.limiter),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = app.state.vidstream.config

    logger.info(
        "Starting vidstream",
        version=__version__,
        media_dir=str(config.media_dir),
        hwaccel=config.hwaccel,
        max_concurrent_transcodes=config.transcode.max_concurrent,
    )

    if not config.media_dir.is_dir():
        logger.warning(
            "Media directory does not exist; set MEDIA_DIR or media_dir in the config",
            media_dir=str(config.media_dir),
        )

    yield

    logger.info("Shutting down vidstream", active_transcodes=app.state.vidstream.limiter.active)


def error_response(exc: VidstreamError) -> Response:
    """Render a delivery error.

    416 carries only the Content-Range header; every other kind gets the JSON payload.
    """
    if isinstance(exc, Unsatisfiable):
        return Response(
            status_code=exc.status_code,
            headers={"Content-Range": f"bytes */{exc.size}"},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(config: Config) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Application configuration

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="vidstream",
        description="Stream local video files with on-the-fly audio transcoding",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["Range", "Content-Type", "Accept"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    app.state.vidstream = AppState(config)

    @app.exception_handler(VidstreamError)
    async def vidstream_exception_handler(request: Request, exc: VidstreamError):
        """Map delivery errors to their HTTP status."""
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                path=request.url.path,
                error_kind=exc.kind,
                error=exc.message,
            )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle query/header validation errors."""
        logger.warning(
            "Request validation failed",
            path=request.url.path,
            errors=exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "VALIDATION_ERROR",
                "message": "; ".join(
                    f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
                ),
                "statusCode": status.HTTP_422_UNPROCESSABLE_ENTITY,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render routing errors (unknown path, wrong method) in the error shape."""
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "The requested resource was not found"
            kind = "NOT_FOUND"
        else:
            message = str(exc.detail)
            kind = "BAD_REQUEST" if exc.status_code < 500 else "INTERNAL_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": kind, "message": message, "statusCode": exc.status_code},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": str(exc) if config.api.debug else "Internal server error",
                "statusCode": status.HTTP_500_INTERNAL_SERVER_ERROR,
            },
        )

    app.include_router(routes.router)

    logger.debug(
        "FastAPI application created",
        version=__version__,
        api_port=config.api.port,
        allowed_origins=config.api.allowed_origins,
    )

    return app
