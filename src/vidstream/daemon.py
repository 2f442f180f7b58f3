"""Server runner for vidstream."""

import sys

import uvicorn

from vidstream.api.app import create_app
from vidstream.config import Config
from vidstream.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


class Server:
    """Runs the FastAPI app under uvicorn."""

    def __init__(self, config: Config):
        """Initialize server.

        Args:
            config: Application configuration
        """
        self.config = config
        self.app = create_app(config)

    def run(self):
        """Run the server until interrupted.

        uvicorn installs its own SIGINT/SIGTERM handlers and drains open
        connections on shutdown, which closes any running transcodes.
        """
        logger.info(
            "Starting server",
            host=self.config.api.host,
            port=self.config.api.port,
            media_dir=str(self.config.media_dir),
        )

        try:
            uvicorn.run(
                self.app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_level=self.config.logging.level,
                access_log=False,  # RequestLoggingMiddleware logs API requests
            )
        except KeyboardInterrupt:
            logger.info("Server interrupted by user")
        except Exception as e:
            logger.exception("Server error", error=str(e))
            sys.exit(1)
        finally:
            logger.info("Server stopped")


def start_server(config: Config):
    """Configure logging and run the server.

    Args:
        config: Application configuration
    """
    setup_logging(config.logging)

    server = Server(config)
    server.run()
