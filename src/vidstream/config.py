"""Configuration management for vidstream."""

import os
import re
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8080",
]


class APIConfig(BaseModel):
    """API server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=3000, description="API port")
    allowed_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS),
        description="Origins allowed by CORS",
    )
    debug: bool = Field(default=False, description="Expose exception text in 500 responses")


class TranscodeConfig(BaseModel):
    """ffmpeg/ffprobe invocation and streaming configuration."""

    model_config = ConfigDict(frozen=True)

    ffmpeg_bin: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffprobe_bin: str = Field(default="ffprobe", description="ffprobe executable")
    audio_codec: str = Field(default="aac", description="Target codec for re-encoded audio")
    audio_channels: int = Field(default=6, description="Channel count for re-encoded audio")
    audio_bitrate: str = Field(default="384k", description="Bitrate for re-encoded audio")
    chunk_size: int = Field(default=64 * 1024, description="Read size for streamed output")
    kill_grace_seconds: float = Field(
        default=5.0, description="Time between SIGTERM and SIGKILL on cancelled transcodes"
    )
    max_concurrent: Optional[int] = Field(
        default=None, description="Maximum simultaneous transcodes (None = unlimited)"
    )
    probe_timeout_seconds: Optional[float] = Field(
        default=None, description="ffprobe timeout (None = wait indefinitely)"
    )
    on_probe_failure: Literal["reencode", "fail"] = Field(
        default="reencode", description="Audio action when the probe is inconclusive"
    )

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size is positive."""
        if v <= 0:
            raise ValueError("chunk_size must be positive")
        return v

    @field_validator("max_concurrent")
    @classmethod
    def validate_max_concurrent(cls, v: Optional[int]) -> Optional[int]:
        """Validate transcode limit is at least one when set."""
        if v is not None and v < 1:
            raise ValueError("max_concurrent must be >= 1 (omit it for no limit)")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    format: str = Field(default="text", description="Log format (json or text)")
    level: str = Field(default="info", description="Log level")
    output: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        if v.lower() not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError("Invalid log level")
        return v.lower()


class Config(BaseModel):
    """Main configuration model.

    Instances are immutable and handed to each component at construction time.
    """

    model_config = ConfigDict(frozen=True)

    media_dir: Path = Field(default=Path("./media"), description="Root media directory")
    hwaccel: Optional[str] = Field(default=None, description="ffmpeg -hwaccel hint")
    api: APIConfig = Field(default_factory=APIConfig, description="API configuration")
    transcode: TranscodeConfig = Field(
        default_factory=TranscodeConfig, description="Transcode configuration"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @field_validator("media_dir")
    @classmethod
    def validate_media_dir(cls, v: Path) -> Path:
        """Make the media directory absolute."""
        return Path(v).expanduser().absolute()

    @field_validator("hwaccel")
    @classmethod
    def validate_hwaccel(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty hint as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        # Substitute environment variables
        raw_config = cls._substitute_env_vars(raw_config)

        return cls(**raw_config)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Create configuration from MEDIA_DIR, HWACCEL and PORT variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Config instance with environment overrides applied to defaults
        """
        env = os.environ if environ is None else environ
        raw: dict[str, Any] = {}

        if env.get("MEDIA_DIR"):
            raw["media_dir"] = env["MEDIA_DIR"]
        if env.get("HWACCEL"):
            raw["hwaccel"] = env["HWACCEL"]
        if env.get("PORT"):
            raw["api"] = {"port": int(env["PORT"])}

        return cls(**raw)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Replaces ${VAR_NAME} with os.environ['VAR_NAME'].
        """
        if isinstance(obj, dict):
            return {key: Config._substitute_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [Config._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            pattern = r"\$\{([^}]+)\}"

            def replace_var(match):
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable '{var_name}' not found "
                        f"(referenced in configuration)"
                    )
                return value

            return re.sub(pattern, replace_var, obj)
        else:
            return obj


def load_config(path: Optional[str | Path] = None) -> Config:
    """Load configuration from file, or from the environment over defaults.

    Args:
        path: Optional path to configuration file

    Returns:
        Config instance
    """
    if path is None:
        return Config.from_env()

    return Config.from_yaml(path)
