"""Pydantic models for API responses.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vidstream.models.media import MediaFile, ProbeResult, StreamDescriptor


class APIModel(BaseModel):
    """Base model serializing to camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaFileModel(APIModel):
    """A video file available for streaming."""

    filename: str
    path: str
    size: int
    extension: str
    created_at: datetime
    modified_at: datetime

    @classmethod
    def from_media_file(cls, media_file: MediaFile) -> "MediaFileModel":
        return cls(
            filename=media_file.filename,
            path=media_file.path,
            size=media_file.size,
            extension=media_file.extension,
            created_at=media_file.created_at,
            modified_at=media_file.modified_at,
        )


class FileListResponse(APIModel):
    """Response for GET /api/files."""

    files: List[MediaFileModel]
    total: int


class StreamModel(APIModel):
    """Raw per-stream metadata."""

    index: int
    codec_type: str
    codec_name: str
    codec_long_name: str
    profile: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    aspect_ratio: Optional[str] = None
    frame_rate: Optional[str] = None
    bit_rate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    language: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_descriptor(cls, stream: StreamDescriptor) -> "StreamModel":
        return cls(
            index=stream.index,
            codec_type=stream.type.value,
            codec_name=stream.codec_name,
            codec_long_name=stream.codec_long_name,
            profile=stream.profile,
            width=stream.width,
            height=stream.height,
            aspect_ratio=stream.aspect_ratio,
            frame_rate=stream.frame_rate,
            bit_rate=stream.bit_rate,
            sample_rate=stream.sample_rate,
            channels=stream.channels,
            channel_layout=stream.channel_layout,
            language=stream.language,
            title=stream.title,
        )


class VideoTrackModel(APIModel):
    """Primary video track."""

    index: int
    codec: str
    width: int
    height: int
    frame_rate: Optional[float] = None
    bit_rate: Optional[int] = None


class AudioTrackModel(APIModel):
    """Audio track summary."""

    index: int
    codec: str
    channels: int = Field(..., description="Channel count (2 when ffprobe doesn't say)")
    channel_layout: Optional[str] = None
    sample_rate: Optional[int] = None
    bit_rate: Optional[int] = None
    language: Optional[str] = None
    title: Optional[str] = None


class SubtitleTrackModel(APIModel):
    """Embedded subtitle track summary."""

    index: int
    codec: str
    language: Optional[str] = None
    title: Optional[str] = None


class MetadataResponse(APIModel):
    """Response for GET /api/metadata/{filename}."""

    filename: str
    format: str
    duration: float
    size: int
    bit_rate: int
    video: Optional[VideoTrackModel] = None
    audio: List[AudioTrackModel] = Field(default_factory=list)
    subtitles: List[SubtitleTrackModel] = Field(default_factory=list)
    streams: List[StreamModel] = Field(default_factory=list)
    has_multichannel_audio: bool = False

    @classmethod
    def from_probe(cls, result: ProbeResult) -> "MetadataResponse":
        video_stream = result.video_stream
        video = None
        if video_stream is not None:
            video = VideoTrackModel(
                index=video_stream.index,
                codec=video_stream.codec_name,
                width=video_stream.width,
                height=video_stream.height,
                frame_rate=video_stream.frame_rate_value,
                bit_rate=video_stream.bit_rate,
            )

        return cls(
            filename=result.filename,
            format=result.format_name,
            duration=result.duration,
            size=result.size,
            bit_rate=result.bit_rate,
            video=video,
            audio=[
                AudioTrackModel(
                    index=s.index,
                    codec=s.codec_name,
                    channels=s.channels or 2,
                    channel_layout=s.channel_layout,
                    sample_rate=s.sample_rate,
                    bit_rate=s.bit_rate,
                    language=s.language,
                    title=s.title,
                )
                for s in result.audio_streams
            ],
            subtitles=[
                SubtitleTrackModel(
                    index=s.index,
                    codec=s.codec_name,
                    language=s.language,
                    title=s.title,
                )
                for s in result.subtitle_streams
            ],
            streams=[StreamModel.from_descriptor(s) for s in result.streams],
            has_multichannel_audio=result.has_multichannel_audio,
        )


class ErrorResponse(BaseModel):
    """Body of every error response."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(..., description="Error kind code, e.g. NOT_FOUND")
    message: str
    status_code: int = Field(..., alias="statusCode")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    version: str
    uptime_seconds: float
    checks: dict[str, bool]
