"""vidstream - stream local video files over HTTP with on-the-fly audio transcoding."""

__version__ = "0.1.0"
