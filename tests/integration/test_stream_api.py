"""Integration tests for GET /api/stream/{filename}."""

import pytest
from fastapi.testclient import TestClient

from vidstream.api.app import create_app
from vidstream.config import Config, TranscodeConfig

MOVIE_SIZE = 1024


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def test_client(app):
    """Create a test client for the FastAPI app."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def movie(media_dir):
    return (media_dir / "movie.mp4").read_bytes()


class TestDirectStream:
    """Whole-file and byte-range delivery."""

    def test_whole_file(self, test_client, movie):
        response = test_client.get("/api/stream/movie.mp4")

        assert response.status_code == 200
        assert response.headers["content-length"] == str(MOVIE_SIZE)
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert "content-range" not in response.headers
        assert response.content == movie

    @pytest.mark.parametrize(
        "header,start,end",
        [
            ("bytes=0-99", 0, 99),
            ("bytes=1000-", 1000, 1023),
            ("bytes=-24", 1000, 1023),
            ("bytes=-5000", 0, 1023),
            ("bytes=1000-99999", 1000, 1023),
            ("bytes=1023-1023", 1023, 1023),
        ],
    )
    def test_range(self, test_client, movie, header, start, end):
        response = test_client.get("/api/stream/movie.mp4", headers={"Range": header})

        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes {start}-{end}/{MOVIE_SIZE}"
        assert response.headers["content-length"] == str(end - start + 1)
        assert response.headers["accept-ranges"] == "bytes"
        assert response.content == movie[start : end + 1]

    @pytest.mark.parametrize(
        "header",
        ["bytes=1024-", "bytes=2000-3000", "bytes=500-100", "bytes=-0", "items=0-10", "bytes=0-1,5-9"],
    )
    def test_unsatisfiable(self, test_client, header):
        """Unsatisfiable ranges get 416 with the size and no body."""
        response = test_client.get("/api/stream/movie.mp4", headers={"Range": header})

        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{MOVIE_SIZE}"
        assert response.content == b""

    @pytest.mark.parametrize("name", ["bad..name.mp4", "back%5Cslash.mp4"])
    def test_invalid_name(self, test_client, name):
        response = test_client.get(f"/api/stream/{name}")

        assert response.status_code == 400
        assert response.json()["error"] == "BAD_REQUEST"

    def test_not_found(self, test_client):
        response = test_client.get("/api/stream/missing.mp4", headers={"Range": "bytes=0-1"})

        assert response.status_code == 404
        assert response.json() == {
            "error": "NOT_FOUND",
            "message": "File not found",
            "statusCode": 404,
        }

    def test_directory(self, test_client):
        response = test_client.get("/api/stream/folder.mp4")

        assert response.status_code == 404

    def test_empty_file_whole(self, test_client, media_dir):
        (media_dir / "empty.mp4").write_bytes(b"")

        response = test_client.get("/api/stream/empty.mp4")

        assert response.status_code == 200
        assert response.headers["content-length"] == "0"
        assert response.content == b""

    def test_empty_file_range(self, test_client, media_dir):
        (media_dir / "empty.mp4").write_bytes(b"")

        response = test_client.get("/api/stream/empty.mp4", headers={"Range": "bytes=0-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */0"


class TestTranscodeStream:
    """Delivery through ffmpeg."""

    FRAGMENTED_MP4 = b"\x00\x00\x00\x18ftypiso5" + b"\x01" * 600

    def test_transcode(self, test_client, fake_subprocess, ffprobe_json):
        """Streams ffmpeg output without a Content-Length."""
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)
        fake_subprocess.respond("ffmpeg", stdout=self.FRAGMENTED_MP4)

        response = test_client.get("/api/stream/movie.mp4?transcode=true")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert "content-length" not in response.headers
        assert "content-range" not in response.headers
        assert response.content == self.FRAGMENTED_MP4

        cmd = fake_subprocess.calls_for("ffmpeg")[0]
        assert cmd[cmd.index("-c:v") + 1] == "copy"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert "-ss" not in cmd

    def test_transcode_with_start_time(self, test_client, fake_subprocess, ffprobe_json):
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)
        fake_subprocess.respond("ffmpeg", stdout=self.FRAGMENTED_MP4)

        response = test_client.get("/api/stream/movie.mp4?transcode=true&startTime=90.5")

        assert response.status_code == 200
        cmd = fake_subprocess.calls_for("ffmpeg")[0]
        assert cmd[cmd.index("-ss") + 1] == "90.5"
        assert cmd.index("-ss") < cmd.index("-i")

    def test_transcode_ignores_range(self, test_client, fake_subprocess, ffprobe_json):
        """Transcoding takes precedence over a Range header."""
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)
        fake_subprocess.respond("ffmpeg", stdout=self.FRAGMENTED_MP4)

        response = test_client.get(
            "/api/stream/movie.mp4?transcode=true", headers={"Range": "bytes=0-9"}
        )

        assert response.status_code == 200
        assert "content-range" not in response.headers
        assert response.content == self.FRAGMENTED_MP4

    def test_transcode_failure_before_output(self, test_client, fake_subprocess, ffprobe_json):
        """ffmpeg failing before any output is a 500 with the error shape."""
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)
        fake_subprocess.respond("ffmpeg", returncode=1, stderr=b"Invalid data found\n")

        response = test_client.get("/api/stream/movie.mp4?transcode=true")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "INTERNAL_ERROR"
        assert data["statusCode"] == 500

    def test_transcode_ffmpeg_missing(self, test_client, fake_subprocess, ffprobe_json):
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)

        response = test_client.get("/api/stream/movie.mp4?transcode=true")

        assert response.status_code == 500

    def test_transcode_not_found(self, test_client, fake_subprocess):
        response = test_client.get("/api/stream/missing.mp4?transcode=true")

        assert response.status_code == 404
        assert fake_subprocess.calls == []

    def test_transcode_releases_limit(self, app, test_client, fake_subprocess, ffprobe_json):
        """A finished transcode frees its admission slot."""
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)
        fake_subprocess.respond("ffmpeg", stdout=self.FRAGMENTED_MP4)

        test_client.get("/api/stream/movie.mp4?transcode=true")

        assert app.state.vidstream.limiter.active == 0

    def test_busy(self, media_dir, fake_subprocess, ffprobe_json):
        """Requests beyond the transcode limit get 503."""
        config = Config(media_dir=media_dir, transcode=TranscodeConfig(max_concurrent=1))
        app = create_app(config)
        app.state.vidstream.limiter.acquire()

        with TestClient(app) as client:
            response = client.get("/api/stream/movie.mp4?transcode=true")

        assert response.status_code == 503
        assert response.json()["error"] == "SERVICE_BUSY"
        assert fake_subprocess.calls == []

    def test_invalid_start_time(self, test_client):
        response = test_client.get("/api/stream/movie.mp4?transcode=true&startTime=soon")

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "VALIDATION_ERROR"
        assert data["statusCode"] == 422


class TestHeadRequests:
    """HEAD answers with the GET headers and opens nothing."""

    def test_head_whole_file(self, test_client, monkeypatch):
        opened = []
        monkeypatch.setattr(
            "vidstream.core.delivery.FileStream.open", lambda self: opened.append(self)
        )

        response = test_client.head("/api/stream/movie.mp4")

        assert response.status_code == 200
        assert response.headers["content-length"] == str(MOVIE_SIZE)
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == b""
        assert opened == []

    def test_head_range(self, test_client):
        response = test_client.head("/api/stream/movie.mp4", headers={"Range": "bytes=100-199"})

        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 100-199/{MOVIE_SIZE}"
        assert response.headers["content-length"] == "100"
        assert response.content == b""

    def test_head_unsatisfiable(self, test_client):
        response = test_client.head("/api/stream/movie.mp4", headers={"Range": "bytes=5000-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{MOVIE_SIZE}"

    def test_head_not_found(self, test_client):
        response = test_client.head("/api/stream/missing.mp4")

        assert response.status_code == 404

    def test_head_transcode_spawns_nothing(self, app, test_client, fake_subprocess):
        """HEAD on a transcode neither probes nor starts ffmpeg."""
        response = test_client.head("/api/stream/movie.mp4?transcode=true")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert "content-length" not in response.headers
        assert fake_subprocess.calls == []
        assert app.state.vidstream.limiter.active == 0

    def test_head_file_list(self, test_client):
        response = test_client.head("/api/files")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"

    def test_head_metadata(self, test_client, fake_subprocess, ffprobe_json):
        fake_subprocess.respond("ffprobe", stdout=ffprobe_json)

        response = test_client.head("/api/metadata/movie.mp4")

        assert response.status_code == 200


class TestQueryParsing:
    """Query parameter handling for the stream route."""

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan", "Infinity"])
    def test_non_finite_start_time(self, test_client, fake_subprocess, value):
        """Non-finite seek offsets never reach ffmpeg."""
        response = test_client.get(f"/api/stream/movie.mp4?transcode=true&startTime={value}")

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert fake_subprocess.calls == []

    @pytest.mark.parametrize("value", ["foo", "1", "TRUE", "false", ""])
    def test_transcode_other_than_true_streams_directly(
        self, test_client, fake_subprocess, movie, value
    ):
        response = test_client.get(f"/api/stream/movie.mp4?transcode={value}")

        assert response.status_code == 200
        assert response.headers["content-length"] == str(MOVIE_SIZE)
        assert response.content == movie
        assert fake_subprocess.calls == []
