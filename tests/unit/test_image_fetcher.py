"""
Unit tests for the remote image fetcher.

Tests cover:
- ImageFetcher.fetch: success, HTTP errors, size and content-type checks
- is_remote_image_url: scheme/netloc detection
- build_http_client: timeout and headers from settings
"""

import httpx
import pytest

from mailer.config import Settings
from mailer.exceptions import ImageFetchError
from mailer.tools.images import (
    FetchedImage,
    ImageFetcher,
    build_http_client,
    is_remote_image_url,
)
from tests.utils.fakes import JPEG_BYTES, PNG_BYTES

HOST = "https://img.example.com"


def _fetcher_for(handler, max_bytes: int = 1024) -> ImageFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ImageFetcher(client, max_bytes=max_bytes)


# ============================================================================
# ImageFetcher Tests
# ============================================================================

class TestImageFetcherSuccess:
    """Tests for successful downloads."""

    def test_fetch_png_strips_content_type_parameters(self, http_fetcher):
        image = http_fetcher.fetch(f"{HOST}/newsletters/logo.png")

        assert image == FetchedImage(content=PNG_BYTES, content_type="image/png")
        assert image.size_bytes == len(PNG_BYTES)

    def test_fetch_jpeg(self, http_fetcher):
        image = http_fetcher.fetch(f"{HOST}/newsletters/background.jpg")

        assert image.content == JPEG_BYTES
        assert image.content_type == "image/jpeg"

    def test_octet_stream_falls_back_to_url_guess(self):
        """CDNs serving application/octet-stream still yield an image type."""
        fetcher = _fetcher_for(
            lambda request: httpx.Response(
                200,
                content=JPEG_BYTES,
                headers={"content-type": "application/octet-stream"},
            )
        )

        image = fetcher.fetch(f"{HOST}/photo.jpg")

        assert image.content_type == "image/jpeg"

    def test_missing_content_type_falls_back_to_url_guess(self):
        fetcher = _fetcher_for(lambda request: httpx.Response(200, content=PNG_BYTES))

        image = fetcher.fetch(f"{HOST}/icon.png")

        assert image.content_type == "image/png"


class TestImageFetcherFailures:
    """Every failure surfaces as ImageFetchError."""

    def test_http_404(self, http_fetcher):
        with pytest.raises(ImageFetchError) as exc_info:
            http_fetcher.fetch(f"{HOST}/newsletters/missing.png")

        assert exc_info.value.status_code == 404
        assert "HTTP 404" in exc_info.value.message

    def test_non_image_content(self, http_fetcher):
        with pytest.raises(ImageFetchError) as exc_info:
            http_fetcher.fetch(f"{HOST}/page.html")

        assert "Not an image" in exc_info.value.message

    def test_body_over_size_limit(self, http_fetcher):
        with pytest.raises(ImageFetchError) as exc_info:
            http_fetcher.fetch(f"{HOST}/huge.png")

        assert "exceeds max size" in exc_info.value.message

    def test_oversized_stream_abandoned_early(self):
        """Chunked bodies stop being read once they pass the limit."""
        served = []

        def chunks():
            for _ in range(100):
                served.append(512)
                yield b"x" * 512

        fetcher = _fetcher_for(
            lambda request: httpx.Response(200, content=chunks(), headers={"content-type": "image/png"})
        )

        with pytest.raises(ImageFetchError, match="exceeds max size"):
            fetcher.fetch(f"{HOST}/endless.png")

        assert len(served) == 3

    def test_declared_length_over_limit_rejected(self):
        served = []

        def chunks():
            served.append(1)
            yield PNG_BYTES

        fetcher = _fetcher_for(
            lambda request: httpx.Response(
                200,
                content=chunks(),
                headers={"content-type": "image/png", "content-length": "999999"},
            )
        )

        with pytest.raises(ImageFetchError, match="999999 > 1024"):
            fetcher.fetch(f"{HOST}/declared.png")

        assert served == []

    def test_empty_body(self):
        fetcher = _fetcher_for(
            lambda request: httpx.Response(200, content=b"", headers={"content-type": "image/png"})
        )

        with pytest.raises(ImageFetchError) as exc_info:
            fetcher.fetch(f"{HOST}/empty.png")

        assert "Empty response body" in exc_info.value.message

    def test_unknown_type_without_extension(self):
        fetcher = _fetcher_for(
            lambda request: httpx.Response(
                200,
                content=PNG_BYTES,
                headers={"content-type": "application/octet-stream"},
            )
        )

        with pytest.raises(ImageFetchError):
            fetcher.fetch(f"{HOST}/download")

    @pytest.mark.parametrize("error_cls", [httpx.ConnectError, httpx.ReadTimeout])
    def test_transport_errors(self, error_cls):
        def handler(request):
            raise error_cls("network down", request=request)

        fetcher = _fetcher_for(handler)

        with pytest.raises(ImageFetchError) as exc_info:
            fetcher.fetch(f"{HOST}/logo.png")

        assert exc_info.value.url == f"{HOST}/logo.png"
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.HTTPError)

    @pytest.mark.parametrize(
        "url",
        ["cid:image_1", "data:image/png;base64,AAAA", "/relative.png", ""],
    )
    def test_non_remote_url_makes_no_request(self, url):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=PNG_BYTES)

        fetcher = _fetcher_for(handler)

        with pytest.raises(ImageFetchError):
            fetcher.fetch(url)

        assert requests == []


# ============================================================================
# Helper Tests
# ============================================================================

class TestIsRemoteImageUrl:
    """Tests for is_remote_image_url."""

    @pytest.mark.parametrize(
        "url",
        [
            "http://img.example.com/a.png",
            "https://img.example.com/a.png",
            "HTTPS://IMG.EXAMPLE.COM/A.PNG",
            "  https://img.example.com/padded.png  ",
        ],
    )
    def test_remote(self, url):
        assert is_remote_image_url(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "cid:image_1",
            "data:image/gif;base64,R0lGOD",
            "images/a.png",
            "/images/a.png",
            "//cdn.example.com/a.png",
            "ftp://files.example.com/a.png",
            "https://",
        ],
    )
    def test_not_remote(self, url):
        assert is_remote_image_url(url) is False


class TestBuildHttpClient:
    """Tests for build_http_client."""

    def test_client_uses_settings(self):
        settings = Settings(image_fetch_timeout_seconds=3.0, image_user_agent="newsletter-bot/2.0")

        client = build_http_client(settings)
        try:
            assert client.timeout == httpx.Timeout(3.0)
            assert client.headers["User-Agent"] == "newsletter-bot/2.0"
            assert client.follow_redirects is True
        finally:
            client.close()
