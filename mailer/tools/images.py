"""
Image Tools

Downloads remote images so they can be attached inline to outbound email.
Fetches are best effort: every failure surfaces as ImageFetchError and the
caller decides to keep the original URL.
"""

import mimetypes
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
import structlog

from mailer.config import Settings
from mailer.exceptions import ImageFetchError

log = structlog.get_logger()

REMOTE_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class FetchedImage:
    """Downloaded image bytes and their declared MIME type."""

    content: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def is_remote_image_url(url: str | None) -> bool:
    """True for absolute http(s) URLs; cid:, data: and relative paths are not remote."""
    if not url:
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in REMOTE_SCHEMES and bool(parts.netloc)


def _resolve_content_type(url: str, header_value: str | None) -> str | None:
    """Content-Type without parameters, falling back to a guess from the URL path."""
    if header_value:
        content_type = header_value.split(";", 1)[0].strip().lower()
        # Some CDNs serve every object as octet-stream
        if content_type and content_type != "application/octet-stream":
            return content_type
    guessed, _ = mimetypes.guess_type(urlsplit(url).path)
    return guessed


def build_http_client(settings: Settings) -> httpx.Client:
    """HTTP client shared by all fetches in this process."""
    return httpx.Client(
        timeout=httpx.Timeout(settings.image_fetch_timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": settings.image_user_agent},
    )


class ImageFetcher:
    """
    Fetches remote images over HTTP(S).

    Holds no per-message state; de-duplication of repeated URLs belongs to
    the embedding run that calls it.
    """

    def __init__(self, client: httpx.Client, *, max_bytes: int) -> None:
        self._client = client
        self._max_bytes = max_bytes

    def _too_large(self, url: str, size: int, status_code: int) -> ImageFetchError:
        log.warning(
            "image_too_large",
            url=url,
            size_bytes=size,
            max_bytes=self._max_bytes,
        )
        return ImageFetchError(
            url=url,
            error_message=f"Image exceeds max size ({size} > {self._max_bytes})",
            status_code=status_code,
        )

    def _read_limited(self, url: str, response: httpx.Response) -> bytes:
        """Read the body, giving up as soon as it grows past max_bytes."""
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self._max_bytes:
            raise self._too_large(url, int(declared), response.status_code)

        content = bytearray()
        for chunk in response.iter_bytes():
            content.extend(chunk)
            if len(content) > self._max_bytes:
                raise self._too_large(url, len(content), response.status_code)
        return bytes(content)

    def fetch(self, url: str) -> FetchedImage:
        """
        Download a single image.

        The body is streamed so an oversized file is abandoned without being
        held in memory.

        Args:
            url: Absolute http(s) URL

        Returns:
            FetchedImage with bytes and MIME type

        Raises:
            ImageFetchError: On non-remote URL, network error, non-2xx
                status, empty or oversized body, or non-image content
        """
        if not is_remote_image_url(url):
            raise ImageFetchError(url=url, error_message="Not an absolute http(s) URL")

        log.debug("fetching_image", url=url)

        try:
            with self._client.stream("GET", url) as response:
                if not response.is_success:
                    log.warning(
                        "image_fetch_bad_status",
                        url=url,
                        status_code=response.status_code,
                    )
                    raise ImageFetchError(
                        url=url,
                        error_message=f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                status_code = response.status_code
                header_type = response.headers.get("content-type")
                content = self._read_limited(url, response)
        except httpx.HTTPError as e:
            log.warning("image_fetch_failed", url=url, error=str(e))
            raise ImageFetchError(url=url, error_message=str(e)) from e

        if not content:
            raise ImageFetchError(
                url=url,
                error_message="Empty response body",
                status_code=status_code,
            )

        content_type = _resolve_content_type(url, header_type)
        if not content_type or not content_type.startswith("image/"):
            raise ImageFetchError(
                url=url,
                error_message=f"Not an image (content type {content_type!r})",
                status_code=status_code,
            )

        log.info(
            "image_fetched",
            url=url,
            content_type=content_type,
            size_bytes=len(content),
        )

        return FetchedImage(content=content, content_type=content_type)
