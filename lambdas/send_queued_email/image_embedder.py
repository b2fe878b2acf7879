"""
Image Embedder Module

Rewrites remote image references in an HTML email body to `cid:` references
and collects the downloaded images as inline attachments.

Image references handled:
- `<img src>` and `<input type="image" src>`
- legacy `background` attribute on body/table/td/th
- `url(...)` inside inline `style` attributes (e.g. background-image)

Each unique URL is fetched at most once per call. A URL that cannot be
fetched is left in place; the email still goes out with the remote link.
"""

import mimetypes
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

import structlog
from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from mailer.exceptions import HtmlParseError, ImageFetchError
from mailer.tools.images import ImageFetcher, is_remote_image_url

log = structlog.get_logger()

CONTENT_ID_PREFIX = "image_"

# Tag name -> attribute holding an image URL
IMAGE_SOURCE_ATTRIBUTES = {
    "img": "src",
    "input": "src",
    "body": "background",
    "table": "background",
    "td": "background",
    "th": "background",
}

# url(...) with optional matching single or double quotes
CSS_URL_PATTERN = re.compile(
    r"""url\(\s*(?P<quote>['"]?)(?P<url>[^'"()\s]+)(?P=quote)\s*\)""",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class InlineAttachment:
    """Image bundled with the outgoing message and referenced by content-id."""

    content_id: str
    content: bytes
    content_type: str
    filename: str

    @property
    def reference(self) -> str:
        """Value to put in the HTML in place of the remote URL."""
        return f"cid:{self.content_id}"

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class RewriteResult:
    """Rewritten HTML plus the attachments its cid: references point to."""

    html: str
    attachments: list[InlineAttachment] = field(default_factory=list)

    @property
    def content_ids(self) -> list[str]:
        return [attachment.content_id for attachment in self.attachments]


def _attachment_filename(url: str, content_id: str, content_type: str) -> str:
    """Last path segment of the URL, or content-id plus a guessed extension."""
    name = unquote(PurePosixPath(urlsplit(url).path).name)
    if name:
        return name
    extension = mimetypes.guess_extension(content_type) or ""
    return f"{content_id}{extension}"


def rewrite_css_urls(style: str, resolve: Callable[[str], str]) -> str:
    """
    Replace every remote url(...) in a CSS declaration list.

    Only the URL inside each url() is touched; quotes, spacing and the
    other declarations are preserved.
    """

    def _replace(match: re.Match) -> str:
        url = match.group("url")
        if not is_remote_image_url(url):
            return match.group(0)
        replacement = resolve(url)
        if replacement == url:
            return match.group(0)
        start, end = match.span("url")
        offset = match.start()
        whole = match.group(0)
        return whole[: start - offset] + replacement + whole[end - offset :]

    return CSS_URL_PATTERN.sub(_replace, style)


def _image_attribute(tag: Tag) -> str | None:
    """Name of the attribute on `tag` holding an image URL, if any."""
    attribute = IMAGE_SOURCE_ATTRIBUTES.get(tag.name)
    if attribute is None or not tag.has_attr(attribute):
        return None
    if tag.name == "input" and str(tag.get("type", "")).lower() != "image":
        return None
    return attribute


class _EmbeddingRun:
    """
    State for one embed_images call.

    Maps each fetched URL to its cid: reference and remembers URLs that
    failed, so repeats of either never hit the network again.
    """

    def __init__(self, fetcher: ImageFetcher) -> None:
        self._fetcher = fetcher
        self._references: dict[str, str] = {}
        self._failed: set[str] = set()
        self.attachments: list[InlineAttachment] = []

    def resolve(self, url: str) -> str:
        """cid: reference for `url`, or `url` itself if it can't be embedded."""
        if url in self._references:
            return self._references[url]
        if url in self._failed:
            return url

        try:
            image = self._fetcher.fetch(url)
        except ImageFetchError as e:
            log.warning("inline_image_skipped", url=url, error=str(e))
            self._failed.add(url)
            return url

        content_id = f"{CONTENT_ID_PREFIX}{len(self.attachments) + 1}"
        attachment = InlineAttachment(
            content_id=content_id,
            content=image.content,
            content_type=image.content_type,
            filename=_attachment_filename(url, content_id, image.content_type),
        )
        self.attachments.append(attachment)
        self._references[url] = attachment.reference

        log.debug(
            "inline_image_attached",
            url=url,
            content_id=content_id,
            size_bytes=attachment.size_bytes,
        )

        return attachment.reference


def embed_images(html_body: str, fetcher: ImageFetcher) -> RewriteResult:
    """
    Embed remote images of an HTML document as inline attachments.

    Tag attributes are processed before style attributes, each in document
    order, so attachment order is stable for a given input.

    Args:
        html_body: HTML email body
        fetcher: Image fetcher used for each unique remote URL

    Returns:
        RewriteResult; the original string is returned untouched when
        nothing was embedded

    Raises:
        HtmlParseError: If the document can't be parsed
    """
    try:
        soup = BeautifulSoup(html_body, "html.parser")
    except ParserRejectedMarkup as e:
        raise HtmlParseError(str(e)) from e

    run = _EmbeddingRun(fetcher)
    rewritten = 0

    for tag in soup.find_all(lambda t: _image_attribute(t) is not None):
        attribute = _image_attribute(tag)
        url = str(tag[attribute]).strip()
        if not is_remote_image_url(url):
            continue
        reference = run.resolve(url)
        if reference != url:
            tag[attribute] = reference
            rewritten += 1

    for tag in soup.find_all(style=True):
        style = str(tag["style"])
        new_style = rewrite_css_urls(style, run.resolve)
        if new_style != style:
            tag["style"] = new_style
            rewritten += 1

    log.info(
        "images_embedded",
        references_rewritten=rewritten,
        attachments=len(run.attachments),
    )

    if not rewritten:
        return RewriteResult(html=html_body, attachments=[])

    return RewriteResult(html=str(soup), attachments=list(run.attachments))
