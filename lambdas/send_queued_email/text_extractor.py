"""
Plain-text fallback for HTML email bodies.
"""

import html
import re

_INVISIBLE_BLOCKS = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>|<!--.*?-->",
    re.IGNORECASE | re.DOTALL,
)
# Tags that start a new line when rendered; inline tags are dropped outright
_BLOCK_TAG = re.compile(
    r"</?(?:address|article|aside|blockquote|body|br|caption|dd|div|dl|dt|"
    r"figcaption|figure|footer|h[1-6]|head|header|hr|html|li|main|nav|ol|p|"
    r"pre|section|table|tbody|td|tfoot|th|thead|title|tr|ul)\b[^>]*>",
    re.IGNORECASE,
)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def html_to_text(html_body: str) -> str:
    """
    Strip markup and collapse whitespace.

    >>> html_to_text("<p>Hello <b>World</b></p>")
    'Hello World'
    >>> html_to_text("<p>Price: <b>$5</b>.</p>")
    'Price: $5.'
    """
    if not html_body:
        return ""
    text = _INVISIBLE_BLOCKS.sub(" ", html_body)
    text = _BLOCK_TAG.sub(" ", text)
    text = _TAG.sub("", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()
