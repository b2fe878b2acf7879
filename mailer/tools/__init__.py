# Shared Tools
"""
Tool implementations for outbound email.
"""

from mailer.tools.email import (
    SendFailureKind,
    SesEmailTransport,
    build_raw_message,
    classify_send_failure,
    describe_send_failure,
    get_ses_client,
)
from mailer.tools.images import (
    FetchedImage,
    ImageFetcher,
    build_http_client,
    is_remote_image_url,
)

__all__ = [
    # Email tools
    "SendFailureKind",
    "SesEmailTransport",
    "build_raw_message",
    "classify_send_failure",
    "describe_send_failure",
    "get_ses_client",
    # Image tools
    "FetchedImage",
    "ImageFetcher",
    "build_http_client",
    "is_remote_image_url",
]
