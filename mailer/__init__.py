# Shared Infrastructure for the Queued Email Sender
"""
Shared infrastructure components for the email Lambdas.

This package provides:
- Pydantic models for SQS records and email requests
- Tool implementations for SES sending and remote image fetching
- Configuration management
- Custom exceptions
"""

from mailer.config import Settings, get_settings
from mailer.exceptions import (
    HtmlParseError,
    ImageFetchError,
    MailerError,
    MessageDecodeError,
    MessageValidationError,
    SESError,
)

__all__ = [
    # Exceptions
    "MailerError",
    "MessageDecodeError",
    "MessageValidationError",
    "ImageFetchError",
    "HtmlParseError",
    "SESError",
    # Config
    "Settings",
    "get_settings",
]
