"""
Custom Exceptions for the Queued Email Sender

All exceptions follow the pattern of specific, actionable errors
with context needed for debugging and logging.
"""

from dataclasses import dataclass
from typing import Any


class MailerError(Exception):
    """Base exception for the queued email sender."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


@dataclass
class MessageDecodeError(MailerError):
    """Queue message body is not a JSON object."""

    reason: str

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid message body: {reason}")


@dataclass
class MessageValidationError(MailerError):
    """Queue message is missing a required field or has a malformed one."""

    field_name: str
    reason: str

    def __init__(self, field_name: str, reason: str) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Missing or invalid {field_name}: {reason}")


@dataclass
class ImageFetchError(MailerError):
    """Remote image could not be downloaded or is not embeddable."""

    url: str
    status_code: int | None = None

    def __init__(
        self,
        url: str,
        error_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(
            f"Image fetch failed for '{url}': {error_message or 'Unknown error'}",
            url=url,
            status_code=status_code,
        )


@dataclass
class HtmlParseError(MailerError):
    """HTML body could not be parsed into a document tree."""

    def __init__(self, error_message: str | None = None) -> None:
        super().__init__(f"Could not parse HTML body: {error_message or 'Unknown error'}")


@dataclass
class SESError(MailerError):
    """SES email operation failed."""

    operation: str  # "send_raw"
    recipient: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    def __init__(
        self,
        operation: str,
        recipient: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.recipient = recipient
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(
            f"SES {operation} failed{f' for {recipient}' if recipient else ''}: "
            f"{error_message or 'Unknown error'}",
            operation=operation,
            recipient=recipient,
            error_code=error_code,
        )
