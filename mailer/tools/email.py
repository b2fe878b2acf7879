"""
Email Tools

SES transport for outbound email with inline image attachments.
Messages are assembled as raw MIME and sent with send_raw_email so that
`cid:` references in the HTML resolve to attached parts.
"""

import re
from collections.abc import Sequence
from email.message import EmailMessage
from email.utils import formataddr
from enum import Enum
from typing import Protocol

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from mailer.config import Settings
from mailer.exceptions import SESError

log = structlog.get_logger()

DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"

# Line breaks are not allowed inside a header value
HEADER_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")


class InlinePart(Protocol):
    """Anything that can be attached inline and referenced by content-id."""

    content_id: str
    content: bytes
    content_type: str
    filename: str


class SendFailureKind(str, Enum):
    """Classification of a failed SES send."""

    REJECTED = "rejected"
    DOMAIN_NOT_VERIFIED = "domain_not_verified"
    INVALID_ADDRESS = "invalid_address"
    OTHER = "other"


# SES error codes (botocore ClientError codes) by failure kind
_FAILURE_KINDS_BY_CODE = {
    "MessageRejected": SendFailureKind.REJECTED,
    "MailFromDomainNotVerified": SendFailureKind.DOMAIN_NOT_VERIFIED,
    "MailFromDomainNotVerifiedException": SendFailureKind.DOMAIN_NOT_VERIFIED,
    "InvalidParameterValue": SendFailureKind.INVALID_ADDRESS,
}


def classify_send_failure(error_code: str | None) -> SendFailureKind:
    """Map an SES error code to a failure kind."""
    return _FAILURE_KINDS_BY_CODE.get(error_code or "", SendFailureKind.OTHER)


def describe_send_failure(error: SESError, sender: str) -> str:
    """Human-readable reason for a failed send."""
    kind = classify_send_failure(error.error_code)
    if kind is SendFailureKind.REJECTED:
        return f"Email rejected by SES: {error.error_message}"
    if kind is SendFailureKind.DOMAIN_NOT_VERIFIED:
        return f"Domain not verified: {sender}"
    if kind is SendFailureKind.INVALID_ADDRESS:
        return f"Invalid email address: {error.recipient}"
    if error.error_code:
        return f"{error.error_code}: {error.error_message}"
    return error.error_message or str(error)


def _header_value(value: str) -> str:
    """Fold CR/LF runs into single spaces so the value fits on one header line."""
    return HEADER_LINE_BREAKS.sub(" ", value).strip()


def _split_content_type(content_type: str) -> tuple[str, str]:
    maintype, _, subtype = (content_type or DEFAULT_ATTACHMENT_TYPE).partition("/")
    if not maintype or not subtype:
        maintype, _, subtype = DEFAULT_ATTACHMENT_TYPE.partition("/")
    return maintype, subtype


def build_raw_message(
    *,
    sender: str,
    recipient: str,
    subject: str,
    html_body: str,
    text_body: str,
    attachments: Sequence[InlinePart] = (),
    sender_name: str | None = None,
    reply_to: Sequence[str] | None = None,
) -> bytes:
    """
    Assemble the complete MIME message.

    Structure:
        multipart/alternative
        ├── text/plain
        └── text/html            (multipart/related when attachments exist)
            ├── image/*  Content-ID: <image_1>
            └── ...

    Returns:
        The message as bytes, ready for send_raw_email
    """
    msg = EmailMessage()
    msg["Subject"] = _header_value(subject)
    msg["From"] = formataddr((sender_name, sender)) if sender_name else sender
    msg["To"] = _header_value(recipient)
    if reply_to:
        msg["Reply-To"] = ", ".join(_header_value(address) for address in reply_to)

    msg.set_content(text_body or " ", subtype="plain", charset="utf-8")
    msg.add_alternative(html_body, subtype="html", charset="utf-8")

    if attachments:
        html_part = msg.get_payload()[1]
        for attachment in attachments:
            maintype, subtype = _split_content_type(attachment.content_type)
            html_part.add_related(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                cid=f"<{attachment.content_id}>",
                disposition="inline",
                filename=attachment.filename,
            )

    return msg.as_bytes()


def get_ses_client(settings: Settings):
    """Get SES client with bounded connect/read timeouts."""
    return boto3.client(
        "ses",
        config=Config(
            connect_timeout=settings.ses_connect_timeout_seconds,
            read_timeout=settings.ses_read_timeout_seconds,
            retries={"max_attempts": 2, "mode": "standard"},
        ),
        **settings.ses_config,
    )


class SesEmailTransport:
    """
    Sends one email per call through SES.

    The sender is fixed by configuration; messages never choose their own
    From address.
    """

    def __init__(
        self,
        client,
        *,
        sender: str,
        sender_name: str | None = None,
        reply_to: str | None = None,
        configuration_set: str | None = None,
    ) -> None:
        self._client = client
        self.sender = sender
        self.sender_name = sender_name
        self.default_reply_to = reply_to
        self.configuration_set = configuration_set

    @classmethod
    def from_settings(cls, settings: Settings, client=None) -> "SesEmailTransport":
        return cls(
            client or get_ses_client(settings),
            sender=settings.ses_from_address,
            sender_name=settings.ses_from_name,
            reply_to=settings.ses_reply_to_address,
            configuration_set=settings.ses_configuration_set,
        )

    @property
    def source(self) -> str:
        """Envelope sender in display form."""
        if self.sender_name:
            return formataddr((self.sender_name, self.sender))
        return self.sender

    def send(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        attachments: Sequence[InlinePart] = (),
        reply_to: Sequence[str] | None = None,
    ) -> str:
        """
        Send an email via SES.

        Args:
            recipient: Recipient email address
            subject: Email subject
            html_body: HTML body (may reference attachments by cid:)
            text_body: Plain text fallback
            attachments: Inline parts referenced from html_body
            reply_to: Per-message Reply-To; defaults to the configured one

        Returns:
            SES message ID

        Raises:
            SESError: If send fails
        """
        reply_addresses = list(reply_to) if reply_to else (
            [self.default_reply_to] if self.default_reply_to else None
        )

        raw_message = build_raw_message(
            sender=self.sender,
            sender_name=self.sender_name,
            recipient=recipient,
            subject=subject,
            html_body=html_body,
            text_body=text_body,
            attachments=attachments,
            reply_to=reply_addresses,
        )

        send_params = {
            "Source": self.source,
            "Destinations": [recipient],
            "RawMessage": {"Data": raw_message},
        }
        if self.configuration_set:
            send_params["ConfigurationSetName"] = self.configuration_set

        log.info(
            "sending_ses_email",
            to=recipient,
            subject=subject[:50],
            inline_attachments=len(attachments),
            size_bytes=len(raw_message),
        )

        try:
            response = self._client.send_raw_email(**send_params)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            error_message = e.response["Error"]["Message"]

            log.error(
                "ses_send_failed",
                to=recipient,
                error_code=error_code,
                error_message=error_message,
            )

            raise SESError(
                operation="send_raw",
                recipient=recipient,
                error_code=error_code,
                error_message=error_message,
            ) from e
        except BotoCoreError as e:
            # Connection failures and timeouts carry no SES error code
            log.error(
                "ses_send_failed",
                to=recipient,
                error_code=type(e).__name__,
                error_message=str(e),
            )

            raise SESError(
                operation="send_raw",
                recipient=recipient,
                error_code=type(e).__name__,
                error_message=str(e),
            ) from e

        message_id = response["MessageId"]
        log.info("ses_email_sent", message_id=message_id, to=recipient)
        return message_id
