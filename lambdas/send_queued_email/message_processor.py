"""
Message Processor Module

Turns one queue record into one SES send per recipient.

Flow:
1. Decode and validate the record body (EmailRequest)
2. Build the plain-text fallback
3. Embed remote images once for the whole record
4. Send to each recipient independently and collect outcomes
"""

import json
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from lambdas.send_queued_email.image_embedder import RewriteResult, embed_images
from lambdas.send_queued_email.text_extractor import html_to_text
from mailer.exceptions import (
    HtmlParseError,
    MessageDecodeError,
    MessageValidationError,
    SESError,
)
from mailer.models.queue import EmailRequest, QueueRecord
from mailer.tools.email import (
    SendFailureKind,
    SesEmailTransport,
    classify_send_failure,
    describe_send_failure,
)
from mailer.tools.images import ImageFetcher

log = structlog.get_logger()


@dataclass
class SendOutcome:
    """Result of sending to a single recipient."""

    recipient: str
    success: bool
    message_id: str | None = None
    failure_kind: SendFailureKind | None = None
    error_message: str | None = None

    def to_result_line(self) -> str:
        if self.success:
            return f"Sent to {self.recipient} (MessageId: {self.message_id})"
        return f"Failed to send to {self.recipient}: {self.error_message}"


@dataclass
class RecordOutcome:
    """Result of processing one queue record."""

    record_id: str
    outcomes: list[SendOutcome] = field(default_factory=list)
    error: str | None = None  # Whole-record failure (decode/validation/unexpected)

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed_sends(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    @property
    def failed(self) -> bool:
        """Whether the record should be reported back to SQS for retry."""
        return self.error is not None or self.failed_sends > 0


@dataclass(frozen=True)
class DecodedRequest:
    """Tagged result of decoding a record body: a request or an error."""

    request: EmailRequest | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.request is not None


def _validation_error_from(e: ValidationError) -> MessageValidationError:
    """First pydantic error as a MessageValidationError."""
    first = e.errors()[0]
    location = first.get("loc") or ("body",)
    return MessageValidationError(
        field_name=str(location[0]),
        reason=first.get("msg", "invalid value"),
    )


def parse_email_request(body: str | None) -> EmailRequest:
    """
    Decode a record body into an EmailRequest.

    Raises:
        MessageDecodeError: Body missing, not JSON, or not a JSON object
        MessageValidationError: A required field is missing or invalid
    """
    if body is None:
        raise MessageDecodeError("Record does not contain body property")

    try:
        payload: Any = json.loads(body)
    except json.JSONDecodeError as e:
        raise MessageDecodeError(f"not valid JSON ({e.msg})") from e

    if not isinstance(payload, dict):
        raise MessageDecodeError(f"expected a JSON object, got {type(payload).__name__}")

    try:
        return EmailRequest.model_validate(payload)
    except ValidationError as e:
        raise _validation_error_from(e) from e


def decode_email_request(body: str | None) -> DecodedRequest:
    """Decode a record body without raising."""
    try:
        return DecodedRequest(request=parse_email_request(body))
    except (MessageDecodeError, MessageValidationError) as e:
        return DecodedRequest(error=e.message)


class MessageProcessor:
    """
    Processes one queue record at a time.

    Collaborators are injected so tests can swap in fakes; nothing here is
    kept between records.
    """

    def __init__(
        self,
        transport: SesEmailTransport,
        fetcher: ImageFetcher,
        *,
        embed_inline_images: bool = True,
    ) -> None:
        self.transport = transport
        self.fetcher = fetcher
        self.embed_inline_images = embed_inline_images

    def _rewrite(self, html_body: str) -> RewriteResult:
        if not self.embed_inline_images:
            return RewriteResult(html=html_body)
        return embed_images(html_body, self.fetcher)

    def _send_one(
        self,
        recipient: str,
        request: EmailRequest,
        rewrite: RewriteResult,
        text_body: str,
    ) -> SendOutcome:
        try:
            message_id = self.transport.send(
                recipient,
                request.subject,
                rewrite.html,
                text_body,
                attachments=rewrite.attachments,
                reply_to=request.reply_to,
            )
        except SESError as e:
            kind = classify_send_failure(e.error_code)
            error_message = describe_send_failure(e, self.transport.sender)
            log.warning(
                "recipient_send_failed",
                to=recipient,
                failure_kind=kind.value,
                error=error_message,
            )
            return SendOutcome(
                recipient=recipient,
                success=False,
                failure_kind=kind,
                error_message=error_message,
            )
        except Exception as e:
            # Anything else still fails only this recipient
            log.exception("recipient_send_error", to=recipient, error=str(e))
            return SendOutcome(
                recipient=recipient,
                success=False,
                failure_kind=SendFailureKind.OTHER,
                error_message=str(e) or type(e).__name__,
            )

        return SendOutcome(recipient=recipient, success=True, message_id=message_id)

    def process(self, record: QueueRecord) -> RecordOutcome:
        """
        Send the email described by one record to all its recipients.

        Decode and validation failures fail the whole record before any
        network call. Send failures are per recipient; every recipient is
        attempted.
        """
        decoded = decode_email_request(record.body)
        if not decoded.ok:
            log.warning("record_rejected", record_id=record.message_id, error=decoded.error)
            return RecordOutcome(record_id=record.message_id, error=decoded.error)

        request = decoded.request
        text_body = request.text_body or html_to_text(request.html_body)
        try:
            rewrite = self._rewrite(request.html_body)
        except HtmlParseError as e:
            log.warning("record_rejected", record_id=record.message_id, error=e.message)
            return RecordOutcome(record_id=record.message_id, error=e.message)

        log.info(
            "processing_email_request",
            record_id=record.message_id,
            recipients=len(request.emails),
            subject=request.subject[:50],
            inline_images=len(rewrite.attachments),
        )

        result = RecordOutcome(record_id=record.message_id)
        for recipient in request.emails:
            result.outcomes.append(self._send_one(recipient, request, rewrite, text_body))

        log.info(
            "record_processed",
            record_id=record.message_id,
            successful=result.successful,
            failed=result.failed_sends,
        )

        return result
