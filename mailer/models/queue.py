"""
Queue Message Models

Pydantic models for SQS records and the email request carried in their body.

Expected body format:
    {
        "emails": ["email1@example.com", "email2@example.com"],
        "subject": "Newsletter Subject",
        "html_body": "<html>Newsletter content</html>"
    }

Optional fields: "text_body" (overrides the generated plain-text part) and
"reply_to" (string or list of addresses).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueueRecord(BaseModel):
    """
    One SQS record as delivered to the Lambda.

    Only the identifier and body are used; the rest of the envelope is kept
    in `attributes` for logging.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str = Field(
        ...,
        alias="messageId",
        description="SQS message ID, reported back in batchItemFailures",
    )
    body: str | None = Field(
        default=None,
        description="Raw message body (JSON text)",
    )
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="SQS system attributes (ApproximateReceiveCount, ...)",
    )

    @classmethod
    def from_sqs_record(cls, record: dict[str, Any]) -> "QueueRecord":
        """Build from a raw Lambda SQS record dict."""
        body = record.get("body")
        return cls(
            message_id=str(record.get("messageId") or ""),
            body=body if isinstance(body, str) else None,
            attributes=record.get("attributes") or {},
        )


class EmailRequest(BaseModel):
    """Validated email request decoded from a queue record body."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    emails: list[str] = Field(
        ...,
        min_length=1,
        description="Recipients; one email is sent per address",
    )
    subject: str = Field(..., min_length=1, description="Email subject line")
    html_body: str = Field(..., min_length=1, description="HTML email body")
    text_body: str | None = Field(
        default=None,
        description="Plain text body; generated from html_body when absent",
    )
    reply_to: list[str] | None = Field(
        default=None,
        description="Reply-To addresses for this message",
    )

    @field_validator("emails")
    @classmethod
    def validate_emails(cls, v: list[str]) -> list[str]:
        """Strip recipients and reject blank ones."""
        cleaned = [address.strip() for address in v]
        if any(not address for address in cleaned):
            raise ValueError("recipient addresses must not be blank")
        return cleaned

    @field_validator("subject", "html_body")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("reply_to", mode="before")
    @classmethod
    def wrap_single_reply_to(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v] if v.strip() else None
        return v
