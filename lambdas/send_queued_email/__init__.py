"""
SendQueuedEmail Lambda

Sends newsletter-style emails described by SQS messages.
Remote images in the HTML body are embedded as inline cid: attachments.

Components:
- handler: Lambda entry point, BatchResult and BatchCoordinator
- message_processor: decode one record and send per recipient
- image_embedder: rewrite remote image URLs to cid: references
- text_extractor: plain-text fallback for the HTML body

Flow:
    Producer
    → SQS Queue
    → This Lambda
    → SES send_raw_email (one per recipient)
"""

from lambdas.send_queued_email.handler import (
    BatchCoordinator,
    BatchResult,
    get_coordinator,
    lambda_handler,
)
from lambdas.send_queued_email.image_embedder import (
    InlineAttachment,
    RewriteResult,
    embed_images,
)
from lambdas.send_queued_email.message_processor import (
    MessageProcessor,
    RecordOutcome,
    SendOutcome,
    decode_email_request,
)
from lambdas.send_queued_email.text_extractor import html_to_text

__all__ = [
    "BatchCoordinator",
    "BatchResult",
    "InlineAttachment",
    "MessageProcessor",
    "RecordOutcome",
    "RewriteResult",
    "SendOutcome",
    "decode_email_request",
    "embed_images",
    "get_coordinator",
    "html_to_text",
    "lambda_handler",
]
