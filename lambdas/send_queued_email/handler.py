"""
SendQueuedEmail Lambda Handler

Main entry point for the SQS-triggered email sender.
Each SQS record describes one email (recipients, subject, HTML body); remote
images are embedded inline and one email is sent per recipient via SES.

Trigger: SQS queue (event source mapping with ReportBatchItemFailures)
Output: SES emails; summary response plus batchItemFailures

Flow:
1. Validate the event envelope (Records list)
2. Process each record in order (MessageProcessor)
3. Aggregate per-recipient outcomes into a BatchResult
4. Report records with any failure back to SQS for selective retry
"""

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import structlog

from lambdas.send_queued_email.message_processor import (
    MessageProcessor,
    RecordOutcome,
    SendOutcome,
)
from mailer.config import get_settings
from mailer.models.queue import QueueRecord
from mailer.tools.email import SesEmailTransport
from mailer.tools.images import ImageFetcher, build_http_client

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Lambda installs its own root handler; basicConfig only applies locally
logging.basicConfig(format="%(message)s")
logging.getLogger().setLevel(get_settings().log_level)

log = structlog.get_logger()


@dataclass
class BatchResult:
    """
    Summary of one SQS batch.

    `outcomes` holds every SendOutcome in send order for callers that need
    the structured result; `results` and `errors` are the rendered lines
    that go into the response body.
    """

    successful_emails: int = 0
    failed_emails: int = 0
    outcomes: list[SendOutcome] = field(default_factory=list)
    results: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failed_record_ids: list[str] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.successful_emails + self.failed_emails

    def add(self, record: RecordOutcome) -> None:
        """Fold one record's outcome into the batch totals."""
        if record.error is not None:
            # A rejected record counts as one failed email
            self.failed_emails += 1
            error_msg = f"Error processing message: {record.error}"
            self.results.append(error_msg)
            self.errors.append(error_msg)

        for outcome in record.outcomes:
            self.outcomes.append(outcome)
            self.results.append(outcome.to_result_line())
            if outcome.success:
                self.successful_emails += 1
            else:
                self.failed_emails += 1
                self.errors.append(f"{outcome.recipient}: {outcome.error_message}")

        if record.failed and record.record_id not in self.failed_record_ids:
            self.failed_record_ids.append(record.record_id)

    def add_skipped(self, records: Sequence[QueueRecord]) -> None:
        """Records never started; handed back to SQS without counting as sends."""
        for record in records:
            self.errors.append(
                f"Message {record.message_id} not processed: invocation time exhausted"
            )
            if record.message_id not in self.failed_record_ids:
                self.failed_record_ids.append(record.message_id)

    def summary(self) -> dict[str, int]:
        return {
            "successful_emails": self.successful_emails,
            "failed_emails": self.failed_emails,
            "total_processed": self.total_processed,
        }

    def to_body(self) -> dict[str, Any]:
        """Response body; `errors` only when something failed."""
        body: dict[str, Any] = {
            "message": "Processing completed",
            "summary": self.summary(),
            "results": self.results,
        }
        if self.errors:
            body["errors"] = self.errors
        return body

    def batch_item_failures(self) -> list[dict[str, str]]:
        """SQS partial batch response entries."""
        return [{"itemIdentifier": record_id} for record_id in self.failed_record_ids]


class BatchCoordinator:
    """Runs the MessageProcessor over a batch of records in order."""

    def __init__(self, processor: MessageProcessor, *, min_remaining_time_ms: int = 0) -> None:
        self.processor = processor
        self.min_remaining_time_ms = min_remaining_time_ms

    def process_batch(
        self,
        records: Sequence[QueueRecord],
        *,
        remaining_time_ms: Callable[[], int] | None = None,
    ) -> BatchResult:
        """
        Process every record, never raising.

        Args:
            records: Records in delivery order
            remaining_time_ms: Optional clock (Lambda context
                get_remaining_time_in_millis); when it drops below
                min_remaining_time_ms no further records are started

        Returns:
            BatchResult with counts, result lines and failed record IDs
        """
        result = BatchResult()

        for index, record in enumerate(records):
            if remaining_time_ms is not None and remaining_time_ms() < self.min_remaining_time_ms:
                skipped = records[index:]
                log.warning(
                    "batch_deadline_reached",
                    processed=index,
                    skipped=len(skipped),
                )
                result.add_skipped(skipped)
                break

            try:
                outcome = self.processor.process(record)
            except Exception as e:
                log.exception(
                    "record_processing_failed",
                    record_id=record.message_id,
                    error=str(e),
                )
                outcome = RecordOutcome(record_id=record.message_id, error=str(e))

            result.add(outcome)

        log.info(
            "batch_processed",
            records=len(records),
            successful_emails=result.successful_emails,
            failed_emails=result.failed_emails,
            failed_records=len(result.failed_record_ids),
        )

        return result


@lru_cache(maxsize=1)
def get_coordinator() -> BatchCoordinator:
    """
    Build the coordinator and its clients once per Lambda container.

    Patch this in tests to inject fakes.
    """
    settings = get_settings()
    transport = SesEmailTransport.from_settings(settings)
    fetcher = ImageFetcher(build_http_client(settings), max_bytes=settings.image_max_bytes)
    processor = MessageProcessor(
        transport,
        fetcher,
        embed_inline_images=settings.embed_images,
    )
    return BatchCoordinator(processor, min_remaining_time_ms=settings.min_remaining_time_ms)


def _empty_summary() -> dict[str, int]:
    return {"successful_emails": 0, "failed_emails": 0, "total_processed": 0}


def _extract_records(event: Any) -> list[QueueRecord]:
    """
    Pull SQS records out of the Lambda event.

    Raises:
        ValueError: If the event has no Records list
    """
    if event is None:
        raise ValueError("Event is null or undefined")
    if not isinstance(event, dict) or "Records" not in event:
        raise ValueError("Event does not contain Records property")
    if not isinstance(event["Records"], list):
        raise ValueError("Event.Records is not an array")

    return [
        QueueRecord.from_sqs_record(raw) if isinstance(raw, dict)
        else QueueRecord(message_id="", body=None)
        for raw in event["Records"]
    ]


def _error_response(event: Any, error: str) -> dict[str, Any]:
    return {
        "statusCode": 500,
        "body": json.dumps(
            {
                "error": f"Server error: {error}",
                "eventReceived": event,
                "summary": _empty_summary(),
                "results": [],
                "errors": [],
            },
            default=str,
        ),
    }


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for SQS email batches.

    Args:
        event: SQS event with Records
        context: Lambda context

    Returns:
        Response dict with statusCode, JSON body and (when enabled)
        batchItemFailures for the records SQS should retry
    """
    request_id = getattr(context, "aws_request_id", "local")

    try:
        records = _extract_records(event)
    except ValueError as e:
        log.error("invalid_sqs_event", request_id=request_id, error=str(e))
        return _error_response(event, str(e))

    log.info("processing_sqs_batch", request_id=request_id, record_count=len(records))

    if not records:
        log.info("no_records_to_process", request_id=request_id)
        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "No records to process",
                    "summary": _empty_summary(),
                }
            ),
        }

    try:
        settings = get_settings()
        coordinator = get_coordinator()
    except Exception as e:
        log.error("lambda_handler_failed", request_id=request_id, error=str(e), exc_info=True)
        return _error_response(event, str(e))

    result = coordinator.process_batch(
        records,
        remaining_time_ms=getattr(context, "get_remaining_time_in_millis", None),
    )

    response: dict[str, Any] = {
        "statusCode": 200,
        "body": json.dumps(result.to_body()),
    }
    if settings.report_batch_item_failures:
        response["batchItemFailures"] = result.batch_item_failures()

    return response
