"""
Integration test fixtures and configuration.

Integration tests run the Lambda handler end to end against moto's SES
and an in-process image host, with only get_coordinator swapped out.
"""

import email
from email import policy
from typing import Any, Dict, List
from unittest.mock import patch

import pytest
from moto.core import DEFAULT_ACCOUNT_ID
from moto.ses.models import ses_backends

from lambdas.send_queued_email.handler import BatchCoordinator
from lambdas.send_queued_email.message_processor import MessageProcessor
from mailer.tools.email import SesEmailTransport


@pytest.fixture
def integration_coordinator(mock_ses, http_fetcher):
    """Real coordinator wired to moto SES and the mock image host."""
    transport = SesEmailTransport(
        mock_ses,
        sender="test@example.com",
        sender_name="Newsletter",
        reply_to="editor@example.com",
    )
    processor = MessageProcessor(transport, http_fetcher)
    coordinator = BatchCoordinator(processor, min_remaining_time_ms=1000)

    with patch("lambdas.send_queued_email.handler.get_coordinator", return_value=coordinator):
        yield coordinator


@pytest.fixture
def sent_messages(mock_ses):
    """Parsed raw messages accepted by moto SES, in send order."""

    def collect() -> List[Dict[str, Any]]:
        backend = ses_backends[DEFAULT_ACCOUNT_ID]["us-east-1"]
        return [
            {
                "destinations": message.destinations,
                "message": email.message_from_string(message.raw_data, policy=policy.default),
            }
            for message in backend.sent_messages
        ]

    return collect
