"""
Pytest Configuration and Shared Fixtures

Provides moto SES mocking, a mock image host, sample SQS events and
injectable collaborators for the email Lambda.
"""

import os
from typing import Callable

import boto3
import httpx
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["MAILER_SES_FROM_ADDRESS"] = "test@example.com"
os.environ["MAILER_AWS_REGION"] = "us-east-1"
os.environ["MAILER_LOG_LEVEL"] = "DEBUG"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from mailer.tools.images import ImageFetcher  # noqa: E402
from tests.utils.event_generator import SqsEventGenerator  # noqa: E402
from tests.utils.fakes import (  # noqa: E402
    JPEG_BYTES,
    PNG_BYTES,
    FakeImageFetcher,
    FakeTransport,
    LambdaContext,
)


# --- Collaborator Fixtures ---


@pytest.fixture
def event_generator() -> SqsEventGenerator:
    return SqsEventGenerator(seed=42)


@pytest.fixture
def fake_fetcher() -> FakeImageFetcher:
    return FakeImageFetcher()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def lambda_context() -> LambdaContext:
    return LambdaContext()


# --- HTTP Mocking Fixtures ---


@pytest.fixture
def image_host() -> Callable[[httpx.Request], httpx.Response]:
    """
    httpx MockTransport handler simulating an image host.

    - /missing.png → 404
    - /page.html   → text/html
    - /huge.png    → body larger than the test size limit
    - *.jpg        → image/jpeg
    - anything else → image/png
    """

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/missing.png"):
            return httpx.Response(404, text="not found")
        if path.endswith("/page.html"):
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})
        if path.endswith("/huge.png"):
            return httpx.Response(200, content=b"x" * 2048, headers={"content-type": "image/png"})
        if path.endswith(".jpg"):
            return httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "image/jpeg"})
        return httpx.Response(
            200,
            content=PNG_BYTES,
            headers={"content-type": "image/png; charset=binary"},
        )

    return handler


@pytest.fixture
def http_fetcher(image_host):
    """Real ImageFetcher backed by the mock image host."""
    client = httpx.Client(transport=httpx.MockTransport(image_host))
    yield ImageFetcher(client, max_bytes=1024)
    client.close()


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "us-east-1",
    }


@pytest.fixture
def mock_ses(aws_credentials):
    """Create a mocked SES client with verified identity."""
    with mock_aws():
        ses = boto3.client("ses", **aws_credentials)
        # Verify sender identity
        ses.verify_email_identity(EmailAddress="test@example.com")
        yield ses
