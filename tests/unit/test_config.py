"""
Unit tests for settings and exceptions.
"""

import pytest

from mailer.config import Settings, get_settings
from mailer.exceptions import (
    HtmlParseError,
    ImageFetchError,
    MailerError,
    MessageDecodeError,
    MessageValidationError,
    SESError,
)


class TestSettings:
    """Tests for Settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MAILER_SES_FROM_ADDRESS", "news@example.com")
        monkeypatch.setenv("MAILER_EMBED_IMAGES", "false")
        monkeypatch.setenv("MAILER_IMAGE_MAX_BYTES", "2048")

        settings = Settings()

        assert settings.ses_from_address == "news@example.com"
        assert settings.embed_images is False
        assert settings.image_max_bytes == 2048

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MAILER_SES_FROM_ADDRESS", raising=False)
        monkeypatch.delenv("MAILER_LOG_LEVEL", raising=False)

        settings = Settings()

        assert settings.ses_from_address == "newsletter@example.com"
        assert settings.report_batch_item_failures is True
        assert settings.min_remaining_time_ms == 5000
        assert settings.log_level == "INFO"

    def test_ses_config(self):
        assert Settings(aws_region="eu-west-1").ses_config == {"region_name": "eu-west-1"}
        assert Settings(ses_endpoint_url="http://localhost:4566").ses_config[
            "endpoint_url"
        ] == "http://localhost:4566"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            Settings(log_level="VERBOSE")

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
            assert get_settings().ses_from_address == "test@example.com"
        finally:
            get_settings.cache_clear()


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_all_derive_from_base(self):
        for error in (
            MessageDecodeError("x"),
            MessageValidationError("emails", "x"),
            ImageFetchError("https://img.example.com/a.png"),
            HtmlParseError(),
            SESError("send_raw"),
        ):
            assert isinstance(error, MailerError)

    def test_decode_error_message(self):
        assert MessageDecodeError("not valid JSON").message == "Invalid message body: not valid JSON"

    def test_validation_error_message(self):
        error = MessageValidationError("subject", "Field required")

        assert error.field_name == "subject"
        assert error.message == "Missing or invalid subject: Field required"

    def test_context_rendered_in_str(self):
        error = ImageFetchError("https://img.example.com/a.png", "HTTP 404", status_code=404)

        assert str(error) == (
            "Image fetch failed for 'https://img.example.com/a.png': HTTP 404 "
            "(url='https://img.example.com/a.png', status_code=404)"
        )

    def test_ses_error_message(self):
        error = SESError("send_raw", "a@example.com", "Throttling", "Rate exceeded")

        assert error.message == "SES send_raw failed for a@example.com: Rate exceeded"
        assert error.error_code == "Throttling"
