from unittest.mock import patch

import pytest

from waitlist.core.config import Settings
from waitlist.services.email import EmailService, EmailStatus


class TestEmailService:
    """Waitlist confirmation delivery is best effort and never raises."""

    @pytest.fixture
    def configured_settings(self):
        return Settings(
            RESEND_API_KEY="re_test_key",
            WAITLIST_EMAIL_FROM="Velocity Funds <hello@example.com>",
            WAITLIST_EMAIL_REPLY_TO="team@example.com",
        )

    @patch("waitlist.services.email.resend.Emails.send")
    async def test_skipped_without_provider_config(self, mock_send):
        email_service = EmailService(Settings(RESEND_API_KEY="", WAITLIST_EMAIL_FROM=""))

        result = await email_service.send_waitlist_confirmation("test@example.com")

        assert result == EmailStatus.SKIPPED
        mock_send.assert_not_called()

    @patch("waitlist.services.email.resend.Emails.send")
    async def test_skipped_without_sender(self, mock_send):
        email_service = EmailService(Settings(RESEND_API_KEY="re_test_key", WAITLIST_EMAIL_FROM=""))

        assert await email_service.send_waitlist_confirmation("test@example.com") == EmailStatus.SKIPPED
        mock_send.assert_not_called()

    @patch("waitlist.services.email.resend.Emails.send")
    async def test_sent(self, mock_send, configured_settings):
        mock_send.return_value = {"id": "email_123"}
        email_service = EmailService(configured_settings)

        result = await email_service.send_waitlist_confirmation("test@example.com")

        assert result == EmailStatus.SENT
        params = mock_send.call_args.args[0]
        assert params["to"] == ["test@example.com"]
        assert params["from"] == "Velocity Funds <hello@example.com>"
        assert params["reply_to"] == ["team@example.com"]
        assert params["subject"] == "You're on the Velocity Funds waitlist"
        assert "Velocity Funds waitlist" in params["text"]

    @patch("waitlist.services.email.resend.Emails.send")
    async def test_provider_error_is_failed(self, mock_send, configured_settings):
        mock_send.side_effect = Exception("422 validation_error")
        email_service = EmailService(configured_settings)

        assert await email_service.send_waitlist_confirmation("test@example.com") == EmailStatus.FAILED

    @patch("waitlist.services.email.resend.Emails.send")
    async def test_missing_message_id_is_failed(self, mock_send, configured_settings):
        mock_send.return_value = {}
        email_service = EmailService(configured_settings)

        assert await email_service.send_waitlist_confirmation("test@example.com") == EmailStatus.FAILED

    @patch("waitlist.services.email.logger")
    @patch("waitlist.services.email.resend.Emails.send")
    async def test_failure_is_logged(self, mock_send, mock_logger, configured_settings):
        mock_send.side_effect = Exception("boom")
        email_service = EmailService(configured_settings)

        await email_service.send_waitlist_confirmation("test@example.com")

        mock_logger.error.assert_called_once()
        assert "test@example.com" in mock_logger.error.call_args.args[0]
