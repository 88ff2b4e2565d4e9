"""Tests for SMTP delivery of import and registration mails."""

import smtplib
from unittest.mock import MagicMock, patch

from droxstock.services.notification_service import NotificationService


def _smtp_double():
    server = MagicMock()
    factory = MagicMock()
    factory.return_value.__enter__.return_value = server
    return factory, server


class TestSend:
    def test_unconfigured_sender_does_not_send(self):
        service = NotificationService(host=None)
        with patch("droxstock.services.notification_service.smtplib.SMTP") as smtp:
            assert service.send("ops@example.com", "Hi", "Body") is False
        smtp.assert_not_called()

    def test_starttls_login_and_send(self):
        factory, server = _smtp_double()
        service = NotificationService(
            host="smtp.example.com", port=587, username="bot", password="pw", use_tls=True,
        )

        with patch("droxstock.services.notification_service.smtplib.SMTP", factory):
            assert service.send("ops@example.com", "Hi", "Body") is True

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "pw")
        sender, recipients, _ = server.sendmail.call_args[0]
        assert recipients == ["ops@example.com"]

    def test_smtp_failure_is_reported_not_raised(self):
        factory, server = _smtp_double()
        server.sendmail.side_effect = smtplib.SMTPException("relay denied")
        service = NotificationService(host="smtp.example.com", use_tls=False)

        with patch("droxstock.services.notification_service.smtplib.SMTP", factory):
            assert service.send("ops@example.com", "Hi", "Body") is False


class TestMessages:
    def test_import_report_summarises_counts(self):
        service = NotificationService(host="smtp.example.com")
        service.send = MagicMock(return_value=True)
        report = {
            "success": False,
            "processing_stats": {"total_rows": 2, "new_rows": 1, "failed_rows": 1},
            "validation_summary": {"data_quality_score": 50.0},
            "recommendations": ["1 row(s) failed."],
        }

        service.send_import_report("ops@example.com", "stock.csv", report)

        to, subject, body = service.send.call_args[0]
        assert subject == "CSV import completed with errors: stock.csv"
        assert "Failed rows:     1" in body
        assert "- 1 row(s) failed." in body

    def test_rejection_includes_reason(self):
        service = NotificationService(host="smtp.example.com")
        service.send = MagicMock(return_value=True)

        service.send_registration_rejected("p@example.com", "Pat", "Unknown company")

        assert "Reason: Unknown company" in service.send.call_args[0][2]
