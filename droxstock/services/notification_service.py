"""E-mail notifications for import results and registration decisions."""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Dict, Any

from droxstock.core.config import settings

logger = logging.getLogger("droxstock.notifications")


class NotificationService:
    """Sends plain-text mail over SMTP.

    Delivery problems are logged and reported as ``False``; a lost e-mail
    never fails the import or the approval that triggered it.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        use_ssl: Optional[bool] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username or settings.SMTP_USERNAME
        self.password = password or settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.use_ssl = settings.SMTP_USE_SSL if use_ssl is None else use_ssl
        self.from_email = from_email or settings.SMTP_FROM_EMAIL
        self.from_name = from_name or settings.SMTP_FROM_NAME

    def is_configured(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, body: str) -> bool:
        """Deliver one message. Returns whether the SMTP server accepted it."""
        if not self.is_configured():
            logger.warning("SMTP not configured (missing SMTP_HOST); not sending '%s' to %s", subject, to)
            return False

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            if self.use_ssl:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.host, self.port, context=context,
                                      timeout=settings.SMTP_TIMEOUT) as server:
                    self._deliver(server, to, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=settings.SMTP_TIMEOUT) as server:
                    if self.use_tls:
                        server.starttls(context=ssl.create_default_context())
                    self._deliver(server, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send '%s' to %s: %s", subject, to, e)
            return False

        logger.info("Sent '%s' to %s", subject, to)
        return True

    def _deliver(self, server: smtplib.SMTP, to: str, msg: MIMEMultipart) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)
        server.sendmail(self.from_email, [to], msg.as_string())

    # ---- Import jobs ----
    def send_import_report(self, to: str, file_name: str, report: Dict[str, Any]) -> bool:
        stats = report.get("processing_stats", {})
        quality = report.get("validation_summary", {}).get("data_quality_score")
        status = "completed" if report.get("success") else "completed with errors"
        lines = [
            f"The import of '{file_name}' {status}.",
            "",
            f"Total rows:      {stats.get('total_rows', 0)}",
            f"New rows:        {stats.get('new_rows', 0)}",
            f"Updated rows:    {stats.get('updated_rows', 0)}",
            f"Duplicate rows:  {stats.get('duplicate_rows', 0)}",
            f"Skipped rows:    {stats.get('skipped_rows', 0)}",
            f"Failed rows:     {stats.get('failed_rows', 0)}",
            f"Data quality:    {quality}%",
        ]
        recommendations = report.get("recommendations") or []
        if recommendations:
            lines += ["", "Recommendations:"] + [f"- {r}" for r in recommendations]
        return self.send(to, f"CSV import {status}: {file_name}", "\n".join(lines))

    def send_import_failure(self, to: str, file_name: str, error: str) -> bool:
        body = f"The import of '{file_name}' failed.\n\nError: {error}\n"
        return self.send(to, f"CSV import failed: {file_name}", body)

    # ---- Registrations ----
    def send_registration_approved(self, to: str, full_name: str) -> bool:
        body = f"Hello {full_name},\n\nyour {settings.APP_NAME} account has been approved.\n"
        return self.send(to, "Your account has been approved", body)

    def send_registration_rejected(self, to: str, full_name: str, reason: str) -> bool:
        body = (
            f"Hello {full_name},\n\nyour {settings.APP_NAME} registration was not approved.\n\n"
            f"Reason: {reason}\n"
        )
        return self.send(to, "Your registration was not approved", body)


notification_service = NotificationService()
