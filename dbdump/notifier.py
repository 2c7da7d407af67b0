import smtplib
import ssl
from email.message import EmailMessage
from typing import Dict

from .config import SmtpSettings, TlsMode
from .exceptions import ConfigIncomplete
from .logger import get_logger

logger = get_logger(__name__)

SMTPS_PORT = 465


class EmailNotifier:
    """Sends the HTML report to every recipient through the configured relay."""

    def __init__(self, settings: SmtpSettings):
        self.settings = settings

    def check(self) -> None:
        if self.settings.error:
            raise ConfigIncomplete(f"Email enabled but not usable: {self.settings.error}")
        missing = [name for name, value in (
            ("host", self.settings.host),
            ("sender", self.settings.sender),
            ("recipients", self.settings.recipients),
        ) if not value]
        if missing:
            raise ConfigIncomplete(f"Email enabled but SMTP settings incomplete (missing: {', '.join(missing)})")

    def build_message(self, subject: str, html_body: str, recipient: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.settings.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(html_body, subtype="html", charset="utf-8")
        return msg

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        # port 465 speaks TLS from the first byte
        if s.tls != TlsMode.OFF and s.port == SMTPS_PORT:
            return smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout, context=ssl.create_default_context())

        server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
        try:
            server.ehlo()
            if s.tls == TlsMode.ON or (s.tls == TlsMode.AUTO and server.has_extn("starttls")):
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def send(self, subject: str, html_body: str) -> Dict[str, bool]:
        """
        Deliver the report; returns the delivery outcome per recipient.

        Does nothing when notifications are disabled. Raises ConfigIncomplete
        when enabled without host, sender or recipients.
        """
        if not self.settings.enabled:
            logger.debug("Email notifications disabled, skipping")
            return {}

        self.check()
        logger.info("Sending email notification...")

        outcome = {}
        for recipient in self.settings.recipients:
            logger.debug(f"Sending to: {recipient}")
            try:
                with self._connect() as server:
                    if self.settings.user:
                        server.login(self.settings.user, self.settings.password or "")
                    server.send_message(self.build_message(subject, html_body, recipient))
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"Failed to send email to {recipient}: {e}")
                outcome[recipient] = False
                continue
            logger.info(f"Email sent successfully to {recipient}")
            outcome[recipient] = True
        return outcome
