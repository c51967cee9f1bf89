"""
Email notifications for completed redeploys.

Uses implicit TLS when the SMTP port is 465 and STARTTLS otherwise (when the
server offers it). The SMTP exchange is blocking, so it runs in the default
executor.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

from .errors import EmailSendError

logger = logging.getLogger(__name__)

SMTPS_PORT = 465


class EmailNotifier:
    """Sends plain-text notification emails."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        recipient: str = "",
        sender_name: str = "GitHub Monitor",
        timeout: float = 30,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.recipient = recipient
        self.sender_name = sender_name
        self.timeout = timeout

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f'"{self.sender_name}" <{self.user}>'
        msg["To"] = self.recipient
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.host or None)
        msg.set_content(body)
        return msg

    def _deliver(self, msg: EmailMessage):
        if self.port == SMTPS_PORT:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        with server:
            if self.port != SMTPS_PORT:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
            if self.user:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send(self, subject: str, body: str) -> str:
        """Send a notification and return its Message-ID."""
        if not self.recipient:
            raise EmailSendError("No notification email address configured")
        if not self.host:
            raise EmailSendError("No SMTP host configured")

        msg = self.build_message(subject, body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailSendError(f"Failed to send email via {self.host}:{self.port}: {e}") from e

        message_id = msg["Message-ID"]
        logger.info(f"Email sent: {message_id}")
        return message_id
