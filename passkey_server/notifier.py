# (c) Copyright Datacraft, 2026
"""Outbound message delivery for verification codes."""
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from passkey_server.exceptions import Internal

logger = logging.getLogger(__name__)


class Notifier(Protocol):
	def send(self, recipient: str, subject: str, body: str) -> None:
		...


class ConsoleNotifier:
	"""Writes messages to the log instead of delivering them. For development."""

	def __init__(self):
		self.sent: list[tuple[str, str, str]] = []

	def send(self, recipient: str, subject: str, body: str) -> None:
		self.sent.append((recipient, subject, body))
		logger.info(f"[console] to={recipient} subject={subject!r}\n{body}")


class SMTPNotifier:
	"""Delivers messages through an SMTP relay."""

	def __init__(
		self,
		host: str,
		port: int = 587,
		sender: str = "no-reply@localhost",
		username: str | None = None,
		password: str | None = None,
		starttls: bool = True,
		timeout: float = 10.0,
	):
		self.host = host
		self.port = port
		self.sender = sender
		self.username = username
		self.password = password
		self.starttls = starttls
		self.timeout = timeout

	def send(self, recipient: str, subject: str, body: str) -> None:
		message = EmailMessage()
		message["From"] = self.sender
		message["To"] = recipient
		message["Subject"] = subject
		message.set_content(body)

		try:
			with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
				if self.starttls:
					smtp.starttls()
				if self.username:
					smtp.login(self.username, self.password or "")
				smtp.send_message(message)
		except (smtplib.SMTPException, OSError) as e:
			logger.error(f"Failed to send mail to {recipient}: {e}")
			raise Internal("Notification delivery failed") from e

		logger.info(f"Mail sent to {recipient}")
