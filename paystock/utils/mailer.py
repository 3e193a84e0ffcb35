"""
Mail notification after a confirmed purchase.
Best effort: delivery runs off the request path and failures are only logged.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
import logging
import smtplib
from typing import Optional

from paystock.config import Settings

logger = logging.getLogger(__name__)


class SMTPMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)
        logger.info(f"Mail sent to {recipient}: {subject}")


class Notifier:
    """Fire-and-forget mail dispatch on a background thread pool."""

    def __init__(self, mailer: Optional[SMTPMailer], recipient: Optional[str], max_workers: int = 2):
        self.mailer = mailer
        self.recipient = recipient
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notifier")

    @property
    def enabled(self) -> bool:
        return self.mailer is not None and bool(self.recipient)

    def notify(self, subject: str, body: str) -> Optional[Future]:
        if not self.enabled:
            logger.info(f"Mail disabled, dropping notification: {subject}")
            return None
        future = self._executor.submit(self.mailer.send, self.recipient, subject, body)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Mail notification failed: {error}")

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


def build_notifier(settings: Settings) -> Notifier:
    mailer = None
    if settings.SMTP_HOST:
        mailer = SMTPMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.MAIL_FROM,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )
    return Notifier(mailer, settings.MAIL_TO)
