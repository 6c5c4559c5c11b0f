"""
Notification delivery

Email transport lives outside this package. Jobs take any object with a
send_email method; LogNotifier is the default and only writes to the log.
"""
from typing import Protocol

from fintrack.logging_config import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> None:
        ...


class LogNotifier:
    def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info(f"Email to {to}: {subject} | {body}")
