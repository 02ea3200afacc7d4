"""
Booking notifications.

The lifecycle manager hands every status change to a `Notifier` and moves
on. Delivery is at-most-once and best-effort:

- `EmailNotifier` renders the customer email for an event and sends it over
  SMTP with a bounded timeout. When SMTP is not configured the message is
  logged and dropped.
- `BackgroundNotifier` wraps any notifier so `send` returns immediately;
  delivery runs on a small thread pool and failures are logged as warnings.

No notifier ever feeds back into the booking transaction and none retries.
"""

from __future__ import annotations

import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import Optional, Protocol

from domain.booking import Booking
from settings import Settings

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    BOOKING_RECEIVED = "booking_received"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"


@dataclass(frozen=True, slots=True)
class Notification:
    event: NotificationEvent
    booking: Booking
    trek_name: str


@dataclass(frozen=True, slots=True)
class EmailContent:
    to: str
    subject: str
    body: str


class Notifier(Protocol):
    def send(self, message: Notification) -> None:
        ...


_SIGN_OFF = "Best regards,\nThe Trek Team"


def _summary(notification: Notification) -> str:
    booking = notification.booking
    return (
        f"Trek: {notification.trek_name}\n"
        f"Date: {booking.booking_date.isoformat()}\n"
        f"Participants: {booking.participants}\n"
        f"Total Amount: {booking.total_amount}"
    )


def render_email(notification: Notification) -> Optional[EmailContent]:
    """
    Build the customer email for an event.

    Returns None for events that do not email the customer (a received
    booking waits for approval before anything is sent).
    """

    booking = notification.booking
    when = f"{notification.trek_name} on {booking.booking_date.isoformat()}"
    greeting = f"Dear {booking.customer.name or 'trekker'},"

    if notification.event == NotificationEvent.BOOKING_APPROVED:
        subject = f"Booking Approved for {when}"
        lead = "Great news! Your booking has been approved by our team."
    elif notification.event == NotificationEvent.BOOKING_CONFIRMED:
        subject = f"Booking Confirmed for {when}"
        lead = "Your booking has been confirmed! We look forward to seeing you."
    elif notification.event == NotificationEvent.BOOKING_CANCELLED:
        subject = f"Booking Cancelled for {when}"
        lead = "Your booking has been cancelled. If you have any questions, please contact us."
    else:
        return None

    if not booking.customer.email:
        return None

    body = f"{greeting}\n\n{lead}\n\n{_summary(notification)}\n\n{_SIGN_OFF}"
    return EmailContent(to=booking.customer.email, subject=subject, body=body)


class EmailNotifier:
    def __init__(self, settings: Settings):
        self._settings = settings

    def send(self, message: Notification) -> None:
        content = render_email(message)
        if content is None:
            logger.debug(
                "No customer email for event",
                extra={"event": message.event.value, "booking_id": message.booking.booking_id},
            )
            return

        if not self._settings.email_enabled:
            logger.info(
                "Email not configured; dropping notification",
                extra={"event": message.event.value, "booking_id": message.booking.booking_id},
            )
            return

        self._deliver(content)
        logger.info(
            f"Sent {message.event.value} email",
            extra={"event": message.event.value, "booking_id": message.booking.booking_id},
        )

    def _deliver(self, content: EmailContent) -> None:
        s = self._settings
        msg = EmailMessage()
        msg["From"] = s.smtp_from_email or s.smtp_username
        msg["To"] = content.to
        msg["Subject"] = content.subject
        msg.set_content(content.body)

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_username and s.smtp_password:
                server.login(s.smtp_username, s.smtp_password)
            server.send_message(msg)


class BackgroundNotifier:
    """Fire-and-forget wrapper: hands messages to a thread pool."""

    def __init__(self, inner: Notifier, max_workers: int = 2):
        self._inner = inner
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notifier")

    def send(self, message: Notification) -> None:
        future = self._executor.submit(self._inner.send, message)
        future.add_done_callback(lambda f: self._log_failure(f, message))

    @staticmethod
    def _log_failure(future: Future, message: Notification) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(
                f"Notification delivery failed: {exc}",
                extra={"event": message.event.value, "booking_id": message.booking.booking_id},
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = [
    "BackgroundNotifier",
    "EmailContent",
    "EmailNotifier",
    "Notification",
    "NotificationEvent",
    "Notifier",
    "render_email",
]
