"""Notifier adapter combining the profile store with the e-mail provider."""

from __future__ import annotations

from .domain.contracts import NotificationKind
from .mailer import ResendEmailClient
from .repository import SubscriberRepository


class LifecycleNotifier:
    """Routes in-app notifications and suspensions to Postgres, e-mail to Resend."""

    def __init__(self, repository: SubscriberRepository, mailer: ResendEmailClient) -> None:
        self._repository = repository
        self._mailer = mailer

    def create_notification(
        self, account_id: str, title: str, message: str, kind: NotificationKind
    ) -> None:
        self._repository.create_notification(account_id, title, message, kind)

    def send_email(self, to_address: str, subject: str, html_body: str) -> None:
        self._mailer.send_email(to_address, subject, html_body)

    def set_suspended(self, account_id: str) -> bool:
        return self._repository.set_suspended(account_id)
