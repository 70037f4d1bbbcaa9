"""Domain-level contracts shared by the runner, the admin service and adapters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from .account import Account


class NotificationKind(str, Enum):
    warning = "warning"
    error = "error"
    info = "info"


@dataclass(slots=True)
class Notification:
    """In-app message shown to a subscriber on their next visit."""

    notification_id: str
    account_id: str
    title: str
    message: str
    kind: NotificationKind
    is_read: bool
    created_at: datetime


@dataclass(slots=True)
class UpdateSubscriptionInput:
    """Validated inputs for an administrator editing a subscription."""

    account_id: str
    subscription_end_date: date | None
    subscription_duration_days: int = 30


class Directory(Protocol):
    """Read side of the account store."""

    def list_accounts_with_subscription(self) -> list[Account]: ...

    def list_admin_account_ids(self) -> set[str]: ...

    def resolve_email(self, account_id: str) -> str | None: ...


class Notifier(Protocol):
    """Side effects emitted by the lifecycle runner."""

    def create_notification(
        self, account_id: str, title: str, message: str, kind: NotificationKind
    ) -> None: ...

    def send_email(self, to_address: str, subject: str, html_body: str) -> None: ...

    def set_suspended(self, account_id: str) -> bool: ...


class FiredLedger(Protocol):
    """Optional record of transitions already fired for a given day."""

    def record_transition(self, account_id: str, threshold: str, run_date: date) -> bool: ...
