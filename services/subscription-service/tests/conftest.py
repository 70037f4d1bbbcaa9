from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone

import pytest

from app.domain.account import Account
from app.domain.contracts import Notification, NotificationKind, UpdateSubscriptionInput
from app.domain.errors import DirectoryError, EmailDeliveryError, NotifierError


@dataclass
class FakeAuditLogRecord:
    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict
    created_at: datetime


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviors."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.emails: dict[str, str] = {}
        self.notifications: list[Notification] = []
        self.audit_log: list[FakeAuditLogRecord] = []
        self.ledger: set[tuple[str, str, date]] = set()
        self.fail_reads = False
        self.fail_admin_reads = False
        self.fail_email_reads = False
        self.fail_audit_writes = False
        self.fail_notifications_for: set[str] = set()
        self.suspension_writes = 0

    def add_account(
        self,
        end_date: date | None,
        *,
        account_id: str | None = None,
        email: str | None = None,
        roles: tuple[str, ...] = ("user",),
        is_suspended: bool = False,
        first_name: str | None = "Ana",
        last_name: str | None = "López",
    ) -> Account:
        account = Account(
            account_id=account_id or str(uuid.uuid4()),
            subscription_end_date=end_date,
            is_suspended=is_suspended,
            first_name=first_name,
            last_name=last_name,
            roles=frozenset(roles),
        )
        self.accounts[account.account_id] = account
        if email:
            self.emails[account.account_id] = email
        return account

    # directory

    def list_accounts_with_subscription(self) -> list[Account]:
        if self.fail_reads:
            raise DirectoryError("error fetching profiles: connection refused")
        # copies, like fresh rows from the database
        return [
            replace(account, email=None)
            for account in self.accounts.values()
            if account.subscription_end_date is not None
        ]

    def list_admin_account_ids(self) -> set[str]:
        if self.fail_admin_reads:
            raise DirectoryError("error fetching admin roles: connection reset")
        return {a.account_id for a in self.accounts.values() if a.is_admin}

    def resolve_email(self, account_id: str) -> str | None:
        if self.fail_email_reads:
            raise DirectoryError("error fetching users: permission denied")
        return self.emails.get(account_id)

    # admin

    def list_accounts(self) -> list[Account]:
        return [replace(a, email=self.emails.get(a.account_id)) for a in self.accounts.values()]

    def update_subscription(self, payload: UpdateSubscriptionInput) -> Account | None:
        account = self.accounts.get(payload.account_id)
        if account is None:
            return None
        account.subscription_end_date = payload.subscription_end_date
        account.subscription_duration_days = payload.subscription_duration_days
        account.is_suspended = False
        return account

    def set_suspension(self, account_id: str, suspended: bool) -> Account | None:
        account = self.accounts.get(account_id)
        if account is None:
            return None
        account.is_suspended = suspended
        return account

    # side effects

    def create_notification(
        self, account_id: str, title: str, message: str, kind: NotificationKind
    ) -> None:
        if account_id in self.fail_notifications_for:
            raise NotifierError("error creating notification: insert failed")
        self.notifications.append(
            Notification(
                notification_id=str(uuid.uuid4()),
                account_id=account_id,
                title=title,
                message=message,
                kind=NotificationKind(kind),
                is_read=False,
                created_at=datetime.now(timezone.utc),
            )
        )

    def set_suspended(self, account_id: str) -> bool:
        account = self.accounts[account_id]
        if account.is_suspended:
            return False
        account.is_suspended = True
        self.suspension_writes += 1
        return True

    def record_transition(self, account_id: str, threshold: str, run_date: date) -> bool:
        key = (account_id, threshold, run_date)
        if key in self.ledger:
            return False
        self.ledger.add(key)
        return True

    # inbox

    def list_notifications(self, account_id: str, *, unread_only: bool = False, limit: int = 50):
        items = [n for n in self.notifications if n.account_id == account_id]
        if unread_only:
            items = [n for n in items if not n.is_read]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[:limit]

    def mark_notification_read(self, account_id: str, notification_id: str) -> bool:
        for item in self.notifications:
            if item.notification_id == notification_id and item.account_id == account_id:
                item.is_read = True
                return True
        return False

    # audit

    def write_audit_event(self, *, account_id, event_type, actor, metadata=None) -> None:
        if self.fail_audit_writes:
            raise NotifierError("error writing audit event: disk full")
        self.audit_log.append(
            FakeAuditLogRecord(
                audit_id=len(self.audit_log) + 1,
                account_id=account_id,
                event_type=event_type,
                actor=actor,
                metadata=metadata or {},
                created_at=datetime.now(timezone.utc),
            )
        )

    def list_audit_events(
        self,
        *,
        account_id=None,
        event_type=None,
        created_after=None,
        created_before=None,
        limit=50,
        cursor=None,
    ):
        results = list(self.audit_log)
        if account_id:
            results = [r for r in results if r.account_id == account_id]
        if event_type:
            results = [r for r in results if r.event_type == event_type]
        results.sort(key=lambda r: (r.created_at, r.audit_id), reverse=True)
        if cursor:
            results = [r for r in results if (r.created_at, r.audit_id) < cursor]
        slice_ = results[:limit]
        next_cursor = None
        if len(results) > limit:
            last = slice_[-1]
            next_cursor = (last.created_at, last.audit_id)
        return slice_, next_cursor


@dataclass
class FakeNotifier:
    """Notifier writing to the fake repository and capturing outgoing e-mail."""

    repository: FakeRepository
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    failing_addresses: set[str] = field(default_factory=set)

    def create_notification(self, account_id, title, message, kind) -> None:
        self.repository.create_notification(account_id, title, message, kind)

    def send_email(self, to_address: str, subject: str, html_body: str) -> None:
        self.sent.append((to_address, subject, html_body))
        if to_address in self.failing_addresses:
            raise EmailDeliveryError("email provider returned 502", status_code=502)

    def set_suspended(self, account_id: str) -> bool:
        return self.repository.set_suspended(account_id)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def notifier(repository: FakeRepository) -> FakeNotifier:
    return FakeNotifier(repository)
