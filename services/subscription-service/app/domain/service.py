"""Admin back-office and inbox workflows backed by the subscriber repository."""

from __future__ import annotations

from base64 import urlsafe_b64decode, urlsafe_b64encode
from datetime import date, datetime
import json
import logging
from typing import Tuple, Optional

from .account import Account
from .contracts import Notification, UpdateSubscriptionInput
from .errors import AccountNotFoundError, NotifierError
from .lifecycle import days_until, today_in
from ..repository import AuditLogRecord, SubscriberRepository

logger = logging.getLogger(__name__)

EXPIRING_WINDOW_DAYS = 7

STATUS_FILTERS = ("all", "active", "suspended", "admin")
SUBSCRIPTION_FILTERS = ("all", "active", "expiring", "expired")


def matches_status(account: Account, status: str) -> bool:
    if status == "suspended":
        return account.is_suspended
    if status == "active":
        return not account.is_suspended and not account.is_admin
    if status == "admin":
        return account.is_admin
    return True


def matches_subscription(account: Account, subscription: str, today: date) -> bool:
    if subscription == "all":
        return True
    if account.subscription_end_date is None:
        return False
    remaining = days_until(account.subscription_end_date, today)
    if subscription == "expired":
        return remaining < 0
    if subscription == "expiring":
        return 0 <= remaining <= EXPIRING_WINDOW_DAYS
    if subscription == "active":
        return remaining > EXPIRING_WINDOW_DAYS
    return True


def matches_search(account: Account, search: str | None) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    return needle in account.display_name.lower() or needle in (account.email or "").lower()


class AdminService:
    """Administrator operations on subscriber accounts and the audit trail."""

    def __init__(self, repository: SubscriberRepository, *, timezone: str = "UTC") -> None:
        """Store the repository and the reference timezone for day arithmetic."""
        self._repository = repository
        self._timezone = timezone

    def list_subscribers(
        self,
        *,
        search: str | None = None,
        status: str = "all",
        subscription: str = "all",
        today: date | None = None,
    ) -> list[Account]:
        """Return accounts matching the search text and the status/subscription filters."""
        if status not in STATUS_FILTERS:
            raise ValueError(f"invalid status filter: {status}")
        if subscription not in SUBSCRIPTION_FILTERS:
            raise ValueError(f"invalid subscription filter: {subscription}")
        today = today or today_in(self._timezone)
        return [
            account
            for account in self._repository.list_accounts()
            if matches_search(account, search)
            and matches_status(account, status)
            and matches_subscription(account, subscription, today)
        ]

    def update_subscription(self, payload: UpdateSubscriptionInput, *, actor: str) -> Account:
        """Change the end date and duration; saving always reactivates the account."""
        if payload.subscription_duration_days < 1:
            raise ValueError("subscription duration must be at least one day")
        account = self._repository.update_subscription(payload)
        if account is None:
            raise AccountNotFoundError(f"account {payload.account_id} not found")
        self._record(
            account_id=account.account_id,
            event_type="admin.subscription_updated",
            actor=actor,
            metadata={
                "subscription_end_date": (
                    payload.subscription_end_date.isoformat()
                    if payload.subscription_end_date
                    else None
                ),
                "subscription_duration_days": payload.subscription_duration_days,
            },
        )
        logger.info("subscription of %s updated by %s", account.account_id, actor)
        return account

    def set_suspension(self, account_id: str, suspended: bool, *, actor: str) -> Account:
        """Manually suspend or reactivate an account."""
        account = self._repository.set_suspension(account_id, suspended)
        if account is None:
            raise AccountNotFoundError(f"account {account_id} not found")
        event_type = "admin.account_suspended" if suspended else "admin.account_reactivated"
        self._record(
            account_id=account_id,
            event_type=event_type,
            actor=actor,
            metadata={},
        )
        logger.info("%s by %s", event_type, actor)
        return account

    def _record(self, *, account_id: str, event_type: str, actor: str, metadata: dict) -> None:
        # the account change is already committed here
        try:
            self._repository.write_audit_event(
                account_id=account_id, event_type=event_type, actor=actor, metadata=metadata
            )
        except NotifierError as exc:
            logger.error("could not write audit event %s for %s: %s", event_type, account_id, exc)

    def is_admin(self, account_id: str) -> bool:
        return account_id in self._repository.list_admin_account_ids()

    def list_notifications(
        self, account_id: str, *, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        return self._repository.list_notifications(
            account_id, unread_only=unread_only, limit=limit
        )

    def mark_notification_read(self, account_id: str, notification_id: str) -> None:
        if not self._repository.mark_notification_read(account_id, notification_id):
            raise AccountNotFoundError(f"notification {notification_id} not found")

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[AuditLogRecord], str | None]:
        """Return audit log records with optional filters and an opaque cursor."""
        decoded_cursor: Optional[Tuple[datetime, int]] = None
        if cursor:
            decoded_cursor = self._decode_cursor(cursor)
        records, next_cursor_tuple = self._repository.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=decoded_cursor,
        )
        return records, self._encode_cursor(next_cursor_tuple)

    def _encode_cursor(self, cursor: Tuple[datetime, int] | None) -> str | None:
        if cursor is None:
            return None
        created_at, audit_id = cursor
        payload = json.dumps({"created_at": created_at.isoformat(), "audit_id": audit_id})
        return urlsafe_b64encode(payload.encode("utf-8")).decode("utf-8")

    def _decode_cursor(self, cursor: str) -> Tuple[datetime, int]:
        try:
            data = json.loads(urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8"))
            return datetime.fromisoformat(data["created_at"]), int(data["audit_id"])
        except Exception as exc:
            raise ValueError("invalid cursor") from exc
