"""Postgres repository for subscriber profiles, notifications and the audit trail."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterator, Optional, Tuple

import psycopg
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import ADMIN_ROLE, Account
from .domain.contracts import Notification, NotificationKind, UpdateSubscriptionInput
from .domain.errors import DirectoryError, NotifierError

_PROFILE_COLUMNS = """
    p.id::text,
    p.subscription_end_date,
    COALESCE(p.is_suspended, false),
    p.first_name,
    p.last_name,
    COALESCE(p.subscription_duration_days, 30),
    COALESCE(array_agg(r.role::text) FILTER (WHERE r.role IS NOT NULL), '{}')
"""


@dataclass(slots=True)
class AuditLogRecord:
    """Row projection for items in subscription_audit_log."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


@contextmanager
def _translate(error_cls: type[Exception], message: str) -> Iterator[None]:
    try:
        yield
    except psycopg.Error as exc:
        raise error_cls(f"{message}: {exc}") from exc


def notification_kind(value: str | None) -> NotificationKind:
    """Map a stored ``notifications.type`` to a kind; unknown types read as info."""
    try:
        return NotificationKind(value)
    except ValueError:
        return NotificationKind.info


class SubscriberRepository:
    """Postgres-backed directory, notification store and fired-transition ledger."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    # directory

    def list_accounts_with_subscription(self) -> list[Account]:
        """Return every profile with a subscription end date."""
        with _translate(DirectoryError, "error fetching profiles"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_PROFILE_COLUMNS}, NULL
                        FROM public.profiles p
                        LEFT JOIN public.user_roles r ON r.user_id = p.id
                        WHERE p.subscription_end_date IS NOT NULL
                        GROUP BY p.id
                        ORDER BY p.id
                        """
                    )
                    rows = cur.fetchall()
        return [self._map_account(row) for row in rows]

    def list_admin_account_ids(self) -> set[str]:
        with _translate(DirectoryError, "error fetching admin roles"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        "SELECT user_id::text FROM public.user_roles WHERE role = %s",
                        (ADMIN_ROLE,),
                    )
                    return {row[0] for row in cur.fetchall()}

    def resolve_email(self, account_id: str) -> str | None:
        with _translate(DirectoryError, "error fetching users"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute("SELECT email FROM auth.users WHERE id = %s", (account_id,))
                    row = cur.fetchone()
        if not row or not row[0]:
            return None
        return row[0]

    # admin back-office

    def list_accounts(self) -> list[Account]:
        """Return every profile with its roles and e-mail, for the admin listing."""
        with _translate(DirectoryError, "error fetching profiles"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_PROFILE_COLUMNS}, u.email
                        FROM public.profiles p
                        LEFT JOIN public.user_roles r ON r.user_id = p.id
                        LEFT JOIN auth.users u ON u.id = p.id
                        GROUP BY p.id, u.email
                        ORDER BY p.created_at DESC NULLS LAST, p.id
                        """
                    )
                    rows = cur.fetchall()
        return [self._map_account(row) for row in rows]

    def update_subscription(self, payload: UpdateSubscriptionInput) -> Account | None:
        """Set the end date and duration and clear the suspension flag."""
        with _translate(NotifierError, "error updating subscription"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE public.profiles
                        SET subscription_end_date = %s,
                            subscription_duration_days = %s,
                            is_suspended = false,
                            updated_at = NOW()
                        WHERE id = %s
                        RETURNING id
                        """,
                        (
                            payload.subscription_end_date,
                            payload.subscription_duration_days,
                            payload.account_id,
                        ),
                    )
                    if cur.fetchone() is None:
                        return None
                    account = self._fetch_account(cur, payload.account_id)
                conn.commit()
        return account

    def set_suspension(self, account_id: str, suspended: bool) -> Account | None:
        """Unconditionally set the suspension flag; the admin override."""
        with _translate(NotifierError, "error updating suspension"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE public.profiles
                        SET is_suspended = %s, updated_at = NOW()
                        WHERE id = %s
                        RETURNING id
                        """,
                        (suspended, account_id),
                    )
                    if cur.fetchone() is None:
                        return None
                    account = self._fetch_account(cur, account_id)
                conn.commit()
        return account

    # lifecycle side effects

    def create_notification(
        self, account_id: str, title: str, message: str, kind: NotificationKind
    ) -> None:
        with _translate(NotifierError, "error creating notification"):
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO public.notifications (user_id, title, message, type)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (account_id, title, message, NotificationKind(kind).value),
                    )
                conn.commit()

    def set_suspended(self, account_id: str) -> bool:
        """Flip ``is_suspended`` to true only if it is currently false."""
        with _translate(NotifierError, "error suspending account"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE public.profiles
                        SET is_suspended = true, updated_at = NOW()
                        WHERE id = %s AND is_suspended IS NOT TRUE
                        RETURNING id
                        """,
                        (account_id,),
                    )
                    flipped = cur.fetchone() is not None
                conn.commit()
        return flipped

    def record_transition(self, account_id: str, threshold: str, run_date: date) -> bool:
        """Insert the ledger key; ``False`` when the transition already fired that day."""
        with _translate(NotifierError, "error recording lifecycle transition"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO public.subscription_lifecycle_events (account_id, threshold, run_date)
                        VALUES (%s, %s, %s)
                        ON CONFLICT (account_id, threshold, run_date) DO NOTHING
                        RETURNING account_id
                        """,
                        (account_id, threshold, run_date),
                    )
                    inserted = cur.fetchone() is not None
                conn.commit()
        return inserted

    # notifications inbox

    def list_notifications(
        self, account_id: str, *, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        limit = max(1, min(limit, 100))
        clause = "AND is_read IS NOT TRUE" if unread_only else ""
        with _translate(DirectoryError, "error fetching notifications"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        SELECT id::text, user_id::text, title, message, type,
                               COALESCE(is_read, false), created_at
                        FROM public.notifications
                        WHERE user_id = %s {clause}
                        ORDER BY created_at DESC
                        LIMIT %s
                        """,
                        (account_id, limit),
                    )
                    rows = cur.fetchall()
        return [
            Notification(
                notification_id=row[0],
                account_id=row[1],
                title=row[2],
                message=row[3],
                kind=notification_kind(row[4]),
                is_read=row[5],
                created_at=row[6],
            )
            for row in rows
        ]

    def mark_notification_read(self, account_id: str, notification_id: str) -> bool:
        with _translate(NotifierError, "error updating notification"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        UPDATE public.notifications
                        SET is_read = true
                        WHERE id = %s AND user_id = %s
                        RETURNING id
                        """,
                        (notification_id, account_id),
                    )
                    updated = cur.fetchone() is not None
                conn.commit()
        return updated

    # audit trail

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry for a lifecycle transition or admin action."""
        with _translate(NotifierError, "error writing audit event"):
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO public.subscription_audit_log (account_id, event_type, actor, metadata, created_at)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (
                            account_id,
                            event_type,
                            actor,
                            Json(metadata or {}),
                            datetime.now(timezone.utc),
                        ),
                    )
                conn.commit()

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: Tuple[datetime, int] | None = None,
    ) -> tuple[list[AuditLogRecord], Optional[Tuple[datetime, int]]]:
        """Return audit entries newest first, filtered and keyset-paginated."""
        limit = max(1, min(limit, 100))
        clauses = ["TRUE"]
        params: list[Any] = []

        if account_id:
            clauses.append("account_id = %s")
            params.append(account_id)
        if event_type:
            clauses.append("event_type = %s")
            params.append(event_type)
        if created_after:
            clauses.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            clauses.append("created_at <= %s")
            params.append(created_before)
        if cursor:
            clauses.append("(created_at, audit_id) < (%s, %s)")
            params.extend(cursor)

        query = f"""
            SELECT audit_id, account_id::text, event_type, actor, metadata, created_at
            FROM public.subscription_audit_log
            WHERE {" AND ".join(clauses)}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %s
        """
        params.append(limit)

        with _translate(DirectoryError, "error fetching audit log"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    records = [
                        AuditLogRecord(
                            audit_id=row[0],
                            account_id=row[1],
                            event_type=row[2],
                            actor=row[3],
                            metadata=row[4] or {},
                            created_at=row[5],
                        )
                        for row in cur.fetchall()
                    ]

        next_cursor: Tuple[datetime, int] | None = None
        if len(records) == limit:
            last = records[-1]
            next_cursor = (last.created_at, last.audit_id)
        return records, next_cursor

    def _fetch_account(self, cur: psycopg.Cursor, account_id: str) -> Account | None:
        cur.execute(
            f"""
            SELECT {_PROFILE_COLUMNS}, u.email
            FROM public.profiles p
            LEFT JOIN public.user_roles r ON r.user_id = p.id
            LEFT JOIN auth.users u ON u.id = p.id
            WHERE p.id = %s
            GROUP BY p.id, u.email
            """,
            (account_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return self._map_account(row)

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw profile tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            subscription_end_date=row[1],
            is_suspended=row[2],
            first_name=row[3],
            last_name=row[4],
            subscription_duration_days=row[5],
            roles=frozenset(row[6] or ()),
            email=row[7],
        )
