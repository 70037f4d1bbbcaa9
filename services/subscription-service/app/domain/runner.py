"""Daily subscription lifecycle check.

The runner scans every account with a managed subscription, computes how
many whole days remain until the end date and fires the single transition
that value maps to: a warning three days ahead, an expiration notice and
e-mail on the day, and an automatic suspension five days after.

Reading the directory is all-or-nothing: a failure there raises
:class:`~app.domain.errors.DirectoryError` before any side effect. Once the
loop starts, every per-account failure is logged and counted and the loop
moves on to the next account.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from .account import Account
from .contracts import Directory, FiredLedger, Notifier
from .errors import EmailDeliveryError, NotifierError
from .lifecycle import (
    EXPIRATION_EMAIL_SUBJECT,
    NOTIFICATIONS,
    LifecycleAction,
    days_until,
    decide,
    render_expiration_email,
    today_in,
)
from ..metrics import LIFECYCLE_FAILURES, LIFECYCLE_LAST_CHECKED, LIFECYCLE_TRANSITIONS

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system:subscription-check"


class AuditSink(Protocol):
    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


@dataclass(slots=True)
class LifecycleReport:
    """Counters describing one execution of the daily check."""

    run_date: date
    checked: int = 0
    skipped_admins: int = 0
    warned: int = 0
    expired: int = 0
    suspended: int = 0
    emails_sent: int = 0
    email_failures: int = 0
    failures: int = 0
    replayed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_date": self.run_date.isoformat(),
            "checked": self.checked,
            "skipped_admins": self.skipped_admins,
            "warned": self.warned,
            "expired": self.expired,
            "suspended": self.suspended,
            "emails_sent": self.emails_sent,
            "email_failures": self.email_failures,
            "failures": self.failures,
            "replayed": self.replayed,
        }


class SubscriptionLifecycleRunner:
    """Evaluates every eligible account against a single calendar day."""

    def __init__(
        self,
        directory: Directory,
        notifier: Notifier,
        *,
        timezone: str = "UTC",
        ledger: FiredLedger | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._directory = directory
        self._notifier = notifier
        self._timezone = timezone
        self._ledger = ledger
        self._audit = audit

    def run_daily_check(self) -> int:
        """Run the check for today in the reference timezone; return accounts scanned."""
        return self.run(today_in(self._timezone)).checked

    def run(self, today: date) -> LifecycleReport:
        """Run the check as if the current date were ``today``."""
        logger.info("starting subscription check for %s", today.isoformat())
        report = LifecycleReport(run_date=today)

        accounts = self._directory.list_accounts_with_subscription()
        logger.info("found %d profiles with subscriptions", len(accounts))
        admin_ids = self._directory.list_admin_account_ids()

        eligible: list[Account] = []
        for account in accounts:
            if account.account_id in admin_ids:
                logger.info("skipping admin user %s", account.account_id)
                report.skipped_admins += 1
                continue
            if account.subscription_end_date is None:
                continue
            eligible.append(account)

        emails = {account.account_id: self._resolve_email(account) for account in eligible}

        report.checked = len(accounts)
        for account in eligible:
            self._process(account, emails.get(account.account_id), today, report)

        LIFECYCLE_LAST_CHECKED.set(report.checked)
        logger.info("subscription check completed: %s", report.as_dict())
        return report

    def _resolve_email(self, account: Account) -> str | None:
        if account.email:
            return account.email
        return self._directory.resolve_email(account.account_id)

    def _process(
        self, account: Account, email: str | None, today: date, report: LifecycleReport
    ) -> None:
        if account.subscription_end_date is None:
            return
        diff_days = days_until(account.subscription_end_date, today)
        logger.debug("user %s: %d days until expiration", account.account_id, diff_days)

        action = decide(diff_days, account.is_suspended)
        if action is None:
            return

        if self._ledger is not None and not self._ledger.record_transition(
            account.account_id, action.value, today
        ):
            logger.info(
                "transition %s already fired for %s on %s",
                action.value,
                account.account_id,
                today.isoformat(),
            )
            report.replayed += 1
            return

        if action is LifecycleAction.warn:
            if self._notify(account, action, report):
                report.warned += 1
                logger.info("sent 3-day warning notification to %s", account.account_id)
        elif action is LifecycleAction.expire:
            if self._notify(account, action, report):
                report.expired += 1
            if email:
                self._send_expiration_email(account, email, report)
        elif action is LifecycleAction.suspend:
            self._suspend(account, report)

    def _notify(self, account: Account, action: LifecycleAction, report: LifecycleReport) -> bool:
        title, message, kind = NOTIFICATIONS[action]
        try:
            self._notifier.create_notification(account.account_id, title, message, kind)
        except NotifierError as exc:
            logger.error(
                "error creating %s notification for %s: %s", action.value, account.account_id, exc
            )
            report.failures += 1
            LIFECYCLE_FAILURES.labels(stage="notification").inc()
            return False
        LIFECYCLE_TRANSITIONS.labels(action=action.value).inc()
        self._record(account.account_id, f"subscription.{action.value}", {"title": title})
        return True

    def _send_expiration_email(self, account: Account, email: str, report: LifecycleReport) -> None:
        try:
            self._notifier.send_email(
                email, EXPIRATION_EMAIL_SUBJECT, render_expiration_email(account.display_name)
            )
        except EmailDeliveryError as exc:
            logger.error(
                "error sending email to %s for account %s: %s", email, account.account_id, exc
            )
            report.email_failures += 1
            LIFECYCLE_FAILURES.labels(stage="email").inc()
            self._record(account.account_id, "subscription.email_failed", {"error": str(exc)})
            return
        report.emails_sent += 1
        logger.info("sent expiration email to %s", email)

    def _suspend(self, account: Account, report: LifecycleReport) -> None:
        try:
            flipped = self._notifier.set_suspended(account.account_id)
        except NotifierError as exc:
            logger.error("error suspending account %s: %s", account.account_id, exc)
            report.failures += 1
            LIFECYCLE_FAILURES.labels(stage="suspension").inc()
            return
        if not flipped:
            logger.info("account %s was already suspended", account.account_id)
            return
        account.is_suspended = True
        report.suspended += 1
        self._notify(account, LifecycleAction.suspend, report)
        logger.info("suspended account %s", account.account_id)

    def _record(self, account_id: str, event_type: str, metadata: dict[str, Any]) -> None:
        if self._audit is None:
            return
        try:
            self._audit.write_audit_event(
                account_id=account_id,
                event_type=event_type,
                actor=SYSTEM_ACTOR,
                metadata=metadata,
            )
        except NotifierError as exc:
            logger.warning("could not write audit event %s for %s: %s", event_type, account_id, exc)
