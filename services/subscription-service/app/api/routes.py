"""HTTP route definitions for the subscription service."""

from __future__ import annotations

import logging

from datetime import date, datetime
from typing import Any

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.account import Account
from ..domain.contracts import Notification, UpdateSubscriptionInput
from ..domain.errors import AccountNotFoundError, DirectoryError, NotifierError
from ..domain.lifecycle import today_in
from ..domain.runner import SubscriptionLifecycleRunner
from ..domain.service import AdminService
from ..scheduling.daily_check import RunAlreadyRecorded, RunGuard, execute_daily_check
from ..security.tokens import Principal, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class SubscriberResponse(BaseModel):
    """Serialised representation of an `Account` for the admin listing."""

    account_id: str
    display_name: str
    email: str | None
    roles: list[str]
    subscription_end_date: date | None
    subscription_duration_days: int
    is_suspended: bool

    @classmethod
    def from_domain(cls, account: Account) -> "SubscriberResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            display_name=account.display_name,
            email=account.email,
            roles=sorted(account.roles),
            subscription_end_date=account.subscription_end_date,
            subscription_duration_days=account.subscription_duration_days,
            is_suspended=account.is_suspended,
        )


class UpdateSubscriptionRequest(BaseModel):
    """Payload accepted when an administrator edits a subscription."""

    subscription_end_date: date | None = None
    subscription_duration_days: int = Field(default=30, ge=1)


class SuspensionRequest(BaseModel):
    suspended: bool


class NotificationResponse(BaseModel):
    notification_id: str
    title: str
    message: str
    kind: str
    is_read: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            notification_id=notification.notification_id,
            title=notification.title,
            message=notification.message,
            kind=notification.kind.value,
            is_read=notification.is_read,
            created_at=notification.created_at,
        )


class CheckResponse(BaseModel):
    """Summary returned after a lifecycle check."""

    success: bool = True
    message: str = "Subscription check completed"
    checked: int
    report: dict[str, Any]


class AuditLogEntry(BaseModel):
    """Audit log response entry."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AuditLogResponse(BaseModel):
    """Envelope for paginated audit log data."""

    items: list[AuditLogEntry]
    next_cursor: str | None = None


def get_service(request: Request) -> AdminService:
    """Resolve the `AdminService` stored on the FastAPI application state."""
    service: AdminService = request.app.state.admin_service
    return service


def get_principal(authorization: str | None = Header(default=None)) -> Principal:
    """Verify the bearer token on the request."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    try:
        return decode_access_token(authorization.split(" ", 1)[1].strip())
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc


def require_admin(
    principal: Principal = Depends(get_principal),
    service: AdminService = Depends(get_service),
) -> Principal:
    """Allow only accounts holding the admin role."""
    if not service.is_admin(principal.subject):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return principal


def require_scheduler(
    principal: Principal = Depends(get_principal),
    service: AdminService = Depends(get_service),
) -> Principal:
    """Allow the service-role key used by the scheduler, or an administrator."""
    if principal.is_service or service.is_admin(principal.subject):
        return principal
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="scheduler or admin required")


@router.post("/subscriptions/check", response_model=CheckResponse)
def run_subscription_check(
    request: Request,
    force: bool = Query(default=False),
    principal: Principal = Depends(require_scheduler),
):
    """Run the daily lifecycle check for today; one execution per calendar day unless forced."""
    runner: SubscriptionLifecycleRunner = request.app.state.lifecycle_runner
    guard: RunGuard = request.app.state.run_guard
    target = today_in(request.app.state.settings.lifecycle_timezone)
    logger.info("subscription check for %s triggered by %s", target.isoformat(), principal.subject)
    try:
        report = execute_daily_check(runner, guard, target, force=force)
    except RunAlreadyRecorded as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DirectoryError as exc:
        logger.error("error in subscription check: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)}
        )
    return CheckResponse(checked=report.checked, report=report.as_dict())


@router.get("/admin/subscribers", response_model=list[SubscriberResponse])
def list_subscribers(
    search: str | None = Query(default=None),
    status_filter: str = Query(default="all", alias="status"),
    subscription: str = Query(default="all"),
    _: Principal = Depends(require_admin),
    service: AdminService = Depends(get_service),
) -> list[SubscriberResponse]:
    """List subscriber accounts with the back-office filters applied."""
    try:
        accounts = service.list_subscribers(
            search=search, status=status_filter, subscription=subscription
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [SubscriberResponse.from_domain(account) for account in accounts]


@router.put("/admin/subscribers/{account_id}/subscription", response_model=SubscriberResponse)
def update_subscription(
    account_id: str,
    payload: UpdateSubscriptionRequest,
    principal: Principal = Depends(require_admin),
    service: AdminService = Depends(get_service),
) -> SubscriberResponse:
    """Edit the subscription end date and duration; the account is reactivated."""
    try:
        account = service.update_subscription(
            UpdateSubscriptionInput(
                account_id=account_id,
                subscription_end_date=payload.subscription_end_date,
                subscription_duration_days=payload.subscription_duration_days,
            ),
            actor=principal.subject,
        )
    except (AccountNotFoundError, NotifierError, ValueError) as exc:
        raise _http_error(exc) from exc
    return SubscriberResponse.from_domain(account)


@router.post("/admin/subscribers/{account_id}/suspension", response_model=SubscriberResponse)
def set_suspension(
    account_id: str,
    payload: SuspensionRequest,
    principal: Principal = Depends(require_admin),
    service: AdminService = Depends(get_service),
) -> SubscriberResponse:
    """Manually suspend or reactivate an account."""
    try:
        account = service.set_suspension(account_id, payload.suspended, actor=principal.subject)
    except (AccountNotFoundError, NotifierError) as exc:
        raise _http_error(exc) from exc
    return SubscriberResponse.from_domain(account)


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    service: AdminService = Depends(get_service),
) -> list[NotificationResponse]:
    """Return the caller's in-app notifications, newest first."""
    notifications = service.list_notifications(
        principal.subject, unread_only=unread_only, limit=limit
    )
    return [NotificationResponse.from_domain(item) for item in notifications]


@router.post("/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_notification_read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    service: AdminService = Depends(get_service),
) -> None:
    try:
        service.mark_notification_read(principal.subject, notification_id)
    except (AccountNotFoundError, NotifierError) as exc:
        raise _http_error(exc) from exc


@router.get("/audit/logs", response_model=AuditLogResponse)
def list_audit_logs(
    account_id: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    created_after: datetime | None = Query(default=None),
    created_before: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(default=None),
    _: Principal = Depends(require_admin),
    service: AdminService = Depends(get_service),
) -> AuditLogResponse:
    """Return paginated audit events with optional filtering."""
    try:
        records, next_cursor = service.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=cursor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    items = [
        AuditLogEntry(
            audit_id=record.audit_id,
            account_id=record.account_id,
            event_type=record.event_type,
            actor=record.actor,
            metadata=record.metadata,
            created_at=record.created_at,
        )
        for record in records
    ]
    return AuditLogResponse(items=items, next_cursor=next_cursor)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, AccountNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error("storage failure: %s", exc)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="storage unavailable")
