"""Typed failures raised by the collaborators of the subscription service."""

from __future__ import annotations


class SubscriptionServiceError(Exception):
    """Base class for every error raised by this service."""


class DirectoryError(SubscriptionServiceError):
    """Reading accounts, roles or e-mail addresses failed; the run must stop."""


class NotifierError(SubscriptionServiceError):
    """Persisting a notification or a suspension flag failed for one account."""


class EmailDeliveryError(SubscriptionServiceError):
    """The e-mail provider rejected the message or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AccountNotFoundError(SubscriptionServiceError):
    """An admin or inbox operation referenced an unknown record."""
