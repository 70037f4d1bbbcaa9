from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

ADMIN_ROLE = "admin"
DEFAULT_DISPLAY_NAME = "Usuario"


@dataclass(slots=True)
class Account:
    """Subscriber profile with an optional managed subscription."""

    account_id: str
    subscription_end_date: date | None = None
    is_suspended: bool = False
    first_name: str | None = None
    last_name: str | None = None
    subscription_duration_days: int = 30
    roles: frozenset[str] = field(default_factory=frozenset)
    email: str | None = None

    @property
    def display_name(self) -> str:
        """Full name with empty parts dropped, or the generic placeholder."""
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or DEFAULT_DISPLAY_NAME

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles
