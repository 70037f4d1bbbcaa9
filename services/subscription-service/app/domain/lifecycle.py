"""Pure decision rules for the subscription lifecycle.

Nothing here touches storage or the clock; the runner feeds in a fixed
``today`` so every transition is a function of ``(end_date, today)``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from enum import Enum
from html import escape
from zoneinfo import ZoneInfo

from .contracts import NotificationKind

WARNING_DAYS = 3
EXPIRATION_DAYS = 0
SUSPENSION_DAYS = -5


class LifecycleAction(str, Enum):
    warn = "warning"
    expire = "expired"
    suspend = "suspended"


NOTIFICATIONS: dict[LifecycleAction, tuple[str, str, NotificationKind]] = {
    LifecycleAction.warn: (
        "Suscripción por vencer",
        "Tu suscripción vence en 3 días. Por favor, renueva tu plan para continuar usando la plataforma.",
        NotificationKind.warning,
    ),
    LifecycleAction.expire: (
        "Suscripción vencida",
        "Tu suscripción ha vencido hoy. Por favor, renueva tu plan para evitar la suspensión de tu cuenta.",
        NotificationKind.error,
    ),
    LifecycleAction.suspend: (
        "Cuenta suspendida",
        "Tu cuenta ha sido suspendida por falta de pago. Contacta al administrador para reactivarla.",
        NotificationKind.error,
    ),
}

EXPIRATION_EMAIL_SUBJECT = "Tu suscripción ha vencido"


def today_in(tz_name: str = "UTC") -> date:
    """Return the current calendar date in the reference timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def days_until(end_date: date, today: date) -> int:
    """Signed whole days from ``today`` to ``end_date``; negative when past due."""
    delta = datetime.combine(end_date, datetime.min.time()) - datetime.combine(
        today, datetime.min.time()
    )
    return math.ceil(delta / timedelta(days=1))


def decide(diff_days: int, is_suspended: bool) -> LifecycleAction | None:
    """Map a day difference to the single transition it triggers, if any."""
    if diff_days == WARNING_DAYS:
        return LifecycleAction.warn
    if diff_days == EXPIRATION_DAYS:
        return LifecycleAction.expire
    if diff_days == SUSPENSION_DAYS and not is_suspended:
        return LifecycleAction.suspend
    return None


def render_expiration_email(display_name: str) -> str:
    """HTML body of the day-of-expiration e-mail."""
    return (
        f"<h1>Hola {escape(display_name)},</h1>\n"
        "<p>Tu suscripción a Control Financiero ha vencido hoy.</p>\n"
        "<p>Para continuar usando la plataforma sin interrupciones, por favor renueva "
        "tu suscripción lo antes posible.</p>\n"
        f"<p>Si no renuevas en los próximos {abs(SUSPENSION_DAYS)} días, tu cuenta será "
        "suspendida automáticamente.</p>\n"
        "<p>Saludos,<br>El equipo de Control Financiero</p>\n"
    )
