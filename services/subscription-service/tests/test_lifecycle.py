from __future__ import annotations

from datetime import date

import pytest

from app.domain.account import Account
from app.domain.lifecycle import LifecycleAction, days_until, decide, render_expiration_email


def test_days_until_is_signed_day_difference():
    today = date(2025, 1, 7)
    assert days_until(date(2025, 1, 10), today) == 3
    assert days_until(date(2025, 1, 7), today) == 0
    assert days_until(date(2025, 1, 2), today) == -5


def test_days_until_crosses_month_and_leap_day():
    assert days_until(date(2024, 3, 1), date(2024, 2, 27)) == 3
    assert days_until(date(2025, 1, 1), date(2024, 12, 27)) == 5


@pytest.mark.parametrize(
    ("diff_days", "expected"),
    [
        (3, LifecycleAction.warn),
        (0, LifecycleAction.expire),
        (-5, LifecycleAction.suspend),
        (2, None),
        (4, None),
        (1, None),
        (-1, None),
        (-4, None),
        (-6, None),
        (30, None),
    ],
)
def test_decide_fires_only_on_exact_thresholds(diff_days, expected):
    assert decide(diff_days, is_suspended=False) is expected


def test_decide_suspension_is_noop_when_already_suspended():
    assert decide(-5, is_suspended=True) is None
    # the warning and expiry notices do not look at the flag
    assert decide(3, is_suspended=True) is LifecycleAction.warn
    assert decide(0, is_suspended=True) is LifecycleAction.expire


def test_display_name_falls_back_to_placeholder():
    assert Account("a", first_name="Ana", last_name="López").display_name == "Ana López"
    assert Account("b", first_name=None, last_name="López").display_name == "López"
    assert Account("c").display_name == "Usuario"
    assert Account("d", first_name="", last_name="").display_name == "Usuario"


def test_expiration_email_escapes_display_name():
    body = render_expiration_email("<b>Eve</b>")
    assert "Hola &lt;b&gt;Eve&lt;/b&gt;," in body
    assert "próximos 5 días" in body
