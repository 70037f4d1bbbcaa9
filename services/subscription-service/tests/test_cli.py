from __future__ import annotations

import logging
from datetime import date

import fakeredis
import pytest

from app import cli
from app.domain.runner import LifecycleReport
from app.scheduling.redis_run_guard import RedisRunGuard
from app.security.tokens import SERVICE_ROLE, decode_access_token


@pytest.fixture(autouse=True)
def keep_pytest_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def test_run_check_arguments():
    args = cli._parse_args(["run-check", "--date", "2025-01-10", "--force"])
    assert args.command == "run-check"
    assert args.date == date(2025, 1, 10)
    assert args.force is True


def test_run_check_rejects_bad_date():
    with pytest.raises(SystemExit):
        cli._parse_args(["run-check", "--date", "10/01/2025"])


def test_issue_service_token_prints_scheduler_token(capsys):
    cli.main(["issue-service-token", "--ttl-days", "1"])

    principal = decode_access_token(capsys.readouterr().out.strip())
    assert principal.role == SERVICE_ROLE
    assert principal.is_service


def test_run_check_exit_code_on_directory_failure(monkeypatch):
    class BrokenPool:
        def __init__(self, *args, **kwargs):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    class BrokenRunner:
        def run(self, today):
            from app.domain.errors import DirectoryError

            raise DirectoryError("error fetching profiles")

    monkeypatch.setattr(cli, "ConnectionPool", BrokenPool)
    monkeypatch.setattr(cli, "build_runner", lambda *args: BrokenRunner())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["run-check", "--date", "2025-01-10"])
    assert excinfo.value.code == 1


class StubPool:
    def __init__(self, *args, **kwargs):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class CountingRunner:
    def __init__(self):
        self.dates: list[date] = []

    def run(self, today):
        self.dates.append(today)
        return LifecycleReport(run_date=today, checked=1)


@pytest.fixture
def counting_runner(monkeypatch) -> CountingRunner:
    runner = CountingRunner()
    monkeypatch.setattr(cli, "ConnectionPool", StubPool)
    monkeypatch.setattr(cli, "build_runner", lambda *args: runner)
    return runner


def test_in_memory_guard_does_not_refuse_repeated_cron_runs(counting_runner, caplog):
    caplog.set_level(logging.WARNING, logger="subscription_service.cli")

    for _ in range(2):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run-check", "--date", "2025-01-10"])
        assert excinfo.value.code == 0

    assert counting_runner.dates == [date(2025, 1, 10), date(2025, 1, 10)]
    assert "RUN_GUARD_BACKEND=redis" in caplog.text


def test_redis_guard_refuses_second_cron_run_for_same_date(counting_runner, monkeypatch, capsys):
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    guard = RedisRunGuard(client, ttl_seconds=3600)
    monkeypatch.setattr(cli, "build_run_guard", lambda settings: guard)

    for _ in range(2):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run-check", "--date", "2025-01-10"])
        assert excinfo.value.code == 0

    assert counting_runner.dates == [date(2025, 1, 10)]
    assert capsys.readouterr().out.count("checked=1") == 1
