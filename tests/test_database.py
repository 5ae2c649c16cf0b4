"""Tests for the unit-of-work helper and the expiry sweep job."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from edumart.core.database import is_conflict, transactional
from edumart.core.errors import TransactionConflict
from edumart.jobs import run_sweep_once
from edumart.services import ledger_service

from .conftest import NOW


class _DriverError(Exception):
    def __init__(self, message: str, pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


def _conflict() -> OperationalError:
    return OperationalError("UPDATE users", {}, _DriverError("could not serialize access", pgcode="40001"))


class TestTransactional:
    def test_conflict_detection(self) -> None:
        assert is_conflict(_conflict())
        assert is_conflict(OperationalError("SELECT 1", {}, _DriverError("database is locked")))
        assert not is_conflict(OperationalError("SELECT 1", {}, _DriverError("no such table", pgcode="42P01")))

    def test_retries_conflicts_then_commits(self, session_factory) -> None:
        calls = []

        def work(_session):
            calls.append(1)
            if len(calls) < 3:
                raise _conflict()
            return "done"

        assert transactional(work, session_factory=session_factory, attempts=3) == "done"
        assert len(calls) == 3

    def test_exhausted_retries_raise_transaction_conflict(self, session_factory) -> None:
        def work(_session):
            raise _conflict()

        with pytest.raises(TransactionConflict) as excinfo:
            transactional(work, session_factory=session_factory, attempts=2)
        assert excinfo.value.status_code == 409

    def test_other_errors_are_not_retried(self, session_factory) -> None:
        calls = []

        def work(_session):
            calls.append(1)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            transactional(work, session_factory=session_factory, attempts=3)
        assert len(calls) == 1


class TestSweepJob:
    def test_run_sweep_once_expires_and_commits(self, session, session_factory, make_user) -> None:
        user = make_user()
        ledger_service.add_points(session, user_id=user.id, amount=4, expiry_days=1, now=NOW)
        ledger_service.add_points(session, user_id=user.id, amount=6, now=NOW)
        session.commit()
        user_id = user.id
        session.close()

        summary = run_sweep_once(NOW + timedelta(days=2), session_factory=session_factory)

        assert summary == {"users_swept": 1, "points_expired": 4}
        check = session_factory()
        try:
            check_result = ledger_service.verify_balance(check, user_id=user_id, now=NOW + timedelta(days=2))
            assert check_result.cached == 6
            assert check_result.consistent
        finally:
            check.close()
