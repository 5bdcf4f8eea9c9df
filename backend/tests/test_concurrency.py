"""Unit-of-work retry behaviour."""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from workshop.extensions import db
from workshop.models import Mechanic
from workshop.services.concurrency import run_with_retry


class TestRunWithRetry:
    def test_retries_stale_data_then_succeeds(self, db_session):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("row version changed")
            return "ok"

        assert run_with_retry(_op, attempts=3, backoff_base=0) == "ok"
        assert calls["n"] == 2

    def test_gives_up_after_attempts(self, db_session):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            raise StaleDataError("still stale")

        with pytest.raises(StaleDataError):
            run_with_retry(_op, attempts=2, backoff_base=0)
        assert calls["n"] == 2

    def test_other_errors_roll_back_without_retry(self, db_session):
        calls = {"n": 0}

        def _op():
            calls["n"] += 1
            db.session.add(Mechanic(name="Temp"))
            db.session.flush()
            raise ValueError("business rule")

        with pytest.raises(ValueError):
            run_with_retry(_op, attempts=3, backoff_base=0)

        assert calls["n"] == 1
        assert db.session.query(Mechanic).count() == 0
