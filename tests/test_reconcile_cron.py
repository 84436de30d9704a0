"""
Tests for the nightly reconciliation job's CLI.
"""

from datetime import date
from uuid import uuid4

from cron import reconcile_trips
from app.services.reconciliation import CAPACITY_DRIFT, IntegrityIssue, ReconciliationReport


def fake_run(report=None, error=None):
    calls = []

    async def _run(travel_date=None, include_finished=False):
        calls.append((travel_date, include_finished))
        if error:
            raise error
        return report

    return _run, calls


class TestReconcileCron:

    def test_parse_args(self):
        args = reconcile_trips.parse_args(["--date", "2026-11-18", "--include-finished"])
        assert args.date == date(2026, 11, 18)
        assert args.include_finished is True

        args = reconcile_trips.parse_args([])
        assert args.date is None
        assert args.include_finished is False

    def test_clean_run_exits_zero(self, monkeypatch):
        run, calls = fake_run(ReconciliationReport(checked_trips=3, issues=[]))
        monkeypatch.setattr(reconcile_trips, "run_reconciliation", run)

        assert reconcile_trips.main(["--date", "2026-11-18"]) == 0
        assert calls == [(date(2026, 11, 18), False)]

    def test_drift_exits_one(self, monkeypatch):
        issue = IntegrityIssue(
            trip_id=uuid4(),
            kind=CAPACITY_DRIFT,
            message="consumed packages 7 != 4",
            expected=4,
            actual=7,
        )
        run, _ = fake_run(ReconciliationReport(checked_trips=1, issues=[issue]))
        monkeypatch.setattr(reconcile_trips, "run_reconciliation", run)

        assert reconcile_trips.main([]) == 1

    def test_failure_exits_two(self, monkeypatch):
        run, _ = fake_run(error=RuntimeError("database unreachable"))
        monkeypatch.setattr(reconcile_trips, "run_reconciliation", run)

        assert reconcile_trips.main([]) == 2
