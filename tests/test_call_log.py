"""
Tests for call outcome logging and call history
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from types import GeneratorType

from loan_recovery.call_log import (
    CallOutcome, UNKNOWN_EMPLOYEE, parse_amount, parse_promise_date
)
from loan_recovery.cases import WorkingStatus
from loan_recovery.errors import (
    CaseNotFound, ConflictError, MissingPromiseDate, ValidationError
)


@pytest.fixture
def assigned_case(system, telecaller):
    case = system.create_case("t1", "LN1", outstanding_amount="1000")
    return system.assign_case("t1", case.id, telecaller.id)


class TestParsing:
    """Input normalization helpers"""

    def test_promise_date_forms(self):
        aware = parse_promise_date("2024-06-01T10:00:00+05:30")
        assert aware.tzinfo is not None
        assert parse_promise_date("2024-06-01").tzinfo == timezone.utc
        assert parse_promise_date(date(2024, 6, 1)) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", "1970-01-01", "1969-12-31"])
    def test_unusable_promise_dates(self, value):
        with pytest.raises(MissingPromiseDate):
            parse_promise_date(value)

    def test_amounts(self):
        assert parse_amount("1,250.50") == Decimal("1250.50")
        assert parse_amount(0) == Decimal("0")
        for bad in ("abc", "-5", "NaN", True):
            with pytest.raises(ValidationError):
                parse_amount(bad)


class TestLogCall:
    """Recording outcomes"""

    def test_first_contact_moves_case_to_in_progress(self, system, assigned_case, telecaller):
        entry = system.log_call("t1", assigned_case.id, telecaller.id,
                                CallOutcome.NO_RESPONSE, "Rang, no answer")

        assert entry.call_status == CallOutcome.NO_RESPONSE
        assert entry.sequence == 1
        assert system.get_case("t1", assigned_case.id).status == WorkingStatus.IN_PROGRESS

    def test_new_case_stays_new(self, system, telecaller):
        case = system.create_case("t1", "LN2")
        system.log_call("t1", case.id, telecaller.id, "WN", "wrong number")
        assert system.get_case("t1", case.id).status == WorkingStatus.NEW

    def test_ptp_requires_date(self, system, assigned_case, telecaller):
        with pytest.raises(MissingPromiseDate):
            system.log_call("t1", assigned_case.id, telecaller.id, "PTP", "will pay")

        assert list(system.get_call_history("t1", assigned_case.id)) == []
        assert system.get_case("t1", assigned_case.id).status == WorkingStatus.ASSIGNED

    def test_ptp_with_date(self, system, assigned_case, telecaller):
        entry = system.log_call("t1", assigned_case.id, telecaller.id, "FUTURE_PTP",
                                "will pay next month", ptp_date="2024-07-15")
        assert entry.ptp_date == datetime(2024, 7, 15, tzinfo=timezone.utc)
        assert system.call_log.latest_promise("t1", assigned_case.id).id == entry.id

    def test_notes_required(self, system, assigned_case, telecaller):
        with pytest.raises(ValidationError, match="notes"):
            system.log_call("t1", assigned_case.id, telecaller.id, "BUSY", "   ")

    def test_unknown_outcome(self, system, assigned_case, telecaller):
        with pytest.raises(ValidationError, match="Unknown call outcome"):
            system.log_call("t1", assigned_case.id, telecaller.id, "MAYBE", "hmm")

    def test_payment_received_needs_amount(self, system, assigned_case, telecaller):
        with pytest.raises(ValidationError):
            system.log_call("t1", assigned_case.id, telecaller.id, "PAYMENT_RECEIVED", "paid")

    def test_logged_payment_does_not_touch_ledger(self, system, assigned_case, telecaller):
        system.log_call("t1", assigned_case.id, telecaller.id, "PAYMENT_RECEIVED", "paid",
                        amount_collected="100")
        assert system.get_case("t1", assigned_case.id).total_collected_amount == Decimal("0")

    def test_unknown_case(self, system, telecaller):
        with pytest.raises(CaseNotFound):
            system.log_call("t1", "ghost", telecaller.id, "BUSY", "busy")

    def test_status_conflict_writes_no_history(self, system, assigned_case, telecaller,
                                               monkeypatch):
        monkeypatch.setattr(system.case_manager, "compare_and_save", lambda c, e: False)
        with pytest.raises(ConflictError):
            system.log_call("t1", assigned_case.id, telecaller.id, "BUSY", "busy")

        assert list(system.get_call_history("t1", assigned_case.id)) == []
        assert system.get_case("t1", assigned_case.id).status == WorkingStatus.ASSIGNED


class TestCallHistory:
    """Reading the log back"""

    def test_newest_first_with_names(self, system, assigned_case, telecaller, second_telecaller):
        system.log_call("t1", assigned_case.id, telecaller.id, "RNR", "first")
        system.log_call("t1", assigned_case.id, second_telecaller.id, "CALL_BACK", "second")
        system.log_call("t1", assigned_case.id, telecaller.id, "BUSY", "third")

        history = list(system.get_call_history("t1", assigned_case.id))

        assert [item.entry.call_notes for item in history] == ["third", "second", "first"]
        assert [item.entry.sequence for item in history] == [3, 2, 1]
        assert history[1].employee_name == "Arjun Mehta"
        assert history[0].to_dict()["employee_name"] == "Priya Singh"

    def test_unknown_employee_name(self, system, assigned_case):
        system.log_call("t1", assigned_case.id, "not-an-employee", "BUSY", "busy")
        history = list(system.get_call_history("t1", assigned_case.id))
        assert history[0].employee_name == UNKNOWN_EMPLOYEE

    def test_name_lookup_failure_does_not_fail_read(self, system, assigned_case, telecaller,
                                                    monkeypatch):
        system.log_call("t1", assigned_case.id, telecaller.id, "BUSY", "busy")

        def broken(*args, **kwargs):
            raise RuntimeError("directory down")

        monkeypatch.setattr(system.employees, "names_by_id", broken)
        history = list(system.get_call_history("t1", assigned_case.id))
        assert history[0].employee_name == UNKNOWN_EMPLOYEE

    def test_full_history_is_lazy_and_unbounded(self, system, assigned_case, telecaller):
        for i in range(8):
            system.log_call("t1", assigned_case.id, telecaller.id, "RNR", f"call {i}")

        history = system.get_call_history("t1", assigned_case.id)
        assert isinstance(history, GeneratorType)
        assert len(list(history)) == 8

    def test_recent_is_bounded(self, system, assigned_case, telecaller):
        for i in range(8):
            system.log_call("t1", assigned_case.id, telecaller.id, "RNR", f"call {i}")

        recent = system.recent_calls("t1", assigned_case.id)
        assert len(recent) == 5
        assert recent[0].entry.call_notes == "call 7"
        assert len(list(system.get_call_history("t1", assigned_case.id, limit=2))) == 2

    def test_history_of_unknown_case(self, system):
        with pytest.raises(CaseNotFound):
            system.get_call_history("t1", "ghost")

    def test_history_is_tenant_scoped(self, system, assigned_case, telecaller):
        system.log_call("t1", assigned_case.id, telecaller.id, "RNR", "call")
        system.tenant_manager.create_tenant("Other", "other", tenant_id="t2")
        with pytest.raises(CaseNotFound):
            system.get_call_history("t2", assigned_case.id)
