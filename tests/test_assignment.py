"""
Tests for the assignment engine: assign, unassign, team change, transfer,
close and bulk operations
"""

import pytest

from loan_recovery.assignment import BulkOperation
from loan_recovery.cases import CaseStatus, WorkingStatus
from loan_recovery.employees import EmployeeRole
from loan_recovery.errors import (
    CaseClosed, CaseNotFound, TeamNotFound, TelecallerNotFound, ValidationError
)


@pytest.fixture
def case(system):
    return system.create_case("t1", "LN1", created_by="sup", customer_name="Asha")


@pytest.fixture
def closed_case(system, case):
    return system.close_case("t1", case.id, "sup")


class TestAssign:
    """Telecaller assignment"""

    def test_assign_sets_telecaller_and_status(self, system, case, telecaller):
        assigned = system.assign_case("t1", case.id, telecaller.id, assigned_by="lead")

        assert assigned.telecaller_id == telecaller.id
        assert assigned.assigned_employee_id == "EMP001"
        assert assigned.status == WorkingStatus.ASSIGNED

    def test_assign_is_idempotent(self, system, case, telecaller):
        first = system.assign_case("t1", case.id, telecaller.id)
        second = system.assign_case("t1", case.id, telecaller.id)

        assert second.updated_at == first.updated_at
        assert second.status == WorkingStatus.ASSIGNED

    def test_same_telecaller_keeps_in_progress(self, system, case, telecaller):
        system.assign_case("t1", case.id, telecaller.id)
        system.log_call("t1", case.id, telecaller.id, "BUSY", "line busy")

        again = system.assign_case("t1", case.id, telecaller.id)
        assert again.status == WorkingStatus.IN_PROGRESS

    def test_reassign_to_other_telecaller_resets_status(self, system, case, telecaller,
                                                        second_telecaller):
        system.assign_case("t1", case.id, telecaller.id)
        system.log_call("t1", case.id, telecaller.id, "BUSY", "line busy")

        moved = system.assign_case("t1", case.id, second_telecaller.id)
        assert moved.telecaller_id == second_telecaller.id
        assert moved.assigned_employee_id == "EMP002"
        assert moved.status == WorkingStatus.ASSIGNED

    def test_unknown_telecaller(self, system, case):
        with pytest.raises(TelecallerNotFound):
            system.assign_case("t1", case.id, "ghost")
        assert system.get_case("t1", case.id).telecaller_id is None

    def test_team_incharge_cannot_be_assigned(self, system, case):
        lead = system.employees.create_employee("t1", "Lead", "EMP900", EmployeeRole.TEAM_INCHARGE)
        with pytest.raises(TelecallerNotFound):
            system.assign_case("t1", case.id, lead.id)

    def test_unknown_case(self, system, telecaller):
        with pytest.raises(CaseNotFound):
            system.assign_case("t1", "ghost", telecaller.id)

    def test_closed_case_rejected_without_mutation(self, system, closed_case, telecaller):
        with pytest.raises(CaseClosed):
            system.assign_case("t1", closed_case.id, telecaller.id)

        stored = system.get_case("t1", closed_case.id)
        assert stored.telecaller_id is None
        assert stored.updated_at == closed_case.updated_at


class TestUnassignAndTeam:
    def test_unassign(self, system, case, telecaller):
        system.assign_case("t1", case.id, telecaller.id)
        cleared = system.unassign_case("t1", case.id)

        assert cleared.telecaller_id is None
        assert cleared.assigned_employee_id is None
        assert cleared.status == WorkingStatus.NEW

    def test_unassign_closed_case(self, system, closed_case):
        with pytest.raises(CaseClosed):
            system.unassign_case("t1", closed_case.id)

    def test_change_team_leaves_telecaller_alone(self, system, case, telecaller, team):
        system.assign_case("t1", case.id, telecaller.id)
        moved = system.change_case_team("t1", case.id, team.id)

        assert moved.team_id == team.id
        assert moved.telecaller_id == telecaller.id
        assert moved.status == WorkingStatus.ASSIGNED

    def test_change_team_unknown_team(self, system, case):
        with pytest.raises(TeamNotFound):
            system.change_case_team("t1", case.id, "ghost")

    def test_change_team_closed_case(self, system, closed_case, team):
        with pytest.raises(CaseClosed):
            system.change_case_team("t1", closed_case.id, team.id)

    def test_transfer_with_telecaller(self, system, case, team, telecaller):
        moved = system.transfer_case("t1", case.id, team.id, telecaller.id)
        assert moved.team_id == team.id
        assert moved.telecaller_id == telecaller.id

    def test_transfer_validates_before_writing(self, system, case, team):
        with pytest.raises(TelecallerNotFound):
            system.transfer_case("t1", case.id, team.id, "ghost")
        assert system.get_case("t1", case.id).team_id is None


class TestClose:
    def test_close_sets_both_statuses(self, closed_case):
        assert closed_case.status == WorkingStatus.CLOSED
        assert closed_case.case_status == CaseStatus.CLOSED

    def test_close_twice(self, system, closed_case):
        with pytest.raises(CaseClosed):
            system.close_case("t1", closed_case.id, "sup")


class TestBulkOperations:
    """Per-case isolation in bulk operations"""

    def test_bulk_assign_partial_failure(self, system, telecaller):
        open_a = system.create_case("t1", "LN1")
        open_b = system.create_case("t1", "LN2")
        closed = system.create_case("t1", "LN3")
        system.close_case("t1", closed.id, "sup")

        result = system.bulk_operate(
            "t1", [open_a.id, closed.id, "ghost", open_b.id],
            BulkOperation.ASSIGN, telecaller_id=telecaller.id, performed_by="lead"
        )

        assert result.total == 4
        assert result.success == 2
        assert result.errors == 2
        assert [e.case_id for e in result.error_details] == [closed.id, "ghost"]
        assert system.get_case("t1", open_b.id).telecaller_id == telecaller.id

    def test_bulk_change_team(self, system, team):
        cases = [system.create_case("t1", f"LN{i}") for i in range(3)]
        result = system.bulk_operate("t1", [c.id for c in cases], "change_team", team_id=team.id)

        assert result.success == 3
        assert all(system.get_case("t1", c.id).team_id == team.id for c in cases)

    def test_bulk_unassign(self, system, telecaller):
        case = system.create_case("t1", "LN1")
        system.assign_case("t1", case.id, telecaller.id)
        result = system.bulk_operate("t1", [case.id], BulkOperation.UNASSIGN)

        assert result.success == 1
        assert result.to_dict()["operation"] == "unassign"

    def test_bulk_assign_requires_telecaller(self, system):
        with pytest.raises(ValidationError):
            system.bulk_operate("t1", ["x"], BulkOperation.ASSIGN)

    def test_bulk_unknown_telecaller_fails_each_case(self, system):
        case = system.create_case("t1", "LN1")
        result = system.bulk_operate("t1", [case.id], BulkOperation.ASSIGN, telecaller_id="ghost")
        assert result.errors == 1
