"""
Assignment Engine Module

Team incharge actions on cases: assign, unassign, change team, transfer and
bulk variants of these. Team and telecaller assignment are independent
axes; only telecaller assignment drives the working status. A closed case
accepts no assignment mutation.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from enum import Enum

from .cases import Case, CaseManager, CaseStatus, WorkingStatus
from .employees import EmployeeDirectory, TeamDirectory
from .errors import CaseClosed, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.assignment")


class BulkOperation(Enum):
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    CHANGE_TEAM = "change_team"


@dataclass
class CaseOperationError:
    case_id: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"case_id": self.case_id, "error": self.error}


@dataclass
class BulkOperationResult:
    """Per-case outcome summary of a bulk operation"""
    operation: BulkOperation
    total: int = 0
    success: int = 0
    error_details: List[CaseOperationError] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "total": self.total,
            "success": self.success,
            "errors": self.errors,
            "error_details": [detail.to_dict() for detail in self.error_details],
        }


class AssignmentEngine:
    """Assignment state transitions for cases"""

    def __init__(self, case_manager: CaseManager, employee_directory: EmployeeDirectory,
                 team_directory: TeamDirectory):
        self.case_manager = case_manager
        self.employee_directory = employee_directory
        self.team_directory = team_directory

    def _ensure_open(self, case: Case) -> Case:
        if case.is_closed:
            raise CaseClosed(f"Case {case.id} is closed", case.id)
        return case

    def _modify(self, tenant_id: str, case_id: str,
                mutate: Callable[[Case], bool]) -> Case:
        def guarded(case: Case) -> bool:
            self._ensure_open(case)
            return mutate(case)
        return self.case_manager.modify_case(tenant_id, case_id, guarded)

    def assign(self, tenant_id: str, case_id: str, telecaller_id: str,
               assigned_by: Optional[str] = None) -> Case:
        """
        Assign a case to a telecaller.

        Repeating the assignment to the current telecaller yields the same
        state. A case already being worked (in_progress) keeps that status
        when reassigned to the same telecaller.

        Raises:
            CaseNotFound, CaseClosed, TelecallerNotFound
        """
        self._ensure_open(self.case_manager.require_case(tenant_id, case_id))
        telecaller = self.employee_directory.get_telecaller(tenant_id, telecaller_id)

        def mutate(case: Case) -> bool:
            same_telecaller = case.telecaller_id == telecaller.id
            if (same_telecaller and case.assigned_employee_id == telecaller.emp_id
                    and case.status in (WorkingStatus.ASSIGNED, WorkingStatus.IN_PROGRESS)):
                return False
            case.telecaller_id = telecaller.id
            case.assigned_employee_id = telecaller.emp_id
            if not (same_telecaller and case.status == WorkingStatus.IN_PROGRESS):
                case.status = WorkingStatus.ASSIGNED
            return True

        case = self._modify(tenant_id, case_id, mutate)
        log_action(logger, "info", "Case assigned", user_id=assigned_by,
                   action="assign_case", resource=case_id, tenant_id=tenant_id,
                   extra={"telecaller_id": telecaller.id, "emp_id": telecaller.emp_id})
        return case

    def unassign(self, tenant_id: str, case_id: str,
                 unassigned_by: Optional[str] = None) -> Case:
        """Clear the telecaller and return the case to ``new``"""
        def mutate(case: Case) -> bool:
            case.telecaller_id = None
            case.assigned_employee_id = None
            case.status = WorkingStatus.NEW
            return True

        case = self._modify(tenant_id, case_id, mutate)
        log_action(logger, "info", "Case unassigned", user_id=unassigned_by,
                   action="unassign_case", resource=case_id, tenant_id=tenant_id)
        return case

    def change_team(self, tenant_id: str, case_id: str, team_id: str,
                    changed_by: Optional[str] = None) -> Case:
        """Move a case to another team; telecaller and status are untouched"""
        self._ensure_open(self.case_manager.require_case(tenant_id, case_id))
        self.team_directory.require_team(tenant_id, team_id)

        def mutate(case: Case) -> bool:
            if case.team_id == team_id:
                return False
            case.team_id = team_id
            return True

        case = self._modify(tenant_id, case_id, mutate)
        log_action(logger, "info", "Case team changed", user_id=changed_by,
                   action="change_case_team", resource=case_id, tenant_id=tenant_id,
                   extra={"team_id": team_id})
        return case

    def close(self, tenant_id: str, case_id: str, closed_by: str) -> Case:
        """Supervisor close; terminal for both working and resolution status"""
        def mutate(case: Case) -> bool:
            case.status = WorkingStatus.CLOSED
            case.case_status = CaseStatus.CLOSED
            return True

        case = self._modify(tenant_id, case_id, mutate)
        log_action(logger, "info", "Case closed", user_id=closed_by,
                   action="close_case", resource=case_id, tenant_id=tenant_id)
        return case

    def transfer(self, tenant_id: str, case_id: str, team_id: str,
                 telecaller_id: Optional[str] = None,
                 transferred_by: Optional[str] = None) -> Case:
        """
        Change team and, when a telecaller is given, reassign.

        Everything is resolved before the first write so that a bad team or
        telecaller leaves the case unchanged.
        """
        self._ensure_open(self.case_manager.require_case(tenant_id, case_id))
        self.team_directory.require_team(tenant_id, team_id)
        if telecaller_id is not None:
            self.employee_directory.get_telecaller(tenant_id, telecaller_id)

        case = self.change_team(tenant_id, case_id, team_id, changed_by=transferred_by)
        if telecaller_id is not None:
            case = self.assign(tenant_id, case_id, telecaller_id, assigned_by=transferred_by)
        return case

    def bulk_operate(self, tenant_id: str, case_ids: Sequence[str],
                     operation: BulkOperation,
                     telecaller_id: Optional[str] = None,
                     team_id: Optional[str] = None,
                     performed_by: Optional[str] = None) -> BulkOperationResult:
        """
        Apply one operation to each case in turn.

        A failing case is recorded in the result and does not stop the
        cases after it.
        """
        operation = BulkOperation(operation)
        if operation == BulkOperation.ASSIGN and not telecaller_id:
            raise ValidationError("telecaller_id is required for bulk assign")
        if operation == BulkOperation.CHANGE_TEAM and not team_id:
            raise ValidationError("team_id is required for bulk team change")

        result = BulkOperationResult(operation=operation, total=len(case_ids))
        for case_id in case_ids:
            try:
                if operation == BulkOperation.ASSIGN:
                    self.assign(tenant_id, case_id, telecaller_id, assigned_by=performed_by)
                elif operation == BulkOperation.UNASSIGN:
                    self.unassign(tenant_id, case_id, unassigned_by=performed_by)
                else:
                    self.change_team(tenant_id, case_id, team_id, changed_by=performed_by)
            except Exception as exc:
                message = getattr(exc, "message", None) or str(exc)
                result.error_details.append(CaseOperationError(case_id, message))
                logger.warning("Bulk %s failed for case %s: %s", operation.value, case_id, message)
                continue
            result.success += 1

        log_action(logger, "info", "Bulk case operation finished", user_id=performed_by,
                   action=f"bulk_{operation.value}", tenant_id=tenant_id,
                   extra={"total": result.total, "success": result.success,
                          "errors": result.errors})
        return result
