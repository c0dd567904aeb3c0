"""
Bulk Reconciliation Module

Merges mapped upload rows into the case store by (tenant, loan id). Each row
is auto-routed to the telecaller named in its EMPID column when that
telecaller is active, then upserted. Rows are processed sequentially and
independently: a failing row is recorded and the batch moves on.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from enum import Enum

from .cases import CaseManager, WorkingStatus, split_row
from .column_mapping import IDENTIFIER_KEY
from .employees import Employee, EmployeeDirectory
from .errors import ValidationError
from .imports import REQUIRED_COLUMNS, check_row
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.reconciliation")


class RosterConflictPolicy(Enum):
    """What to do when one EMPID matches several active telecallers"""
    FIRST_MATCH = "first_match"
    REJECT = "reject"


@dataclass
class RowError:
    """A row that did not reach a successful upsert"""
    row_index: int
    error_message: str
    raw_row: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "error_message": self.error_message,
            "raw_row": dict(self.raw_row),
        }


@dataclass
class BulkUploadResult:
    """Outcome of one reconciliation run; returned, never persisted"""
    total_uploaded: int = 0
    auto_assigned: int = 0
    unassigned: int = 0
    errors: List[RowError] = field(default_factory=list)

    @property
    def input_rows(self) -> int:
        return self.total_uploaded + len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self, max_error_details: Optional[int] = None) -> Dict[str, Any]:
        errors = self.errors if max_error_details is None else self.errors[:max_error_details]
        return {
            "total_uploaded": self.total_uploaded,
            "auto_assigned": self.auto_assigned,
            "unassigned": self.unassigned,
            "error_count": len(self.errors),
            "errors": [error.to_dict() for error in errors],
        }


Roster = Sequence[Tuple[str, Employee]]


class BulkReconciliationProcessor:
    """Sequential, per-row-isolated upsert of upload rows"""

    def __init__(self, case_manager: CaseManager, employee_directory: EmployeeDirectory,
                 roster_conflict_policy: RosterConflictPolicy = RosterConflictPolicy.FIRST_MATCH,
                 required_columns: Sequence[str] = REQUIRED_COLUMNS):
        self.case_manager = case_manager
        self.employee_directory = employee_directory
        self.roster_conflict_policy = RosterConflictPolicy(roster_conflict_policy)
        self.required_columns = tuple(required_columns)

    @staticmethod
    def index_roster(roster: Roster) -> Dict[str, List[Employee]]:
        """Group roster entries by emp id, keeping roster order within each group"""
        index: Dict[str, List[Employee]] = {}
        for emp_id, employee in roster:
            index.setdefault(str(emp_id).strip(), []).append(employee)
        return index

    def match_telecaller(self, roster_index: Dict[str, List[Employee]],
                         emp_id: str) -> Optional[Employee]:
        """Resolve an EMPID value against the roster under the conflict policy"""
        matches = roster_index.get(emp_id.strip()) if emp_id else None
        if not matches:
            return None
        if len(matches) > 1:
            if self.roster_conflict_policy == RosterConflictPolicy.REJECT:
                raise ValidationError(
                    f"{IDENTIFIER_KEY} '{emp_id}' matches {len(matches)} active telecallers"
                )
            logger.warning("%s '%s' matches %d active telecallers; using the first",
                           IDENTIFIER_KEY, emp_id, len(matches))
        return matches[0]

    def reconcile(self, tenant_id: str, rows: Sequence[Dict[str, Any]],
                  uploaded_by: Optional[str] = None,
                  product_name: Optional[str] = None,
                  team_id: Optional[str] = None,
                  roster: Optional[Roster] = None) -> BulkUploadResult:
        """
        Upsert every row and report per-row outcomes.

        Args:
            tenant_id: Tenant owning the rows
            rows: Mapped rows, each carrying EMPID plus internal field keys
            uploaded_by: Employee running the upload
            product_name: Product stamped on every case in the batch
            team_id: Team stamped on every case in the batch, if given
            roster: Active telecallers as (emp_id, employee) pairs; read from
                the employee directory when omitted

        Returns:
            BulkUploadResult whose error row indexes are 1-based positions in ``rows``
        """
        if roster is None:
            roster = self.employee_directory.active_telecaller_roster(tenant_id)
        roster_index = self.index_roster(roster)

        result = BulkUploadResult()
        for position, row in enumerate(rows, start=1):
            try:
                assigned = self._reconcile_row(
                    tenant_id, row, roster_index, uploaded_by, product_name, team_id
                )
            except Exception as exc:
                message = getattr(exc, "message", None) or str(exc)
                result.errors.append(RowError(position, message, dict(row)))
                logger.warning("Upload row %d failed: %s", position, message)
                continue

            result.total_uploaded += 1
            if assigned:
                result.auto_assigned += 1
            else:
                result.unassigned += 1

        level = "warning" if result.has_errors else "info"
        log_action(logger, level, "Bulk upload reconciled", user_id=uploaded_by,
                   action="reconcile_bulk_upload", tenant_id=tenant_id,
                   extra={
                       "rows": len(rows),
                       "total_uploaded": result.total_uploaded,
                       "auto_assigned": result.auto_assigned,
                       "unassigned": result.unassigned,
                       "errors": len(result.errors),
                   })
        return result

    def _reconcile_row(self, tenant_id: str, row: Dict[str, Any],
                       roster_index: Dict[str, List[Employee]],
                       uploaded_by: Optional[str], product_name: Optional[str],
                       team_id: Optional[str]) -> bool:
        """Upsert one row; returns True when it was auto-assigned"""
        check_row(row, self.required_columns)

        emp_id = str(row.get(IDENTIFIER_KEY) or "").strip()
        telecaller = self.match_telecaller(roster_index, emp_id)
        attributes, extension = split_row(row)

        if telecaller is not None:
            telecaller_id = telecaller.id
            assigned_employee_id = emp_id
            status = WorkingStatus.ASSIGNED
        else:
            telecaller_id = None
            assigned_employee_id = None
            status = WorkingStatus.NEW

        self.case_manager.upsert_case(
            tenant_id, attributes, extension,
            telecaller_id=telecaller_id,
            assigned_employee_id=assigned_employee_id,
            status=status,
            product_name=product_name,
            team_id=team_id,
            uploaded_by=uploaded_by
        )
        return telecaller is not None
