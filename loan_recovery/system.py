"""
Recovery System

Wires the storage, directories and engine components together and exposes
the operations the UI/CRUD layer calls. Every operation takes the tenant id
(and the acting employee where relevant) explicitly and refuses unknown or
inactive tenants.
"""

from datetime import datetime, timezone
from itertools import islice
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .config import RecoveryConfig, get_config
from .storage import StorageInterface, create_storage
from .tenancy import TenantManager
from .cases import Case, CaseManager
from .employees import EmployeeDirectory, TeamDirectory
from .column_mapping import ColumnConfigManager
from .imports import ImportSource, ParsedImport, export_cases, generate_template, parse_import_file
from .reconciliation import BulkReconciliationProcessor, BulkUploadResult, RosterConflictPolicy
from .assignment import AssignmentEngine, BulkOperation, BulkOperationResult
from .call_log import CallHistoryItem, CallLog, CallLogEntry, CallOutcome
from .ledger import PaymentLedger, PaymentResult, UnparsableOutstandingPolicy


class RecoverySystem:
    """Loan recovery engine with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[RecoveryConfig] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.config = config or get_config()
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_path)
        self.storage = storage
        self.clock = clock

        self.tenant_manager = TenantManager(self.storage)
        self.employees = EmployeeDirectory(self.storage, clock)
        self.teams = TeamDirectory(self.storage, clock)
        self.columns = ColumnConfigManager(self.storage, clock)
        self.case_manager = CaseManager(self.storage, clock)

        self.reconciliation = BulkReconciliationProcessor(
            self.case_manager, self.employees,
            roster_conflict_policy=RosterConflictPolicy(self.config.roster_conflict_policy),
            required_columns=[c.strip() for c in self.config.required_case_columns.split(",") if c.strip()]
        )
        self.assignment = AssignmentEngine(self.case_manager, self.employees, self.teams)
        self.call_log = CallLog(
            self.storage, self.case_manager, self.employees, clock,
            recent_limit=self.config.recent_history_limit
        )
        self.ledger = PaymentLedger(
            self.case_manager, self.call_log,
            unparsable_policy=UnparsableOutstandingPolicy(self.config.unparsable_outstanding_policy),
            max_retries=self.config.payment_max_retries
        )

    def _tenant(self, tenant_id: str) -> str:
        return self.tenant_manager.require_active(tenant_id).id

    # Import

    def parse_import_file(self, tenant_id: str, source: ImportSource,
                          product_name: Optional[str] = None,
                          file_format: Optional[str] = None) -> ParsedImport:
        """Resolve an upload file against the tenant's active column configuration"""
        tenant_id = self._tenant(tenant_id)
        return parse_import_file(
            source, self.columns.list_columns(tenant_id, product_name),
            file_format=file_format, identifier_header=self.config.identifier_header
        )

    def reconcile_bulk_upload(self, tenant_id: str, rows: Sequence[Dict[str, Any]],
                              uploaded_by: Optional[str] = None,
                              product_name: Optional[str] = None,
                              team_id: Optional[str] = None) -> BulkUploadResult:
        tenant_id = self._tenant(tenant_id)
        if team_id is not None:
            self.teams.require_team(tenant_id, team_id)
        return self.reconciliation.reconcile(
            tenant_id, rows, uploaded_by=uploaded_by,
            product_name=product_name, team_id=team_id
        )

    def import_file(self, tenant_id: str, source: ImportSource,
                    uploaded_by: Optional[str] = None,
                    product_name: Optional[str] = None,
                    file_format: Optional[str] = None,
                    team_id: Optional[str] = None) -> BulkUploadResult:
        """Parse then reconcile; header problems fail before any row is written"""
        parsed = self.parse_import_file(tenant_id, source, product_name, file_format)
        return self.reconcile_bulk_upload(
            tenant_id, parsed.rows, uploaded_by=uploaded_by,
            product_name=product_name, team_id=team_id
        )

    def upload_template(self, tenant_id: str, product_name: Optional[str] = None) -> bytes:
        tenant_id = self._tenant(tenant_id)
        return generate_template(self.columns.list_columns(tenant_id, product_name))

    def export_cases(self, tenant_id: str, cases: Sequence[Case],
                     product_name: Optional[str] = None) -> bytes:
        tenant_id = self._tenant(tenant_id)
        return export_cases(cases, self.columns.list_columns(tenant_id, product_name))

    # Cases

    def create_case(self, tenant_id: str, loan_id: str,
                    created_by: Optional[str] = None, **attributes) -> Case:
        tenant_id = self._tenant(tenant_id)
        if attributes.get("team_id") is not None:
            self.teams.require_team(tenant_id, attributes["team_id"])
        return self.case_manager.create_case(tenant_id, loan_id, uploaded_by=created_by, **attributes)

    def get_case(self, tenant_id: str, case_id: str) -> Case:
        return self.case_manager.require_case(self._tenant(tenant_id), case_id)

    def delete_case(self, tenant_id: str, case_id: str, deleted_by: str) -> bool:
        return self.case_manager.delete_case(self._tenant(tenant_id), case_id, deleted_by)

    # Assignment

    def assign_case(self, tenant_id: str, case_id: str, telecaller_id: str,
                    assigned_by: Optional[str] = None) -> Case:
        return self.assignment.assign(self._tenant(tenant_id), case_id, telecaller_id, assigned_by)

    def unassign_case(self, tenant_id: str, case_id: str,
                      unassigned_by: Optional[str] = None) -> Case:
        return self.assignment.unassign(self._tenant(tenant_id), case_id, unassigned_by)

    def change_case_team(self, tenant_id: str, case_id: str, team_id: str,
                         changed_by: Optional[str] = None) -> Case:
        return self.assignment.change_team(self._tenant(tenant_id), case_id, team_id, changed_by)

    def transfer_case(self, tenant_id: str, case_id: str, team_id: str,
                      telecaller_id: Optional[str] = None,
                      transferred_by: Optional[str] = None) -> Case:
        return self.assignment.transfer(
            self._tenant(tenant_id), case_id, team_id, telecaller_id, transferred_by
        )

    def close_case(self, tenant_id: str, case_id: str, closed_by: str) -> Case:
        return self.assignment.close(self._tenant(tenant_id), case_id, closed_by)

    def bulk_operate(self, tenant_id: str, case_ids: Sequence[str],
                     operation: BulkOperation, telecaller_id: Optional[str] = None,
                     team_id: Optional[str] = None,
                     performed_by: Optional[str] = None) -> BulkOperationResult:
        return self.assignment.bulk_operate(
            self._tenant(tenant_id), case_ids, operation,
            telecaller_id=telecaller_id, team_id=team_id, performed_by=performed_by
        )

    # Calls and payments

    def log_call(self, tenant_id: str, case_id: str, employee_id: str,
                 outcome: CallOutcome, notes: str, ptp_date: Any = None,
                 amount_collected: Any = None) -> CallLogEntry:
        return self.call_log.log_call(
            self._tenant(tenant_id), case_id, employee_id, outcome, notes,
            ptp_date=ptp_date, amount_collected=amount_collected
        )

    def record_payment(self, tenant_id: str, case_id: str, employee_id: str,
                       amount: Any, notes: str) -> PaymentResult:
        return self.ledger.record_payment(self._tenant(tenant_id), case_id, employee_id, amount, notes)

    def get_call_history(self, tenant_id: str, case_id: str,
                         limit: Optional[int] = None) -> Iterator[CallHistoryItem]:
        """Most recent first; unbounded unless ``limit`` is given"""
        tenant_id = self._tenant(tenant_id)
        self.case_manager.require_case(tenant_id, case_id)
        history = self.call_log.history(tenant_id, case_id)
        if limit is not None:
            return islice(history, limit)
        return history

    def recent_calls(self, tenant_id: str, case_id: str) -> List[CallHistoryItem]:
        return list(self.get_call_history(tenant_id, case_id, self.config.recent_history_limit))

    def close(self) -> None:
        self.storage.close()
