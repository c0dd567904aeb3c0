"""
Case Store Module

The debtor/loan case record, its tenant-defined extension map and the
tenant-scoped case store keyed by (tenant, loan id).
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, Union
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .tenancy import TenantScopedStorage
from .errors import CaseClosed, CaseNotFound, ConflictError, DuplicateCase, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.cases")


ExtensionValue = Union[str, int, float, bool, None]


class WorkingStatus(Enum):
    """Assignment lifecycle of a case"""
    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class CaseStatus(Enum):
    """Resolution lifecycle of a case"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class CasePriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Import column key -> Case attribute. Keys not listed here land in the
# extension map.
FIELD_MAP: Dict[str, str] = {
    "loanId": "loan_id",
    "customerName": "customer_name",
    "mobileNo": "mobile_no",
    "alternateNumber": "alternate_number",
    "email": "email",
    "address": "address",
    "city": "city",
    "state": "state",
    "pincode": "pincode",
    "loanAmount": "loan_amount",
    "loanType": "loan_type",
    "outstandingAmount": "outstanding_amount",
    "posAmount": "pos_amount",
    "emiAmount": "emi_amount",
    "pendingDues": "pending_dues",
    "dpd": "dpd",
    "branchName": "branch_name",
    "sanctionDate": "sanction_date",
    "lastPaidDate": "last_paid_date",
    "lastPaidAmount": "last_paid_amount",
    "paymentLink": "payment_link",
    "remarks": "remarks",
}

MAPPED_FIELDS: Tuple[str, ...] = tuple(FIELD_MAP.values())


class ExtensionMap:
    """
    Tenant-defined custom fields on a case.

    Keys are unique strings; values are flat scalars. Equality ignores
    insertion order.
    """

    def __init__(self, values: Optional[Dict[str, ExtensionValue]] = None):
        self._values: Dict[str, ExtensionValue] = {}
        for key, value in (values or {}).items():
            self[key] = value

    def __setitem__(self, key: str, value: ExtensionValue) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Extension key must be a non-empty string: {key!r}")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise ValidationError(
                f"Extension value for '{key}' must be a string, number, boolean or null"
            )
        self._values[key] = value

    def __getitem__(self, key: str) -> ExtensionValue:
        return self._values[key]

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExtensionMap):
            return self._values == other._values
        if isinstance(other, dict):
            return self._values == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ExtensionMap({self._values!r})"

    def get(self, key: str, default: ExtensionValue = None) -> ExtensionValue:
        return self._values.get(key, default)

    def keys(self):
        return self._values.keys()

    def items(self):
        return self._values.items()

    def to_dict(self) -> Dict[str, ExtensionValue]:
        return dict(self._values)


@dataclass
class Case(StorageRecord):
    """One debtor/loan record"""
    tenant_id: str
    loan_id: str
    customer_name: Optional[str] = None
    mobile_no: Optional[str] = None
    alternate_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    loan_amount: Optional[str] = None
    loan_type: Optional[str] = None
    outstanding_amount: Optional[str] = None  # stored as text, parsed by the ledger
    pos_amount: Optional[str] = None
    emi_amount: Optional[str] = None
    pending_dues: Optional[str] = None
    dpd: Optional[int] = None
    branch_name: Optional[str] = None
    sanction_date: Optional[str] = None
    last_paid_date: Optional[str] = None
    last_paid_amount: Optional[str] = None
    payment_link: Optional[str] = None
    remarks: Optional[str] = None
    product_name: Optional[str] = None
    extension: ExtensionMap = field(default_factory=ExtensionMap)
    team_id: Optional[str] = None
    telecaller_id: Optional[str] = None
    assigned_employee_id: Optional[str] = None
    status: WorkingStatus = WorkingStatus.NEW
    case_status: CaseStatus = CaseStatus.PENDING
    priority: CasePriority = CasePriority.MEDIUM
    uploaded_by: Optional[str] = None
    total_collected_amount: Decimal = Decimal('0')

    @property
    def is_closed(self) -> bool:
        return self.case_status == CaseStatus.CLOSED or self.status == WorkingStatus.CLOSED

    @property
    def is_assigned(self) -> bool:
        return self.telecaller_id is not None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["extension"] = self.extension.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Case':
        data = dict(data)
        data['extension'] = ExtensionMap(data.get('extension') or {})
        data['status'] = WorkingStatus(data.get('status', 'new'))
        data['case_status'] = CaseStatus(data.get('case_status', 'pending'))
        data['priority'] = CasePriority(data.get('priority', 'medium'))
        data['total_collected_amount'] = Decimal(str(data.get('total_collected_amount') or '0'))
        return super().from_dict(data)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_row(row: Dict[str, Any]) -> Tuple[Dict[str, Any], ExtensionMap]:
    """
    Split a mapped import row into Case attributes and extension fields.

    Every mapped attribute is present in the result; a column missing from
    the row becomes None so that an upsert replaces rather than merges.
    """
    attributes: Dict[str, Any] = {name: None for name in MAPPED_FIELDS}
    extension = ExtensionMap()
    for key, value in row.items():
        attribute = FIELD_MAP.get(key)
        if attribute is None:
            extension[key] = value
            continue
        if isinstance(value, str):
            value = value.strip()
        if value == "":
            value = None
        if attribute == "dpd" and value is not None:
            try:
                value = int(str(value))
            except ValueError:
                raise ValidationError(f"DPD must be a number, got {value!r}")
        attributes[attribute] = value
    return attributes, extension


class CaseManager:
    """Tenant-scoped case store keyed by (tenant, loan id)"""

    def __init__(self, storage: StorageInterface,
                 clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.cases_table = "customer_cases"

    def _scoped(self, tenant_id: str) -> TenantScopedStorage:
        return TenantScopedStorage(self.storage, tenant_id)

    def save_case(self, case: Case) -> Case:
        """Full-row write"""
        self._scoped(case.tenant_id).save(self.cases_table, case.id, case.to_dict())
        return case

    def compare_and_save(self, case: Case, expected: Dict[str, Any]) -> bool:
        """Full-row write applied only if ``expected`` still holds in storage"""
        return self._scoped(case.tenant_id).compare_and_update(
            self.cases_table, case.id, expected, case.to_dict()
        )

    def modify_case(self, tenant_id: str, case_id: str,
                    mutate: Callable[[Case], bool],
                    max_retries: int = 5,
                    conflict_error: Type[ConflictError] = ConflictError) -> Case:
        """
        Optimistic read-modify-write of one case.

        ``mutate`` edits the case in place and returns False when nothing
        changed (no write happens). The write only lands if updated_at and
        total_collected_amount are still what was read; otherwise the case
        is re-read and ``mutate`` runs again. Exceptions from ``mutate``
        propagate with nothing written.
        """
        for attempt in range(1, max_retries + 1):
            case = self.require_case(tenant_id, case_id)
            expected = {
                "updated_at": case.updated_at.isoformat(),
                "total_collected_amount": str(case.total_collected_amount),
            }
            if mutate(case) is False:
                return case
            case.updated_at = self.clock()
            if self.compare_and_save(case, expected):
                return case
            logger.warning("Concurrent update on case %s (attempt %d/%d)",
                           case_id, attempt, max_retries)
        raise conflict_error(f"Case {case_id} was modified concurrently", case_id)

    def get_case(self, tenant_id: str, case_id: str) -> Optional[Case]:
        data = self._scoped(tenant_id).load(self.cases_table, case_id)
        if data:
            return Case.from_dict(data)
        return None

    def require_case(self, tenant_id: str, case_id: str) -> Case:
        """Resolve a case or raise CaseNotFound"""
        case = self.get_case(tenant_id, case_id)
        if not case:
            raise CaseNotFound(f"Case {case_id} not found", case_id)
        return case

    def get_case_by_loan_id(self, tenant_id: str, loan_id: str) -> Optional[Case]:
        records = self._scoped(tenant_id).find(self.cases_table, {"loan_id": loan_id})
        if records:
            return Case.from_dict(records[0])
        return None

    def create_case(self, tenant_id: str, loan_id: str, *,
                    uploaded_by: Optional[str] = None, **attributes) -> Case:
        """Create a single case with working status ``new``"""
        loan_id = (loan_id or "").strip()
        if not loan_id:
            raise ValidationError("loan_id is required")
        if self.get_case_by_loan_id(tenant_id, loan_id):
            raise DuplicateCase(f"Case for loan {loan_id} already exists", loan_id)

        extension = attributes.pop("extension", None)
        now = self.clock()
        case = Case(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            loan_id=loan_id,
            extension=ExtensionMap(dict(extension or {})),
            uploaded_by=uploaded_by,
            **attributes
        )
        case.status = WorkingStatus.NEW
        self.save_case(case)
        log_action(logger, "info", "Case created", user_id=uploaded_by,
                   action="create_case", resource=case.id, tenant_id=tenant_id,
                   extra={"loan_id": loan_id})
        return case

    def upsert_case(self, tenant_id: str, attributes: Dict[str, Any],
                    extension: ExtensionMap, *,
                    telecaller_id: Optional[str], assigned_employee_id: Optional[str],
                    status: WorkingStatus, product_name: Optional[str] = None,
                    team_id: Optional[str] = None,
                    uploaded_by: Optional[str] = None) -> Tuple[Case, bool]:
        """
        Insert or replace the mapped columns of the case for attributes['loan_id'].

        Identity, collected total, case_status and priority of an existing
        case are preserved; team_id is only replaced when supplied. Returns
        the stored case and whether it was newly created.

        Raises:
            CaseClosed: the existing case is closed
        """
        loan_id = attributes.get("loan_id")
        if not loan_id:
            raise ValidationError("loan_id is required")

        def apply(case: Case) -> None:
            for name in MAPPED_FIELDS:
                setattr(case, name, attributes.get(name))
            case.extension = extension
            # a case already being worked by the same telecaller stays in progress
            keep_progress = (case.status == WorkingStatus.IN_PROGRESS
                             and telecaller_id is not None
                             and case.telecaller_id == telecaller_id)
            case.telecaller_id = telecaller_id
            case.assigned_employee_id = assigned_employee_id
            if not keep_progress:
                case.status = status
            if product_name is not None:
                case.product_name = product_name
            if team_id is not None:
                case.team_id = team_id
            if uploaded_by is not None:
                case.uploaded_by = uploaded_by

        existing = self.get_case_by_loan_id(tenant_id, loan_id)
        if existing is None:
            now = self.clock()
            case = Case(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                tenant_id=tenant_id,
                loan_id=loan_id
            )
            apply(case)
            self.save_case(case)
            return case, True

        def mutate(case: Case) -> bool:
            if case.is_closed:
                raise CaseClosed(f"Case for loan {loan_id} is closed", case.id)
            apply(case)
            return True

        return self.modify_case(tenant_id, existing.id, mutate), False

    def delete_case(self, tenant_id: str, case_id: str, deleted_by: str) -> bool:
        """Irreversible supervisor delete"""
        self.require_case(tenant_id, case_id)
        deleted = self._scoped(tenant_id).delete(self.cases_table, case_id)
        log_action(logger, "warning", "Case deleted", user_id=deleted_by,
                   action="delete_case", resource=case_id, tenant_id=tenant_id)
        return deleted

    # Queries

    def _query(self, tenant_id: str, filters: Dict[str, Any]) -> List[Case]:
        cases = [Case.from_dict(data) for data in self._scoped(tenant_id).find(self.cases_table, filters)]
        cases.sort(key=lambda c: c.created_at, reverse=True)
        return cases

    def list_cases(self, tenant_id: str) -> List[Case]:
        return self._query(tenant_id, {})

    def get_team_cases(self, tenant_id: str, team_id: str) -> List[Case]:
        return self._query(tenant_id, {"team_id": team_id})

    def get_unassigned_team_cases(self, tenant_id: str, team_id: str) -> List[Case]:
        return self._query(tenant_id, {"team_id": team_id, "telecaller_id": None})

    def get_cases_by_telecaller(self, tenant_id: str, telecaller_id: str,
                                emp_id: Optional[str] = None) -> List[Case]:
        """Cases for a telecaller, falling back to the denormalized emp id"""
        cases = self._query(tenant_id, {"telecaller_id": telecaller_id})
        if not cases and emp_id:
            cases = self._query(tenant_id, {"assigned_employee_id": emp_id})
        return cases

    def get_cases_by_filters(self, tenant_id: str, team_id: str,
                             product: Optional[str] = None,
                             telecaller_id: Optional[str] = None,
                             status: Optional[WorkingStatus] = None,
                             date_from: Optional[datetime] = None,
                             date_to: Optional[datetime] = None) -> List[Case]:
        filters: Dict[str, Any] = {"team_id": team_id}
        if product:
            filters["product_name"] = product
        if telecaller_id:
            filters["telecaller_id"] = telecaller_id
        if status is not None:
            filters["status"] = status.value

        cases = self._query(tenant_id, filters)
        if date_from is not None:
            cases = [c for c in cases if c.created_at >= date_from]
        if date_to is not None:
            cases = [c for c in cases if c.created_at <= date_to]
        return cases

    def get_telecaller_stats(self, tenant_id: str, telecaller_id: str) -> Dict[str, int]:
        """Working-status counts for a telecaller's cases"""
        cases = self._query(tenant_id, {"telecaller_id": telecaller_id})
        stats = {"total": len(cases)}
        for status in WorkingStatus:
            stats[status.value] = sum(1 for c in cases if c.status == status)
        return stats

    def get_employee_stats(self, tenant_id: str, emp_id: str) -> Dict[str, int]:
        """Resolution-status and priority counts for an employee's cases"""
        cases = self._query(tenant_id, {"assigned_employee_id": emp_id})
        return {
            "total_cases": len(cases),
            "pending_cases": sum(1 for c in cases if c.case_status == CaseStatus.PENDING),
            "in_progress_cases": sum(1 for c in cases if c.case_status == CaseStatus.IN_PROGRESS),
            "resolved_cases": sum(1 for c in cases if c.case_status == CaseStatus.RESOLVED),
            "high_priority_cases": sum(
                1 for c in cases if c.priority in (CasePriority.HIGH, CasePriority.URGENT)
            ),
        }
