"""
Call/Status Log Module

Append-only record of telecaller interactions with a debtor. Logging the
first contact on an assigned case moves it to in_progress; logging never
moves a case backwards.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from enum import Enum
from itertools import islice
import uuid

from .storage import StorageInterface, StorageRecord
from .tenancy import TenantScopedStorage
from .cases import Case, CaseManager, WorkingStatus
from .employees import EmployeeDirectory
from .errors import MissingPromiseDate, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.call_log")

UNKNOWN_EMPLOYEE = "Unknown"

# Dates at or before this are placeholders from blank date pickers, not promises
PLACEHOLDER_CUTOFF = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CallOutcome(Enum):
    """Fixed set of call outcome codes"""
    WRONG_NUMBER = "WN"
    SWITCHED_OFF = "SW"
    NO_RESPONSE = "RNR"
    BUSY = "BUSY"
    CALL_BACK = "CALL_BACK"
    PROMISE_TO_PAY = "PTP"
    FUTURE_PROMISE_TO_PAY = "FUTURE_PTP"
    BROKEN_PROMISE = "BPTP"
    REFUSED_TO_PAY = "RTP"
    NOT_CONTACTABLE = "NC"
    DISCONNECTED = "CD"
    INCOMPLETE = "INC"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"

    @property
    def requires_promise_date(self) -> bool:
        return self in (CallOutcome.PROMISE_TO_PAY, CallOutcome.FUTURE_PROMISE_TO_PAY)


@dataclass
class CallLogEntry(StorageRecord):
    """One immutable interaction record"""
    tenant_id: str
    case_id: str
    employee_id: str
    call_status: CallOutcome
    call_notes: str
    ptp_date: Optional[datetime] = None
    amount_collected: Optional[Decimal] = None
    sequence: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CallLogEntry':
        data = dict(data)
        data['call_status'] = CallOutcome(data['call_status'])
        if data.get('ptp_date'):
            data['ptp_date'] = datetime.fromisoformat(data['ptp_date'])
        if data.get('amount_collected') is not None:
            data['amount_collected'] = Decimal(data['amount_collected'])
        return super().from_dict(data)


@dataclass
class CallHistoryItem:
    """A log entry enriched with the logging employee's display name"""
    entry: CallLogEntry
    employee_name: str

    def to_dict(self) -> Dict[str, Any]:
        result = self.entry.to_dict()
        result['employee_name'] = self.employee_name
        return result


def parse_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Parse a non-negative decimal amount or raise ValidationError"""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be numeric")
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be numeric, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return amount


def parse_promise_date(value: Union[None, str, date, datetime]) -> datetime:
    """Normalize a promise-to-pay date to an aware datetime"""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingPromiseDate("Promise-to-pay date is required for PTP outcomes")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise MissingPromiseDate(f"Invalid promise-to-pay date: {value!r}")
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value <= PLACEHOLDER_CUTOFF:
        raise MissingPromiseDate(f"Promise-to-pay date {value.isoformat()} is a placeholder")
    return value


class CallLog:
    """Append-only call log and the status advance it drives"""

    def __init__(self, storage: StorageInterface, case_manager: CaseManager,
                 employee_directory: EmployeeDirectory,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
                 recent_limit: int = 5):
        self.storage = storage
        self.case_manager = case_manager
        self.employee_directory = employee_directory
        self.clock = clock
        self.recent_limit = recent_limit
        self.logs_table = "case_call_logs"

    def _scoped(self, tenant_id: str) -> TenantScopedStorage:
        return TenantScopedStorage(self.storage, tenant_id)

    def validate(self, outcome: CallOutcome, notes: Optional[str],
                 ptp_date: Any = None, amount_collected: Any = None) -> Dict[str, Any]:
        """
        Check a call outcome's inputs and return them normalized.

        Raises:
            ValidationError: blank notes, bad amount, unknown outcome
            MissingPromiseDate: PTP outcome without a usable date
        """
        try:
            outcome = CallOutcome(outcome)
        except ValueError:
            raise ValidationError(f"Unknown call outcome: {outcome!r}")

        if notes is None or not str(notes).strip():
            raise ValidationError("Call notes are required")

        normalized_ptp = None
        if outcome.requires_promise_date:
            normalized_ptp = parse_promise_date(ptp_date)
        elif ptp_date:
            normalized_ptp = parse_promise_date(ptp_date)

        amount = None
        if outcome == CallOutcome.PAYMENT_RECEIVED:
            if amount_collected is None or str(amount_collected).strip() == "":
                raise ValidationError("Amount collected is required for PAYMENT_RECEIVED")
            amount = parse_amount(amount_collected, "amount_collected")
        elif amount_collected is not None and str(amount_collected).strip() != "":
            amount = parse_amount(amount_collected, "amount_collected")

        return {
            "outcome": outcome,
            "notes": str(notes).strip(),
            "ptp_date": normalized_ptp,
            "amount_collected": amount,
        }

    def append(self, case: Case, employee_id: str, outcome: CallOutcome, notes: str,
               ptp_date: Optional[datetime] = None,
               amount_collected: Optional[Decimal] = None) -> CallLogEntry:
        """Write one entry for an already-validated interaction"""
        scoped = self._scoped(case.tenant_id)
        sequence = len(scoped.find(self.logs_table, {"case_id": case.id})) + 1
        now = self.clock()
        entry = CallLogEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=case.tenant_id,
            case_id=case.id,
            employee_id=employee_id,
            call_status=outcome,
            call_notes=notes,
            ptp_date=ptp_date,
            amount_collected=amount_collected,
            sequence=sequence
        )
        scoped.save(self.logs_table, entry.id, entry.to_dict())
        return entry

    def log_call(self, tenant_id: str, case_id: str, employee_id: str,
                 outcome: Union[CallOutcome, str], notes: str,
                 ptp_date: Union[None, str, date, datetime] = None,
                 amount_collected: Any = None) -> CallLogEntry:
        """
        Record a call outcome against a case.

        All inputs are validated before anything is written. If the case
        was ``assigned`` it becomes ``in_progress``; the status change and
        the history entry land in one storage transaction, status first.
        """
        if not employee_id:
            raise ValidationError("employee_id is required")
        values = self.validate(outcome, notes, ptp_date, amount_collected)

        with self.case_manager.storage.atomic():
            case = self.case_manager.modify_case(tenant_id, case_id, self._mark_contacted)
            entry = self.append(
                case, employee_id, values["outcome"], values["notes"],
                ptp_date=values["ptp_date"], amount_collected=values["amount_collected"]
            )

        log_action(logger, "info", "Call logged", user_id=employee_id,
                   action="log_call", resource=case_id, tenant_id=tenant_id,
                   extra={"outcome": values["outcome"].value})
        return entry

    @staticmethod
    def _mark_contacted(case: Case) -> bool:
        if case.status != WorkingStatus.ASSIGNED:
            return False
        case.status = WorkingStatus.IN_PROGRESS
        return True

    def _entries(self, tenant_id: str, case_id: str) -> List[CallLogEntry]:
        entries = [
            CallLogEntry.from_dict(data)
            for data in self._scoped(tenant_id).find(self.logs_table, {"case_id": case_id})
        ]
        entries.sort(key=lambda e: (e.created_at, e.sequence), reverse=True)
        return entries

    def _employee_names(self, tenant_id: str, employee_ids: List[str]) -> Dict[str, str]:
        try:
            return self.employee_directory.names_by_id(tenant_id, employee_ids)
        except Exception as exc:
            logger.warning("Employee lookup failed for call history: %s", exc)
            return {}

    def history(self, tenant_id: str, case_id: str) -> Iterator[CallHistoryItem]:
        """
        Lazy call history for a case, most recent first.

        Employee names are resolved when iteration starts; an unresolvable
        name is reported as "Unknown" instead of failing the read.
        """
        entries = self._entries(tenant_id, case_id)
        names = self._employee_names(tenant_id, [e.employee_id for e in entries])
        for entry in entries:
            yield CallHistoryItem(entry, names.get(entry.employee_id, UNKNOWN_EMPLOYEE))

    def recent(self, tenant_id: str, case_id: str,
               limit: Optional[int] = None) -> List[CallHistoryItem]:
        """The most recent entries (default limit from configuration)"""
        return list(islice(self.history(tenant_id, case_id), limit or self.recent_limit))

    def latest_promise(self, tenant_id: str, case_id: str) -> Optional[CallLogEntry]:
        """Most recent PTP/FUTURE_PTP entry, if any"""
        for entry in self._entries(tenant_id, case_id):
            if entry.call_status.requires_promise_date:
                return entry
        return None
