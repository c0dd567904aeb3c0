"""
Payment Ledger Module

Accumulates collected amounts per case and closes the case once the
outstanding balance is covered. The collected total only ever grows, and
each update is a compare-and-swap on the stored total, serialized per case
within the process.
"""

from decimal import Decimal, InvalidOperation
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import threading

from .cases import Case, CaseManager, CaseStatus, WorkingStatus
from .call_log import CallLog, CallOutcome, parse_amount
from .errors import CaseClosed, PaymentConflict, ValidationError
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.ledger")

LOCK_STRIPES = 64


class UnparsableOutstandingPolicy(Enum):
    """How to treat a case whose outstanding amount is missing or not a number"""
    NEVER_CLOSE = "never_close"      # record the payment, never auto-close
    REJECT = "reject"                # refuse the payment before any write
    TREAT_AS_ZERO = "treat_as_zero"  # legacy: unknown outstanding counts as 0


def parse_outstanding(value: Optional[str]) -> Optional[Decimal]:
    """Parse a stored outstanding amount; None when missing or not a finite number"""
    if value is None:
        return None
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


@dataclass
class PaymentResult:
    """Updated case plus what the payment did to it"""
    case: Case
    amount: Decimal
    remaining: Optional[Decimal]
    closed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case.id,
            "amount": str(self.amount),
            "total_collected_amount": str(self.case.total_collected_amount),
            "remaining": None if self.remaining is None else str(self.remaining),
            "closed": self.closed,
            "case_status": self.case.case_status.value,
            "status": self.case.status.value,
        }


class PaymentLedger:
    """Running collected total per case"""

    def __init__(self, case_manager: CaseManager, call_log: CallLog,
                 unparsable_policy: UnparsableOutstandingPolicy = UnparsableOutstandingPolicy.NEVER_CLOSE,
                 max_retries: int = 5):
        self.case_manager = case_manager
        self.call_log = call_log
        self.unparsable_policy = UnparsableOutstandingPolicy(unparsable_policy)
        self.max_retries = max_retries
        # Fixed pool; unrelated cases may share a stripe
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _case_lock(self, tenant_id: str, case_id: str) -> threading.Lock:
        return self._locks[hash((tenant_id, case_id)) % len(self._locks)]

    def _threshold(self, case: Case) -> Optional[Decimal]:
        """Outstanding amount the collected total is measured against"""
        outstanding = parse_outstanding(case.outstanding_amount)
        if outstanding is not None:
            return outstanding
        if self.unparsable_policy == UnparsableOutstandingPolicy.REJECT:
            raise ValidationError(
                f"Outstanding amount {case.outstanding_amount!r} of case {case.id} is not a number",
                case.id
            )
        if self.unparsable_policy == UnparsableOutstandingPolicy.TREAT_AS_ZERO:
            return Decimal('0')
        logger.warning("Case %s has unparsable outstanding amount %r; it will not auto-close",
                       case.id, case.outstanding_amount)
        return None

    def remaining_balance(self, case: Case) -> Optional[Decimal]:
        """Outstanding minus collected, or None when outstanding is unknown"""
        outstanding = parse_outstanding(case.outstanding_amount)
        if outstanding is None:
            return None
        return outstanding - case.total_collected_amount

    def record_payment(self, tenant_id: str, case_id: str, employee_id: str,
                       amount: Any, notes: str) -> PaymentResult:
        """
        Apply a collected payment to a case.

        The new total is written with a compare-and-swap on the previous
        total and retried on conflict; the PAYMENT_RECEIVED log entry is
        appended in the same storage transaction once the total has landed.
        When the remaining balance reaches zero both working status and
        case_status become ``closed``.

        Raises:
            ValidationError: amount not positive, blank notes, or (under the
                reject policy) unparsable outstanding amount
            CaseNotFound: case does not resolve in the tenant
            CaseClosed: case is closed or its total already covers the
                outstanding amount
            PaymentConflict: concurrent updates exhausted the retries
        """
        if not employee_id:
            raise ValidationError("employee_id is required")
        amount = parse_amount(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        values = self.call_log.validate(CallOutcome.PAYMENT_RECEIVED, notes,
                                        amount_collected=amount)

        outcome: Dict[str, Any] = {}

        def apply(case: Case) -> bool:
            if case.is_closed:
                raise CaseClosed(f"Case {case.id} is closed", case.id)
            threshold = self._threshold(case)
            if (threshold is not None and case.total_collected_amount > 0
                    and case.total_collected_amount >= threshold):
                raise CaseClosed(
                    f"Case {case.id} is already fully collected "
                    f"({case.total_collected_amount} of {threshold})", case.id
                )
            case.total_collected_amount = case.total_collected_amount + amount
            remaining = None if threshold is None else threshold - case.total_collected_amount
            outcome["remaining"] = remaining
            outcome["closed"] = False
            if remaining is not None and remaining <= 0:
                case.status = WorkingStatus.CLOSED
                case.case_status = CaseStatus.CLOSED
                outcome["closed"] = True
            return True

        with self._case_lock(tenant_id, case_id):
            with self.case_manager.storage.atomic():
                case = self.case_manager.modify_case(
                    tenant_id, case_id, apply,
                    max_retries=self.max_retries, conflict_error=PaymentConflict
                )
                self.call_log.append(
                    case, employee_id, CallOutcome.PAYMENT_RECEIVED, values["notes"],
                    amount_collected=amount
                )

        log_action(logger, "info", "Payment recorded", user_id=employee_id,
                   action="record_payment", resource=case_id, tenant_id=tenant_id,
                   extra={"amount": str(amount),
                          "total_collected_amount": str(case.total_collected_amount)})
        if outcome["closed"]:
            log_action(logger, "info", "Case closed on full collection", user_id=employee_id,
                       action="close_case", resource=case_id, tenant_id=tenant_id)

        return PaymentResult(case=case, amount=amount,
                             remaining=outcome["remaining"], closed=outcome["closed"])
