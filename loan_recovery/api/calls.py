"""
Call log and payment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .deps import get_employee_id, get_recovery_system, get_tenant_id, to_http_exception
from .schemas import LogCallRequest, RecordPaymentRequest
from ..errors import RecoveryError
from ..system import RecoverySystem


router = APIRouter()


@router.post("/{case_id}/calls", status_code=status.HTTP_201_CREATED)
async def log_call(
    case_id: str,
    request: LogCallRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Record a call outcome"""
    try:
        entry = system.log_call(
            tenant_id, case_id, employee_id, request.call_status, request.call_notes,
            ptp_date=request.ptp_date, amount_collected=request.amount_collected
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return entry.to_dict()


@router.get("/{case_id}/calls")
async def get_call_history(
    case_id: str,
    limit: Optional[int] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Call history, most recent first; all entries unless limit is given"""
    try:
        history = [item.to_dict() for item in system.get_call_history(tenant_id, case_id, limit)]
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"calls": history}


@router.post("/{case_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    case_id: str,
    request: RecordPaymentRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Record a collected payment; closes the case once fully collected"""
    try:
        result = system.record_payment(tenant_id, case_id, employee_id, request.amount, request.notes)
    except RecoveryError as e:
        raise to_http_exception(e)

    return result.to_dict()
