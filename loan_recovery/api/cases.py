"""
Case and assignment endpoints
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from .deps import get_employee_id, get_recovery_system, get_tenant_id, to_http_exception
from .imports import XLSX_MEDIA_TYPE
from .schemas import (
    AssignRequest,
    BulkOperationRequest,
    ChangeTeamRequest,
    CreateCaseRequest,
    TransferRequest
)
from ..assignment import BulkOperation
from ..cases import WorkingStatus
from ..errors import RecoveryError
from ..system import RecoverySystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_case(
    request: CreateCaseRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Create a single case"""
    try:
        attributes = request.model_dump(exclude={"loan_id"}, exclude_none=True)
        case = system.create_case(tenant_id, request.loan_id, created_by=employee_id, **attributes)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"case_id": case.id, "message": "Case created successfully"}


@router.get("")
async def list_cases(
    team_id: Optional[str] = None,
    telecaller_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    product: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """List cases, newest first"""
    try:
        working_status = WorkingStatus(status_filter) if status_filter else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status_filter}")

    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        if team_id:
            cases = system.case_manager.get_cases_by_filters(
                tenant_id, team_id, product=product, telecaller_id=telecaller_id,
                status=working_status, date_from=date_from, date_to=date_to
            )
        elif telecaller_id:
            cases = system.case_manager.get_cases_by_telecaller(tenant_id, telecaller_id)
        else:
            cases = system.case_manager.list_cases(tenant_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"cases": [case.to_dict() for case in cases]}


@router.get("/export")
async def export_cases(
    product_name: Optional[str] = None,
    team_id: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Export cases as a workbook using the configured display names"""
    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        if team_id:
            cases = system.case_manager.get_team_cases(tenant_id, team_id)
        else:
            cases = system.case_manager.list_cases(tenant_id)
        content = system.export_cases(tenant_id, cases, product_name)
    except RecoveryError as e:
        raise to_http_exception(e)

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="customer_cases.xlsx"'}
    )


@router.post("/bulk")
async def bulk_operate(
    request: BulkOperationRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Assign, unassign or move many cases; failures are reported per case"""
    try:
        operation = BulkOperation(request.operation)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown operation: {request.operation}")

    try:
        result = system.bulk_operate(
            tenant_id, request.case_ids, operation,
            telecaller_id=request.telecaller_id, team_id=request.team_id,
            performed_by=employee_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return result.to_dict()


@router.get("/{case_id}")
async def get_case(
    case_id: str,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Get case by ID"""
    try:
        case = system.get_case(tenant_id, case_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()


@router.delete("/{case_id}")
async def delete_case(
    case_id: str,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Irreversibly delete a case"""
    try:
        system.delete_case(tenant_id, case_id, deleted_by=employee_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"message": "Case deleted successfully"}


@router.put("/{case_id}/assign")
async def assign_case(
    case_id: str,
    request: AssignRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Assign a case to a telecaller"""
    try:
        case = system.assign_case(tenant_id, case_id, request.telecaller_id, assigned_by=employee_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()


@router.put("/{case_id}/unassign")
async def unassign_case(
    case_id: str,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Return a case to the unassigned pool"""
    try:
        case = system.unassign_case(tenant_id, case_id, unassigned_by=employee_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()


@router.put("/{case_id}/team")
async def change_case_team(
    case_id: str,
    request: ChangeTeamRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Move a case to another team"""
    try:
        case = system.change_case_team(tenant_id, case_id, request.team_id, changed_by=employee_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()


@router.put("/{case_id}/transfer")
async def transfer_case(
    case_id: str,
    request: TransferRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Move a case to another team, optionally reassigning it"""
    try:
        case = system.transfer_case(
            tenant_id, case_id, request.team_id, request.telecaller_id,
            transferred_by=employee_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()


@router.put("/{case_id}/close")
async def close_case(
    case_id: str,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Close a case"""
    try:
        case = system.close_case(tenant_id, case_id, closed_by=employee_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return case.to_dict()
