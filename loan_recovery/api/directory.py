"""
Tenant, employee, team and column configuration endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .deps import get_recovery_system, get_tenant_id, to_http_exception
from .schemas import (
    CreateColumnRequest,
    CreateEmployeeRequest,
    CreateTeamRequest,
    CreateTenantRequest
)
from ..column_mapping import ColumnDataType
from ..employees import EmployeeRole
from ..errors import RecoveryError
from ..system import RecoverySystem


router = APIRouter()


@router.post("/tenants", status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: CreateTenantRequest,
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Register a company account"""
    try:
        tenant = system.tenant_manager.create_tenant(
            request.name, request.subdomain, tenant_id=request.tenant_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return tenant.to_dict()


@router.post("/employees", status_code=status.HTTP_201_CREATED)
async def create_employee(
    request: CreateEmployeeRequest,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Register a telecaller or team incharge"""
    try:
        role = EmployeeRole(request.role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {request.role}")

    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        employee = system.employees.create_employee(
            tenant_id, request.name, request.emp_id, role,
            mobile=request.mobile, team_id=request.team_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return employee.to_dict()


@router.get("/employees")
async def list_employees(
    role: Optional[str] = None,
    active_only: bool = False,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    try:
        employee_role = EmployeeRole(role) if role else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {role}")

    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        employees = system.employees.list_employees(tenant_id, employee_role, active_only)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"employees": [employee.to_dict() for employee in employees]}


@router.post("/teams", status_code=status.HTTP_201_CREATED)
async def create_team(
    request: CreateTeamRequest,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Create a team and add its telecallers"""
    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        team = system.teams.create_team(
            tenant_id, request.name, request.team_incharge_id, request.product_name
        )
        for telecaller_id in request.telecaller_ids:
            system.employees.get_telecaller(tenant_id, telecaller_id)
            team = system.teams.add_telecaller(tenant_id, team.id, telecaller_id)
    except RecoveryError as e:
        raise to_http_exception(e)

    return team.to_dict()


@router.post("/columns", status_code=status.HTTP_201_CREATED)
async def create_column(
    request: CreateColumnRequest,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Configure an import/export column"""
    try:
        data_type = ColumnDataType(request.data_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown data type: {request.data_type}")

    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        column = system.columns.create_column(
            tenant_id, request.column_name, request.display_name,
            product_name=request.product_name, data_type=data_type,
            is_custom=request.is_custom, column_order=request.column_order
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return column.to_dict()


@router.get("/columns")
async def list_columns(
    product_name: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    try:
        tenant_id = system.tenant_manager.require_active(tenant_id).id
        columns = system.columns.list_columns(tenant_id, product_name)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {"columns": [column.to_dict() for column in columns]}
