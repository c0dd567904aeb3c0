"""
Spreadsheet import endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from .deps import get_employee_id, get_recovery_system, get_tenant_id, to_http_exception
from .schemas import ReconcileRequest
from ..errors import RecoveryError
from ..system import RecoverySystem


router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/parse")
async def parse_import_file(
    request: Request,
    file_format: str = "xlsx",
    product_name: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Resolve an upload file's headers and return the mapped rows"""
    content = await request.body()
    try:
        parsed = system.parse_import_file(tenant_id, content, product_name, file_format)
    except RecoveryError as e:
        raise to_http_exception(e)

    return {
        "rows": parsed.rows,
        "row_count": len(parsed.rows),
        "skipped_rows": parsed.skipped_rows,
        "matched_columns": parsed.mapping.matched_keys,
        "ignored_headers": parsed.ignored_headers
    }


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_cases(
    request: Request,
    file_format: str = "xlsx",
    product_name: Optional[str] = None,
    team_id: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Parse an upload file and reconcile its rows into the case store"""
    content = await request.body()
    try:
        result = system.import_file(
            tenant_id, content, uploaded_by=employee_id, product_name=product_name,
            file_format=file_format, team_id=team_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return result.to_dict(system.config.max_error_details)


@router.post("/reconcile")
async def reconcile_rows(
    body: ReconcileRequest,
    tenant_id: str = Depends(get_tenant_id),
    employee_id: str = Depends(get_employee_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Reconcile already-mapped rows"""
    try:
        result = system.reconcile_bulk_upload(
            tenant_id, body.rows, uploaded_by=employee_id,
            product_name=body.product_name, team_id=body.team_id
        )
    except RecoveryError as e:
        raise to_http_exception(e)

    return result.to_dict(system.config.max_error_details)


@router.get("/template")
async def download_template(
    product_name: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    system: RecoverySystem = Depends(get_recovery_system)
):
    """Upload template for a product"""
    try:
        content = system.upload_template(tenant_id, product_name)
    except RecoveryError as e:
        raise to_http_exception(e)

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="case_upload_template.xlsx"'}
    )
