"""
Shared API dependencies: the engine instance, caller identity headers and
error translation.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from ..config import get_config
from ..errors import ConflictError, NotFoundError, RecoveryError, ValidationError
from ..logging_config import get_logger
from ..system import RecoverySystem


logger = get_logger("loan_recovery.api")

_recovery_system: Optional[RecoverySystem] = None


def get_recovery_system() -> RecoverySystem:
    """Process-wide engine, built from configuration on first use"""
    global _recovery_system
    if _recovery_system is None:
        _recovery_system = RecoverySystem(config=get_config())
    return _recovery_system


def get_tenant_id(x_tenant_id: str = Header(..., alias="X-Tenant-ID")) -> str:
    return x_tenant_id


def get_employee_id(x_employee_id: str = Header(..., alias="X-Employee-ID")) -> str:
    return x_employee_id


def to_http_exception(exc: RecoveryError) -> HTTPException:
    """Map engine error kinds to HTTP status codes"""
    if isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error("Unhandled engine error: %s", exc)
    return HTTPException(
        status_code=code,
        detail={"error": type(exc).__name__, "kind": exc.kind, "message": exc.message,
                "entity_id": exc.entity_id}
    )
