"""
Error Types

Typed failures surfaced by the engine. Validation errors are raised before any
mutation; not-found and conflict errors leave no partial state.
"""

from typing import Optional


class RecoveryError(Exception):
    """Base exception for engine errors"""

    kind = "error"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class ValidationError(RecoveryError, ValueError):
    """Malformed input (missing field, bad promise date, non-numeric amount)"""

    kind = "validation"


class MissingIdentifierColumn(ValidationError):
    """Import header row has no EMPID column"""


class NoColumnsMatched(ValidationError):
    """No import header matched the tenant's column configuration"""


class MissingPromiseDate(ValidationError):
    """Promise-to-pay outcome logged without a usable date"""


class ImportFileError(ValidationError):
    """Import file could not be read or has no data rows"""


class NotFoundError(RecoveryError, LookupError):
    """Case, telecaller, team or tenant id does not resolve"""

    kind = "not_found"


class CaseNotFound(NotFoundError):
    pass


class TelecallerNotFound(NotFoundError):
    pass


class TeamNotFound(NotFoundError):
    pass


class TenantNotFound(NotFoundError):
    pass


class ConflictError(RecoveryError):
    """Mutation refused because of the current state of the target"""

    kind = "conflict"


class CaseClosed(ConflictError):
    """Assignment mutation attempted on a closed case"""


class PaymentConflict(ConflictError):
    """Concurrent payment recording on the same case could not be resolved"""


class DuplicateColumnConfiguration(ConflictError):
    pass


class DuplicateEmployee(ConflictError):
    pass


class DuplicateCase(ConflictError):
    """A case with the same (tenant, loan id) already exists"""
