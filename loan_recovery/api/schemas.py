"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Directory schemas
class CreateTenantRequest(BaseModel):
    name: str
    subdomain: str
    tenant_id: Optional[str] = None


class CreateEmployeeRequest(BaseModel):
    name: str
    emp_id: str
    role: str = Field(..., description="TeamIncharge or Telecaller")
    mobile: Optional[str] = None
    team_id: Optional[str] = None


class CreateTeamRequest(BaseModel):
    name: str
    team_incharge_id: Optional[str] = None
    product_name: Optional[str] = None
    telecaller_ids: List[str] = Field(default_factory=list)


class CreateColumnRequest(BaseModel):
    column_name: str
    display_name: str
    product_name: Optional[str] = None
    data_type: str = "text"
    is_custom: bool = False
    column_order: Optional[int] = None


# Import schemas
class ReconcileRequest(BaseModel):
    rows: List[Dict[str, Any]]
    product_name: Optional[str] = None
    team_id: Optional[str] = None


# Case schemas
class CreateCaseRequest(BaseModel):
    loan_id: str
    customer_name: Optional[str] = None
    mobile_no: Optional[str] = None
    outstanding_amount: Optional[str] = None
    loan_amount: Optional[str] = None
    product_name: Optional[str] = None
    team_id: Optional[str] = None
    extension: Dict[str, Any] = Field(default_factory=dict)


class AssignRequest(BaseModel):
    telecaller_id: str


class ChangeTeamRequest(BaseModel):
    team_id: str


class TransferRequest(BaseModel):
    team_id: str
    telecaller_id: Optional[str] = None


class BulkOperationRequest(BaseModel):
    case_ids: List[str]
    operation: str = Field(..., description="assign, unassign or change_team")
    telecaller_id: Optional[str] = None
    team_id: Optional[str] = None


# Call and payment schemas
class LogCallRequest(BaseModel):
    call_status: str = Field(..., description="Call outcome code (WN, PTP, PAYMENT_RECEIVED, ...)")
    call_notes: str
    ptp_date: Optional[str] = None  # ISO date or datetime
    amount_collected: Optional[str] = None  # Decimal as string


class RecordPaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    notes: str
