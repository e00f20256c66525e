from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from app.models.leave_category import LeaveUnit
from app.models.leave_request import HalfDay, LeaveStatus

class LeaveCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    # Inferred from the name when omitted
    unit: Optional[LeaveUnit] = None
    description: Optional[str] = None

class LeaveCategoryUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[LeaveUnit] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

class LeaveCategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    unit: LeaveUnit
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

class LeaveRequestCreate(BaseModel):
    category_id: int
    start_date: date
    end_date: date
    reason: str
    half_day: Optional[HalfDay] = None
    short_leave_from: Optional[str] = None  # "HH:MM"
    short_leave_to: Optional[str] = None
    # Admin/HR may file on behalf of an employee
    employee_id: Optional[int] = None

class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: int
    category_id: int
    category_name: Optional[str] = None
    amount: Optional[str] = None
    days: float
    minutes: int
    start_date: date
    end_date: date
    reason: Optional[str] = None
    half_day: Optional[str] = None
    short_leave_from: Optional[str] = None
    short_leave_to: Optional[str] = None
    status: str
    kind: str
    approver_id: Optional[int] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LeaveDecision(BaseModel):
    status: LeaveStatus
    rejection_reason: Optional[str] = None

class AllotmentCreate(BaseModel):
    employee_id: int
    category_id: int
    days: Optional[float] = None
    hours: Optional[int] = None
    minutes: Optional[int] = None
    carry_forward: bool = False
    note: Optional[str] = None

class BulkAllotRequest(BaseModel):
    allocations: List[AllotmentCreate]
    replace_allotment_ids: List[int] = []

class BulkAllotResponse(BaseModel):
    created: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]

class AllotmentUpdate(BaseModel):
    category_id: Optional[int] = None
    days: Optional[float] = None
    hours: Optional[int] = None
    minutes: Optional[int] = None
    carry_forward: Optional[bool] = None
    note: Optional[str] = None

class AllotmentResponse(BaseModel):
    id: int
    employee_id: int
    category_id: int
    category_name: str
    unit: LeaveUnit
    granted: str
    remaining: str
    granted_days: float
    granted_minutes: int
    remaining_days: float
    remaining_minutes: int
    carry_forward: bool
    note: Optional[str] = None
    is_system: bool

class DeductionHistoryEntry(BaseModel):
    id: int
    action: str
    entity_id: Optional[int] = None
    user_id: Optional[int] = None
    is_system: bool
    details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ReconciliationResult(BaseModel):
    processed: int
    changed: int
