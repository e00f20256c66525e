from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Dict, List, Optional

class ClockOutRequest(BaseModel):
    auto_clock_out: bool = False

class AttendanceRecordResponse(BaseModel):
    id: int
    employee_id: int
    work_date: date
    clock_in: datetime
    clock_out: Optional[datetime] = None
    hours_worked: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

class PenaltyOutcomeResponse(BaseModel):
    status: str
    late_arrival_count: int
    grace_count: int
    threshold: Optional[str] = None
    penalty_id: Optional[int] = None
    deduction_recorded: bool

class ClockInResponse(BaseModel):
    message: str
    attendance: AttendanceRecordResponse
    penalty: Optional[PenaltyOutcomeResponse] = None

class PenaltyResponse(BaseModel):
    id: int
    employee_id: int
    late_arrival_date: date
    clock_in_time: str
    threshold: str
    grace_count: int
    late_arrival_count: int
    penalty_amount: float
    reason: str

    model_config = ConfigDict(from_attributes=True)

class LeaveSummary(BaseModel):
    total: Optional[str] = None
    deducted: Optional[str] = None
    remaining: Optional[str] = None

class PenaltyDayResponse(BaseModel):
    day: date
    has_penalty: bool
    penalty: Optional[PenaltyResponse] = None
    threshold: Optional[str] = None
    grace_count: int
    late_arrivals: List[Dict[str, str]]
    late_arrival_count: int
    leave_summary: LeaveSummary

class PenaltyAssessRequest(BaseModel):
    employee_id: Optional[int] = None
    clock_in_at: datetime
