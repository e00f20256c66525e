import logging
from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.core.limiter import DEFAULT_LIMIT, limiter
from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_user
from app.schemas.attendance import (
    AttendanceRecordResponse,
    ClockInResponse,
    ClockOutRequest,
    LeaveSummary,
    PenaltyAssessRequest,
    PenaltyDayResponse,
    PenaltyOutcomeResponse,
    PenaltyResponse,
)
from app.services.attendance import AttendanceService, local_now
from app.services.attendance_penalty import AttendancePenaltyAssessor, PenaltyOutcome

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/attendance",
    tags=["attendance"]
)


def _own_or_approver(current_user: User, employee_id: Optional[int]) -> int:
    if employee_id is None or employee_id == current_user.id:
        return current_user.id
    if not current_user.can_approve:
        raise AccessDeniedError("You can only access your own attendance")
    return employee_id


def _outcome_out(outcome: Optional[PenaltyOutcome]) -> Optional[PenaltyOutcomeResponse]:
    if outcome is None:
        return None
    data = asdict(outcome)
    data["status"] = outcome.status.value
    return PenaltyOutcomeResponse(**data)


@router.post("/clock-in", response_model=ClockInResponse)
@limiter.limit(DEFAULT_LIMIT)
def clock_in(request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    record, outcome = AttendanceService(db).clock_in(current_user.id)
    return ClockInResponse(
        message="Clocked in successfully",
        attendance=AttendanceRecordResponse.model_validate(record),
        penalty=_outcome_out(outcome),
    )


@router.post("/clock-out", response_model=AttendanceRecordResponse)
def clock_out(
    payload: ClockOutRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return AttendanceService(db).clock_out(current_user.id, auto=payload.auto_clock_out)


@router.get("/records", response_model=List[AttendanceRecordResponse])
def list_records(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return AttendanceService(db).records_for(_own_or_approver(current_user, employee_id))


@router.get("/penalty", response_model=PenaltyDayResponse)
def get_penalty(
    employee_id: Optional[int] = None,
    day: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    employee_id = _own_or_approver(current_user, employee_id)
    report = AttendancePenaltyAssessor(db).penalty_for_day(employee_id, day or local_now().date())
    return PenaltyDayResponse(
        day=report.day,
        has_penalty=report.penalty is not None,
        penalty=PenaltyResponse.model_validate(report.penalty) if report.penalty else None,
        threshold=report.threshold,
        grace_count=report.grace_count,
        late_arrivals=report.late_arrivals,
        late_arrival_count=len(report.late_arrivals),
        leave_summary=LeaveSummary(
            total=str(report.total) if report.total is not None else None,
            deducted=str(report.deducted) if report.deducted is not None else None,
            remaining=str(report.remaining) if report.remaining is not None else None,
        ),
    )


@router.post("/penalty", response_model=PenaltyOutcomeResponse)
def assess_penalty(
    payload: PenaltyAssessRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Re-runs the late clock-in assessment for a given clock-in time."""
    employee_id = _own_or_approver(current_user, payload.employee_id)
    logger.info(f"Penalty assessment for employee {employee_id} at {payload.clock_in_at} requested by user {current_user.id}")
    outcome = AttendancePenaltyAssessor(db).assess(employee_id, payload.clock_in_at)
    return _outcome_out(outcome)
