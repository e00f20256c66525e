"""
Leave requests, allotments and balances.

Employees see and file their own leave; Admin and HR decide requests and
manage allotments for everyone.
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError, InvalidTransitionError
from app.database import get_db
from app.models.leave_allotment import LeaveAllotment
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.user import User
from app.routers.auth_deps import get_current_user, require_approver
from app.schemas.leave import (
    AllotmentCreate,
    AllotmentResponse,
    AllotmentUpdate,
    BulkAllotRequest,
    BulkAllotResponse,
    DeductionHistoryEntry,
    LeaveCategoryResponse,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestResponse,
    ReconciliationResult,
)
from app.services.attendance import local_now
from app.services.audit import AuditService
from app.services.balance_ledger import BalanceLedger, amount_from_input
from app.services.leave_amount import LeaveAmount
from app.services.leave_workflow import AmountSpec, LeaveRequestWorkflow, is_transition_allowed
from app.services.reconciliation import ReconciliationJob

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/leave",
    tags=["leave"]
)


# --- Helpers ---

def _scoped_employee_id(current_user: User, employee_id: Optional[int]) -> int:
    """Employees may only look at themselves; approvers may look at anyone."""
    if employee_id is None or employee_id == current_user.id:
        return current_user.id
    if not current_user.can_approve:
        raise AccessDeniedError("You can only view your own leave")
    return employee_id


def _request_out(request: LeaveRequest) -> LeaveRequestResponse:
    response = LeaveRequestResponse.model_validate(request)
    response.category_name = request.category.name
    response.amount = str(LeaveAmount.from_columns(request.category.unit, request.days, request.minutes))
    return response


def _allotment_out(allotment: LeaveAllotment) -> AllotmentResponse:
    return AllotmentResponse(
        id=allotment.id,
        employee_id=allotment.employee_id,
        category_id=allotment.category_id,
        category_name=allotment.category.name,
        unit=allotment.category.unit,
        granted=str(BalanceLedger.granted(allotment)),
        remaining=str(BalanceLedger.stored_remaining(allotment)),
        granted_days=allotment.granted_days,
        granted_minutes=allotment.granted_minutes,
        remaining_days=allotment.remaining_days,
        remaining_minutes=allotment.remaining_minutes,
        carry_forward=allotment.carry_forward,
        note=allotment.note,
        is_system=allotment.is_system,
    )


# --- Requests ---

@router.post("/requests", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_leave_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    request = LeaveRequestWorkflow(db).submit(
        current_user,
        category_id=payload.category_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        amount_spec=AmountSpec(
            half_day=payload.half_day,
            short_leave_from=payload.short_leave_from,
            short_leave_to=payload.short_leave_to,
        ),
        employee_id=payload.employee_id,
    )
    return _request_out(request)


@router.get("/requests", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    employee_id: Optional[int] = None,
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    include_system: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    requests = LeaveRequestWorkflow(db).list_requests(
        current_user, employee_id=employee_id, status=status_filter, include_system=include_system
    )
    return [_request_out(r) for r in requests]


@router.patch("/requests/{request_id}", response_model=LeaveRequestResponse)
def decide_leave_request(
    request_id: int,
    payload: LeaveDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    workflow = LeaveRequestWorkflow(db)
    request = workflow.get_request(request_id)
    if not is_transition_allowed(request.status, payload.status.value):
        raise InvalidTransitionError(request.status, payload.status.value)
    request = workflow.decide(current_user, request_id, payload.status, payload.rejection_reason)
    return _request_out(request)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_leave_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    LeaveRequestWorkflow(db).delete_request(current_user, request_id)


# --- Allotments ---

@router.post("/allotments", response_model=AllotmentResponse, status_code=status.HTTP_201_CREATED)
def allot_leave(
    payload: AllotmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    ledger = BalanceLedger(db)
    category = ledger.categories.get_active(payload.category_id)
    amount = amount_from_input(category.unit, payload.days, payload.hours, payload.minutes)
    allotment = ledger.allot(
        payload.employee_id,
        payload.category_id,
        amount,
        actor_id=current_user.id,
        carry_forward=payload.carry_forward,
        note=payload.note,
    )
    AuditService(db).log_action(
        action="allotment_created",
        entity_type="leave_allotment",
        entity_id=allotment.id,
        user_id=current_user.id,
        user_role=current_user.role.value,
        subject_employee_id=allotment.employee_id,
        details={"category": category.name, "amount": str(amount)},
    )
    db.commit()
    return _allotment_out(allotment)


@router.post("/allotments/bulk", response_model=BulkAllotResponse)
def bulk_allot_leave(
    payload: BulkAllotRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    return BalanceLedger(db).bulk_allot(
        [item.model_dump() for item in payload.allocations],
        actor_id=current_user.id,
        replace_allotment_ids=payload.replace_allotment_ids,
    )


@router.patch("/allotments/{allotment_id}", response_model=AllotmentResponse)
def edit_allotment(
    allotment_id: int,
    payload: AllotmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    allotment = LeaveRequestWorkflow(db).edit_allotment(
        current_user, allotment_id, **payload.model_dump(exclude_unset=True)
    )
    return _allotment_out(allotment)


@router.delete("/allotments/{allotment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_allotment(
    allotment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    BalanceLedger(db).delete_allotment(allotment_id)


# --- Balances & views ---

@router.get("/balances", response_model=List[AllotmentResponse])
def get_balances(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    employee_id = _scoped_employee_id(current_user, employee_id)
    return [_allotment_out(a) for a in BalanceLedger(db).balances_for(employee_id)]


@router.get("/allotted-types", response_model=List[LeaveCategoryResponse])
def get_allotted_types(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    employee_id = _scoped_employee_id(current_user, employee_id)
    return LeaveRequestWorkflow(db).allotted_categories(employee_id)


@router.get("/on-leave-today", response_model=List[int])
def get_employees_on_leave(
    day: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    return LeaveRequestWorkflow(db).employees_on_leave(day or local_now().date())


@router.get("/history", response_model=List[DeductionHistoryEntry])
def get_deduction_history(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    employee_id = _scoped_employee_id(current_user, employee_id)
    return AuditService(db).deduction_history(employee_id)


@router.post("/recalculate-balances", response_model=ReconciliationResult)
def recalculate_balances(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    result = ReconciliationJob(db).run()
    logger.info(f"Balance reconciliation triggered by user {current_user.id}: {result}")
    return result
