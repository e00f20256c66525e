"""
Leave Request Workflow

State machine for leave requests (PENDING -> APPROVED / REJECTED, plus the
reversal APPROVED -> REJECTED) and administration of allotments. Every status
change that touches the approved set is followed by a ledger recompute in the
same transaction.

Notifications are sent after the commit and never fail the transition.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AccessDeniedError,
    DuplicateAllotmentError,
    InsufficientBalanceError,
    InvalidLeaveRequestError,
    NotFoundError,
    SelfApprovalForbiddenError,
)
from app.models.leave_allotment import LeaveAllotment
from app.models.leave_category import LeaveCategory, LeaveUnit
from app.models.leave_request import HalfDay, LeaveKind, LeaveRequest, LeaveStatus
from app.models.user import User, UserRole
from app.services.audit import AuditService
from app.services.balance_ledger import BalanceLedger, amount_from_input
from app.services.base import BaseService
from app.services.leave_amount import LeaveAmount
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

# Terminal-state rules, enforced by the API layer before calling decide()
ALLOWED_TRANSITIONS = {
    LeaveStatus.PENDING.value: {LeaveStatus.APPROVED.value, LeaveStatus.REJECTED.value},
    LeaveStatus.APPROVED.value: {LeaveStatus.REJECTED.value},
    LeaveStatus.REJECTED.value: set(),
}


def is_transition_allowed(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


@dataclass
class AmountSpec:
    """How the requested amount is expressed; at most one of the options applies."""
    half_day: Optional[HalfDay] = None
    short_leave_from: Optional[str] = None
    short_leave_to: Optional[str] = None

    @property
    def is_short_leave(self) -> bool:
        return bool(self.short_leave_from or self.short_leave_to)


def derive_amount(category: LeaveCategory, spec: AmountSpec, start_date: date, end_date: date) -> LeaveAmount:
    """
    Amount implied by a request:
    - short leave time range -> hours/minutes between the two times
    - half-day marker -> 0.5 day
    - otherwise -> inclusive day count between the dates
    """
    if end_date < start_date:
        raise InvalidLeaveRequestError("End date cannot be before start date")

    if spec.is_short_leave:
        if category.unit != LeaveUnit.HOURS_MINUTES:
            raise InvalidLeaveRequestError(f"{category.name} is taken in days; time ranges are not allowed")
        if not (spec.short_leave_from and spec.short_leave_to):
            raise InvalidLeaveRequestError("Short leave needs both a from and a to time")
        if start_date != end_date:
            raise InvalidLeaveRequestError("A short leave must start and end on the same day")
        try:
            amount = LeaveAmount.from_time_range(spec.short_leave_from, spec.short_leave_to)
        except ValueError:
            raise InvalidLeaveRequestError("Short leave times must be in HH:MM format")
        if not amount.is_positive:
            raise InvalidLeaveRequestError("Short leave must end after it starts")
        return amount

    if category.unit == LeaveUnit.HOURS_MINUTES:
        raise InvalidLeaveRequestError(f"{category.name} requires a from/to time range")

    if spec.half_day is not None:
        if start_date != end_date:
            raise InvalidLeaveRequestError("A half-day leave must start and end on the same day")
        return LeaveAmount.days(0.5)

    return LeaveAmount.days((end_date - start_date).days + 1)


class LeaveRequestWorkflow(BaseService):

    def __init__(self, db: Session, ledger: Optional[BalanceLedger] = None):
        super().__init__(db)
        self.ledger = ledger or BalanceLedger(db)
        self.audit = AuditService(db)

    def get_request(self, request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, request_id)
        if not request:
            raise NotFoundError("Leave request", request_id)
        return request

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(
        self,
        actor: User,
        category_id: int,
        start_date: date,
        end_date: date,
        reason: str,
        amount_spec: Optional[AmountSpec] = None,
        employee_id: Optional[int] = None,
    ) -> LeaveRequest:
        amount_spec = amount_spec or AmountSpec()
        employee_id = employee_id or actor.id
        if employee_id != actor.id:
            if not actor.can_approve:
                raise AccessDeniedError("Employees can only request leave for themselves")
            if self.db.get(User, employee_id) is None:
                raise NotFoundError("Employee", employee_id)
        if not (reason or "").strip():
            raise InvalidLeaveRequestError("A reason is required")

        category = self.ledger.categories.get_active(category_id)
        amount = derive_amount(category, amount_spec, start_date, end_date)

        # Employees may only request what was allotted to them, within balance
        if actor.role == UserRole.EMPLOYEE:
            sufficient, remaining = self.ledger.check_sufficient_balance(employee_id, category_id, amount)
            if not sufficient:
                raise InsufficientBalanceError(remaining, amount)

        request = LeaveRequest(
            employee_id=employee_id,
            category_id=category_id,
            start_date=start_date,
            end_date=end_date,
            reason=reason.strip(),
            half_day=amount_spec.half_day.value if amount_spec.half_day else None,
            short_leave_from=amount_spec.short_leave_from,
            short_leave_to=amount_spec.short_leave_to,
            status=LeaveStatus.PENDING.value,
            kind=LeaveKind.REQUEST.value,
            **amount.column_values(),
        )
        self.db.add(request)
        self.commit()
        self.db.refresh(request)
        logger.info(
            f"Leave request {request.id} submitted by user {actor.id} for employee {employee_id}: {amount} of '{category.name}'"
        )

        if actor.role == UserRole.EMPLOYEE:
            self._notify_approvers(request, category, amount)
        return request

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    def decide(
        self,
        actor: User,
        request_id: int,
        decision: LeaveStatus,
        rejection_reason: Optional[str] = None,
    ) -> LeaveRequest:
        if not actor.can_approve:
            raise AccessDeniedError("Only Admin or HR can decide leave requests")
        decision = LeaveStatus(decision)
        if decision == LeaveStatus.PENDING:
            raise InvalidLeaveRequestError("Decision must be approved or rejected")

        request = self.get_request(request_id)
        if actor.role == UserRole.HR and request.employee_id == actor.id:
            raise SelfApprovalForbiddenError()

        previous_status = request.status
        before_state = {"status": previous_status, "approver_id": request.approver_id}
        category = request.category
        amount = LeaveAmount.from_columns(category.unit, request.days, request.minutes)

        newly_approved = decision == LeaveStatus.APPROVED and previous_status != LeaveStatus.APPROVED.value
        reversed_approval = decision == LeaveStatus.REJECTED and previous_status == LeaveStatus.APPROVED.value

        if newly_approved and self.ledger.get_allotment(request.employee_id, request.category_id):
            sufficient, remaining = self.ledger.check_sufficient_balance(
                request.employee_id, request.category_id, amount, exclude_request_id=request.id
            )
            if not sufficient:
                raise InsufficientBalanceError(remaining, amount)

        request.status = decision.value
        request.approver_id = actor.id
        request.decided_at = datetime.now(timezone.utc)
        if decision == LeaveStatus.APPROVED:
            request.rejection_reason = None
        else:
            request.rejection_reason = rejection_reason
        self.db.flush()

        # Recompute after the status write so the approved set is current
        remaining = None
        if newly_approved:
            remaining = self.ledger.apply_deduction(request.id, commit=False)
            action = "leave_deducted"
        elif reversed_approval:
            remaining = self.ledger.apply_restoration(request.id, commit=False)
            action = "leave_restored"
        else:
            action = "leave_rejected"

        self.audit.log_action(
            action=action,
            entity_type="leave_request",
            entity_id=request.id,
            user_id=actor.id,
            user_role=actor.role.value,
            subject_employee_id=request.employee_id,
            details={
                "category": category.name,
                "amount": str(amount),
                "remaining": str(remaining) if remaining is not None else None,
                "rejection_reason": request.rejection_reason,
            },
            before_state=before_state,
            after_state={"status": request.status, "approver_id": request.approver_id},
        )
        self.commit()
        self.db.refresh(request)
        logger.info(f"Leave request {request.id}: {previous_status} -> {request.status} by user {actor.id}")

        self._notify_employee(request, category, amount)
        return request

    # ------------------------------------------------------------------
    # Allotment editing & deletion
    # ------------------------------------------------------------------
    def edit_allotment(
        self,
        actor: User,
        allotment_id: int,
        category_id: Optional[int] = None,
        days: Optional[float] = None,
        hours: Optional[int] = None,
        minutes: Optional[int] = None,
        carry_forward: Optional[bool] = None,
        note: Optional[str] = None,
    ) -> LeaveAllotment:
        if not actor.can_approve:
            raise AccessDeniedError("Only Admin or HR can edit allotments")
        allotment = self.ledger.get_allotment_by_id(allotment_id)
        before_state = {
            "category_id": allotment.category_id,
            "granted_days": allotment.granted_days,
            "granted_minutes": allotment.granted_minutes,
        }
        amount_given = any(v is not None for v in (days, hours, minutes))

        if category_id is not None and category_id != allotment.category_id:
            new_category = self.ledger.categories.get_active(category_id)
            if self.ledger.get_allotment(allotment.employee_id, category_id):
                raise DuplicateAllotmentError(new_category.name)
            if new_category.unit != allotment.category.unit and not amount_given:
                raise InvalidLeaveRequestError(
                    f"{new_category.name} is measured in {new_category.unit.value}; provide the allotted amount"
                )
            allotment.category = new_category

        if amount_given:
            amount = amount_from_input(allotment.category.unit, days, hours, minutes)
            columns = amount.column_values()
            allotment.granted_days = columns["days"]
            allotment.granted_minutes = columns["minutes"]
        if carry_forward is not None:
            allotment.carry_forward = carry_forward
        if note is not None:
            allotment.note = note

        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateAllotmentError()

        remaining = self.ledger.recompute(allotment.employee_id, allotment.category_id, commit=False)
        self.audit.log_action(
            action="allotment_updated",
            entity_type="leave_allotment",
            entity_id=allotment.id,
            user_id=actor.id,
            user_role=actor.role.value,
            subject_employee_id=allotment.employee_id,
            details={"remaining": str(remaining)},
            before_state=before_state,
            after_state={
                "category_id": allotment.category_id,
                "granted_days": allotment.granted_days,
                "granted_minutes": allotment.granted_minutes,
            },
        )
        self.commit()
        self.db.refresh(allotment)
        return allotment

    def delete_request(self, actor: User, request_id: int) -> None:
        request = self.get_request(request_id)
        if not actor.can_approve:
            if (
                request.employee_id != actor.id
                or request.status != LeaveStatus.PENDING.value
                or request.kind != LeaveKind.REQUEST.value
            ):
                raise AccessDeniedError("You can only delete your own pending leave requests")

        was_approved = request.status == LeaveStatus.APPROVED.value
        employee_id, category_id = request.employee_id, request.category_id
        self.db.delete(request)
        self.db.flush()

        if was_approved:
            remaining = self.ledger.recompute(employee_id, category_id, commit=False)
            self.audit.log_action(
                action="leave_restored",
                entity_type="leave_request",
                entity_id=request_id,
                user_id=actor.id,
                user_role=actor.role.value,
                subject_employee_id=employee_id,
                details={"deleted": True, "remaining": str(remaining) if remaining is not None else None},
            )
        self.commit()
        logger.info(f"Leave request {request_id} deleted by user {actor.id}")

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------
    def list_requests(
        self,
        actor: User,
        employee_id: Optional[int] = None,
        status: Optional[LeaveStatus] = None,
        include_system: bool = False,
    ) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest)
        if not actor.can_approve:
            query = query.filter(LeaveRequest.employee_id == actor.id)
        elif employee_id is not None:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.filter(LeaveRequest.status == LeaveStatus(status).value)
        if not include_system:
            query = query.filter(LeaveRequest.kind == LeaveKind.REQUEST.value)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

    def employees_on_leave(self, day: date) -> List[int]:
        rows = self.db.query(LeaveRequest.employee_id).filter(
            LeaveRequest.status == LeaveStatus.APPROVED.value,
            LeaveRequest.kind == LeaveKind.REQUEST.value,
            LeaveRequest.start_date <= day,
            LeaveRequest.end_date >= day,
        ).distinct().all()
        return sorted(row[0] for row in rows)

    def allotted_categories(self, employee_id: int) -> List[LeaveCategory]:
        return (
            self.db.query(LeaveCategory)
            .join(LeaveAllotment, LeaveAllotment.category_id == LeaveCategory.id)
            .filter(LeaveAllotment.employee_id == employee_id)
            .order_by(LeaveCategory.name)
            .all()
        )

    # ------------------------------------------------------------------
    # Notifications (best effort)
    # ------------------------------------------------------------------
    def _notify_approvers(self, request: LeaveRequest, category: LeaveCategory, amount: LeaveAmount):
        try:
            employee = request.employee
            name = employee.full_name or employee.email
            dates = request.start_date.isoformat()
            if request.end_date != request.start_date:
                dates = f"{dates} - {request.end_date.isoformat()}"
            approvers = [u for u in NotificationService.approvers(self.db) if u.id != request.employee_id]
            message = f"{name} requested {amount} of {category.name} for {dates}"

            NotificationService.send_email(
                [u.email for u in approvers],
                subject=f"New leave request from {name}",
                body=f"{message}.\nReason: {request.reason}",
            )
            NotificationService.notify_users(
                self.db,
                [u.id for u in approvers],
                title="New Leave Request",
                message=message,
                type="info",
                tag=f"leave-request-{request.id}",
            )
        except Exception as e:
            # Don't fail the request if notification fails
            logger.warning(f"Leave request notification failed: {e}", exc_info=True)

    def _notify_employee(self, request: LeaveRequest, category: LeaveCategory, amount: LeaveAmount):
        try:
            if request.status == LeaveStatus.APPROVED.value:
                title = "Leave Approved"
                message = f"Your {category.name} request for {amount} has been APPROVED."
                kind = "success"
            else:
                title = "Leave Rejected"
                message = f"Your {category.name} request has been REJECTED."
                if request.rejection_reason:
                    message = f"{message} Reason: {request.rejection_reason}"
                kind = "error"
            NotificationService.send_email([request.employee.email], subject=title, body=message)
            NotificationService.create_notification(
                self.db, request.employee_id, title, message, kind, tag=f"leave-request-{request.id}"
            )
        except Exception as e:
            logger.warning(f"Leave decision notification failed: {e}", exc_info=True)
