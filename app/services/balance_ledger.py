"""
Balance Ledger

Derives the remaining balance of every allotment from the ground truth: the
set of APPROVED leave requests (ordinary requests and penalty deductions) for
the same employee and category. Nothing in the system adds to or subtracts
from a stored balance directly; deduction and restoration both reduce to
``recompute``.

Architecture:
- Workflow / Assessor / Reconciliation -> BalanceLedger -> Models
- BalanceLedger is the only writer of LeaveAllotment.remaining_*
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.exceptions import (
    AppException,
    DuplicateAllotmentError,
    InvalidLeaveRequestError,
    NotAllottedError,
    NotFoundError,
)
from app.models.leave_allotment import LeaveAllotment
from app.models.leave_category import LeaveCategory, LeaveUnit
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.user import User
from app.services.base import BaseService
from app.services.leave_amount import LeaveAmount
from app.services.leave_categories import LeaveCategoryRegistry

logger = logging.getLogger(__name__)


def amount_from_input(
    unit: LeaveUnit,
    days: Optional[float] = None,
    hours: Optional[int] = None,
    minutes: Optional[int] = None,
) -> LeaveAmount:
    """Builds an allotment amount from loosely-typed admin input."""
    if unit == LeaveUnit.HOURS_MINUTES:
        if days:
            raise InvalidLeaveRequestError("Short leave types are allotted in hours and minutes, not days")
        if (hours or 0) < 0 or (minutes or 0) < 0:
            raise InvalidLeaveRequestError("Hours and minutes cannot be negative")
        return LeaveAmount.hours_minutes(hours or 0, minutes or 0)
    if hours or minutes:
        raise InvalidLeaveRequestError("This leave type is allotted in days, not hours and minutes")
    if days is not None and days < 0:
        raise InvalidLeaveRequestError("Days cannot be negative")
    return LeaveAmount.days(days or 0)


class BalanceLedger(BaseService):

    def __init__(self, db: Session, categories: Optional[LeaveCategoryRegistry] = None):
        super().__init__(db)
        self.categories = categories or LeaveCategoryRegistry(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_allotment(self, employee_id: int, category_id: int) -> Optional[LeaveAllotment]:
        return self.db.query(LeaveAllotment).filter(
            LeaveAllotment.employee_id == employee_id,
            LeaveAllotment.category_id == category_id,
        ).first()

    def get_allotment_by_id(self, allotment_id: int) -> LeaveAllotment:
        allotment = self.db.get(LeaveAllotment, allotment_id)
        if not allotment:
            raise NotFoundError("Allotment", allotment_id)
        return allotment

    @staticmethod
    def granted(allotment: LeaveAllotment) -> LeaveAmount:
        return LeaveAmount.from_columns(
            allotment.category.unit, allotment.granted_days, allotment.granted_minutes
        )

    @staticmethod
    def stored_remaining(allotment: LeaveAllotment) -> LeaveAmount:
        return LeaveAmount.from_columns(
            allotment.category.unit, allotment.remaining_days, allotment.remaining_minutes
        )

    def consumed(
        self,
        employee_id: int,
        category_id: int,
        unit: LeaveUnit,
        exclude_request_id: Optional[int] = None,
    ) -> LeaveAmount:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.category_id == category_id,
            LeaveRequest.status == LeaveStatus.APPROVED.value,
        )
        if exclude_request_id is not None:
            query = query.filter(LeaveRequest.id != exclude_request_id)

        total = LeaveAmount.zero(unit)
        for request in query.all():
            total = total + LeaveAmount.from_columns(unit, request.days, request.minutes)
        return total

    def compute_remaining(
        self, allotment: LeaveAllotment, exclude_request_id: Optional[int] = None
    ) -> LeaveAmount:
        """Pure derivation: granted minus approved consumption, clamped to [0, granted]."""
        unit = allotment.category.unit
        used = self.consumed(allotment.employee_id, allotment.category_id, unit, exclude_request_id)
        return self.granted(allotment).clamped_sub(used)

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------
    def recompute(
        self,
        employee_id: int,
        category_id: int,
        exclude_request_id: Optional[int] = None,
        commit: bool = True,
    ) -> Optional[LeaveAmount]:
        """
        Rebuilds and stores the remaining balance for (employee, category).

        Returns None when the pair has no allotment. With ``commit=False`` the
        write is only flushed and joins the caller's transaction; otherwise it
        is committed with retries on transient storage errors.
        """
        if not commit:
            return self._write_remaining(employee_id, category_id, exclude_request_id)
        return self._recompute_and_commit(employee_id, category_id, exclude_request_id)

    def _write_remaining(
        self, employee_id: int, category_id: int, exclude_request_id: Optional[int]
    ) -> Optional[LeaveAmount]:
        allotment = self.get_allotment(employee_id, category_id)
        if allotment is None:
            return None
        remaining = self.compute_remaining(allotment, exclude_request_id)
        columns = remaining.column_values()
        allotment.remaining_days = columns["days"]
        allotment.remaining_minutes = columns["minutes"]
        self.db.flush()
        return remaining

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    def _recompute_and_commit(
        self, employee_id: int, category_id: int, exclude_request_id: Optional[int]
    ) -> Optional[LeaveAmount]:
        try:
            remaining = self._write_remaining(employee_id, category_id, exclude_request_id)
            self.db.commit()
        except OperationalError:
            self.db.rollback()
            logger.warning(
                f"Remaining balance write failed for employee {employee_id} category {category_id}; retrying",
                exc_info=True,
            )
            raise
        except Exception:
            self.db.rollback()
            raise
        return remaining

    def apply_deduction(self, request_id: int, commit: bool = True) -> Optional[LeaveAmount]:
        """Balance effect of an approval: recompute from the approved set."""
        request = self._get_request(request_id)
        return self.recompute(request.employee_id, request.category_id, commit=commit)

    def apply_restoration(self, request_id: int, commit: bool = True) -> Optional[LeaveAmount]:
        """Balance effect of a reversal: the same recompute, since the approved set shrank."""
        request = self._get_request(request_id)
        return self.recompute(request.employee_id, request.category_id, commit=commit)

    def _get_request(self, request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, request_id)
        if not request:
            raise NotFoundError("Leave request", request_id)
        return request

    # ------------------------------------------------------------------
    # Sufficiency
    # ------------------------------------------------------------------
    def check_sufficient_balance(
        self,
        employee_id: int,
        category_id: int,
        requested: LeaveAmount,
        exclude_request_id: Optional[int] = None,
    ) -> Tuple[bool, LeaveAmount]:
        """
        Returns (requested <= remaining, remaining), remaining being derived
        without the in-flight request. Raises NotAllottedError when the
        employee holds no allotment for the category.
        """
        allotment = self.get_allotment(employee_id, category_id)
        if allotment is None:
            category = self.db.get(LeaveCategory, category_id)
            raise NotAllottedError(category.name if category else "This leave type")
        if requested.unit != allotment.category.unit:
            raise InvalidLeaveRequestError(
                f"{allotment.category.name} is measured in {allotment.category.unit.value}"
            )
        remaining = self.compute_remaining(allotment, exclude_request_id)
        return requested <= remaining, remaining

    # ------------------------------------------------------------------
    # Allotments
    # ------------------------------------------------------------------
    def allot(
        self,
        employee_id: int,
        category_id: int,
        amount: LeaveAmount,
        actor_id: Optional[int],
        carry_forward: bool = False,
        note: Optional[str] = None,
        is_system: bool = False,
        replacing: Optional[LeaveAllotment] = None,
    ) -> LeaveAllotment:
        """
        Grants ``amount`` of a category to an employee. When ``replacing`` is
        given it is deleted in the same transaction as the new row is written,
        and only once every check on the new allotment has passed.
        """
        category = self.categories.get_active(category_id)
        if self.db.get(User, employee_id) is None:
            raise NotFoundError("Employee", employee_id)
        if amount.unit != category.unit:
            raise InvalidLeaveRequestError(f"{category.name} is measured in {category.unit.value}")
        if not is_system and not amount.is_positive:
            raise InvalidLeaveRequestError("Allotted amount must be greater than zero")
        existing = self.get_allotment(employee_id, category_id)
        if existing is not None and existing is not replacing:
            raise DuplicateAllotmentError(category.name)

        columns = amount.column_values()
        allotment = LeaveAllotment(
            employee_id=employee_id,
            category_id=category_id,
            granted_days=columns["days"],
            granted_minutes=columns["minutes"],
            remaining_days=columns["days"],
            remaining_minutes=columns["minutes"],
            carry_forward=carry_forward,
            note=note or ("Auto-allotted for penalty deductions" if is_system else "Allotted by admin/HR"),
            allotted_by_id=actor_id,
            is_system=is_system,
        )
        try:
            if replacing is not None:
                self.db.delete(replacing)
                self.db.flush()
            self.db.add(allotment)
            self.db.flush()
        except IntegrityError:
            # The unique (employee, category) constraint is the authoritative check
            self.db.rollback()
            raise DuplicateAllotmentError(category.name)

        # Approved consumption may predate the allotment (e.g. penalty deductions)
        self._write_remaining(employee_id, category_id, None)
        self.commit()
        self.db.refresh(allotment)
        logger.info(
            f"Allotted {amount} of '{category.name}' to employee {employee_id}",
            extra={"allotment_id": allotment.id, "system": is_system},
        )
        return allotment

    def ensure_allotment(self, employee_id: int, category_id: int) -> LeaveAllotment:
        """Existing allotment for the pair, or a zero-amount system allotment."""
        existing = self.get_allotment(employee_id, category_id)
        if existing:
            return existing
        category = self.categories.get(category_id)
        try:
            return self.allot(
                employee_id,
                category_id,
                LeaveAmount.zero(category.unit),
                actor_id=None,
                is_system=True,
            )
        except DuplicateAllotmentError:
            # Lost a race with a concurrent request; theirs is as good as ours
            return self.get_allotment(employee_id, category_id)

    def bulk_allot(
        self,
        allocations: Iterable[Dict[str, Any]],
        actor_id: int,
        replace_allotment_ids: Iterable[int] = (),
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Allots many (employee, category) pairs, collecting per-item errors
        instead of failing the batch. An allotment listed in
        ``replace_allotment_ids`` is swapped for the batch item of the same
        pair only when that item succeeds; otherwise it stays as it was.
        """
        replaceable: Dict[tuple, LeaveAllotment] = {}
        for allotment_id in replace_allotment_ids:
            allotment = self.db.get(LeaveAllotment, allotment_id)
            if allotment is None:
                logger.info(f"Bulk allot: allotment {allotment_id} already gone")
                continue
            replaceable[(allotment.employee_id, allotment.category_id)] = allotment

        created: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for item in allocations:
            employee_id = item.get("employee_id")
            category_id = item.get("category_id")
            try:
                category = self.categories.get_active(category_id)
                amount = amount_from_input(
                    category.unit, item.get("days"), item.get("hours"), item.get("minutes")
                )
                allotment = self.allot(
                    employee_id,
                    category_id,
                    amount,
                    actor_id=actor_id,
                    carry_forward=bool(item.get("carry_forward")),
                    note=item.get("note"),
                    replacing=replaceable.pop((employee_id, category_id), None),
                )
                created.append({"employee_id": employee_id, "category_id": category_id, "allotment_id": allotment.id})
            except AppException as e:
                errors.append({"employee_id": employee_id, "category_id": category_id, "error": e.message})

        logger.info(f"Bulk allotment: {len(created)} created, {len(errors)} failed")
        return {"created": created, "errors": errors}

    def delete_allotment(self, allotment_id: int) -> None:
        allotment = self.get_allotment_by_id(allotment_id)
        self.db.delete(allotment)
        self.commit()
        logger.info(f"Deleted allotment {allotment_id}")

    def balances_for(self, employee_id: int) -> List[LeaveAllotment]:
        """Every allotment of the employee with a freshly derived remaining balance."""
        allotments = self.db.query(LeaveAllotment).filter(
            LeaveAllotment.employee_id == employee_id
        ).order_by(LeaveAllotment.id).all()
        for allotment in allotments:
            self._write_remaining(allotment.employee_id, allotment.category_id, None)
        self.commit()
        return allotments
