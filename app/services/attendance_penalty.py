"""
Attendance Penalty Assessor

Decides, on each clock-in, whether the employee has been late on more distinct
days this month than the grace count allows, and if so records a Penalty and a
0.5-day penalty deduction against the penalty leave category.

Both writes are gated by unique constraints (one Penalty per employee per day,
one deduction per employee, category and day). The application-level lookup
only short-circuits the common case; a constraint violation on insert is the
authoritative "already penalized" signal.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AlreadyPenalizedError, AppException, NotFoundError
from app.models.attendance import AttendanceRecord
from app.models.leave_request import LeaveKind, LeaveRequest, LeaveStatus
from app.models.penalty import Penalty
from app.models.user import UNRESTRICTED_THRESHOLDS, User
from app.services.audit import AuditService
from app.services.balance_ledger import BalanceLedger
from app.services.base import BaseService
from app.services.leave_amount import LeaveAmount, parse_hhmm
from app.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class PenaltyStatus(str, enum.Enum):
    NO_PENALTY = "no_penalty"
    ALREADY_PENALIZED = "already_penalized"
    PENALTY_CREATED = "penalty_created"


@dataclass
class PenaltyOutcome:
    status: PenaltyStatus
    late_arrival_count: int = 0
    grace_count: int = 0
    threshold: Optional[str] = None
    penalty_id: Optional[int] = None
    deduction_recorded: bool = False


@dataclass
class PenaltyDayReport:
    day: date
    penalty: Optional[Penalty]
    threshold: Optional[str]
    grace_count: int
    late_arrivals: List[Dict[str, str]] = field(default_factory=list)
    total: Optional[LeaveAmount] = None
    deducted: Optional[LeaveAmount] = None
    remaining: Optional[LeaveAmount] = None


def to_local(moment: datetime) -> datetime:
    """Naive wall-clock time in the configured zone. Naive input is assumed local already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(settings.local_timezone)).replace(tzinfo=None)


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def month_bounds(day: date):
    start = datetime.combine(day.replace(day=1), time.min)
    if day.month == 12:
        end = datetime.combine(date(day.year + 1, 1, 1), time.min)
    else:
        end = datetime.combine(date(day.year, day.month + 1, 1), time.min)
    return start, end


def penalty_applies(late_arrival_count: int, grace_count: int) -> bool:
    """Meeting the grace count exactly is allowed; only exceeding it is penalized."""
    if grace_count == 0:
        return late_arrival_count > 0
    return late_arrival_count > grace_count


class AttendancePenaltyAssessor(BaseService):

    def __init__(self, db: Session, ledger: Optional[BalanceLedger] = None):
        super().__init__(db)
        self.ledger = ledger or BalanceLedger(db)
        self.settings_store = SettingsStore(db)
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Threshold & late-day scan
    # ------------------------------------------------------------------
    def effective_threshold(self, employee: User) -> Optional[str]:
        """
        "HH:MM" threshold that applies to the employee, or None when the
        employee (or the whole company) has no clock-in restriction.
        """
        override = (employee.clock_in_threshold or "").strip()
        if override in UNRESTRICTED_THRESHOLDS:
            return None
        value = override or self.settings_store.default_clock_in_threshold()
        if not value or value in UNRESTRICTED_THRESHOLDS:
            return None
        try:
            parse_hhmm(value)
        except ValueError:
            logger.warning(f"Ignoring malformed clock-in threshold {value!r} for employee {employee.id}")
            return None
        return value

    def late_days(self, employee_id: int, threshold: str, within: date) -> Dict[date, datetime]:
        """Distinct late days in the month of ``within``, each with its earliest late clock-in."""
        threshold_minutes = parse_hhmm(threshold)
        start, end = month_bounds(within)

        records = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.clock_in >= start,
            AttendanceRecord.clock_in < end,
        ).order_by(AttendanceRecord.clock_in).all()

        days: Dict[date, datetime] = {}
        for record in records:
            if minutes_of_day(record.clock_in) > threshold_minutes:
                days.setdefault(record.clock_in.date(), record.clock_in)
        return days

    # ------------------------------------------------------------------
    # Assessment
    # ------------------------------------------------------------------
    def assess(self, employee_id: int, clock_in_at: datetime) -> PenaltyOutcome:
        employee = self.db.get(User, employee_id)
        if employee is None:
            logger.warning(f"Penalty assessment skipped: employee {employee_id} not found")
            return PenaltyOutcome(PenaltyStatus.NO_PENALTY)

        threshold = self.effective_threshold(employee)
        if threshold is None:
            return PenaltyOutcome(PenaltyStatus.NO_PENALTY)

        local_clock_in = to_local(clock_in_at)
        if minutes_of_day(local_clock_in) <= parse_hhmm(threshold):
            return PenaltyOutcome(PenaltyStatus.NO_PENALTY, threshold=threshold)

        today = local_clock_in.date()
        days = self.late_days(employee_id, threshold, today)
        days.setdefault(today, local_clock_in)
        late_count = len(days)
        grace = self.settings_store.max_late_days_per_month()

        outcome = PenaltyOutcome(
            PenaltyStatus.NO_PENALTY,
            late_arrival_count=late_count,
            grace_count=grace,
            threshold=threshold,
        )
        if not penalty_applies(late_count, grace):
            return outcome

        if self._already_penalized(employee_id, today):
            outcome.status = PenaltyStatus.ALREADY_PENALIZED
            return outcome

        try:
            penalty = self._record_penalty(employee_id, today, local_clock_in, threshold, grace, late_count)
        except AlreadyPenalizedError:
            logger.info(f"Concurrent clock-in already penalized employee {employee_id} on {today}")
            outcome.status = PenaltyStatus.ALREADY_PENALIZED
            return outcome

        outcome.status = PenaltyStatus.PENALTY_CREATED
        outcome.penalty_id = penalty.id
        outcome.deduction_recorded = self._record_deduction(employee_id, today, penalty)
        logger.info(
            f"Penalty created for employee {employee_id} on {today}: "
            f"{late_count} late days, grace {grace}, threshold {threshold}"
        )
        return outcome

    def _already_penalized(self, employee_id: int, day: date) -> bool:
        if self.db.query(Penalty.id).filter(
            Penalty.employee_id == employee_id,
            Penalty.late_arrival_date == day,
        ).first():
            return True
        return self.db.query(LeaveRequest.id).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.kind == LeaveKind.PENALTY_DEDUCTION.value,
            LeaveRequest.penalty_day == day,
        ).first() is not None

    def _record_penalty(
        self,
        employee_id: int,
        day: date,
        clock_in_at: datetime,
        threshold: str,
        grace: int,
        late_count: int,
    ) -> Penalty:
        penalty = Penalty(
            employee_id=employee_id,
            late_arrival_date=day,
            clock_in_at=clock_in_at,
            clock_in_time=clock_in_at.strftime("%H:%M"),
            threshold=threshold,
            grace_count=grace,
            late_arrival_count=late_count,
            penalty_amount=settings.penalty.deduction_days,
            reason=f"Late clock-in at {clock_in_at.strftime('%H:%M')} (threshold {threshold}); "
                   f"late {late_count} days this month, {grace} allowed",
        )
        self.db.add(penalty)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyPenalizedError(employee_id, day)
        self.db.refresh(penalty)
        return penalty

    def _record_deduction(self, employee_id: int, day: date, penalty: Penalty) -> bool:
        """
        Writes the approved 0.5-day penalty deduction and recomputes the
        balance. Failures are logged; a missed deduction never blocks the
        clock-in that triggered it.
        """
        try:
            category = self.ledger.categories.get_penalty_category()
            self.ledger.ensure_allotment(employee_id, category.id)
            amount = LeaveAmount.days(settings.penalty.deduction_days)
            deduction = LeaveRequest(
                employee_id=employee_id,
                category_id=category.id,
                start_date=day,
                end_date=day,
                reason=f"Penalty: {penalty.reason}",
                status=LeaveStatus.APPROVED.value,
                kind=LeaveKind.PENALTY_DEDUCTION.value,
                penalty_day=day,
                approver_id=None,
                decided_at=datetime.now(timezone.utc),
                **amount.column_values(),
            )
            self.db.add(deduction)
            self.db.flush()

            remaining = self.ledger.recompute(employee_id, category.id, commit=False)
            self.audit.log_action(
                action="penalty_deducted",
                entity_type="leave_request",
                entity_id=deduction.id,
                user_id=None,
                user_role=None,
                subject_employee_id=employee_id,
                details={
                    "category": category.name,
                    "amount": str(amount),
                    "remaining": str(remaining) if remaining is not None else None,
                    "penalty_id": penalty.id,
                    "day": day,
                },
                is_system=True,
            )
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Penalty deduction for employee {employee_id} on {day} already recorded")
        except (SQLAlchemyError, AppException):
            self.db.rollback()
            logger.error(f"Penalty deduction failed for employee {employee_id} on {day}", exc_info=True)
        return False

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------
    def penalty_for_day(self, employee_id: int, day: date) -> PenaltyDayReport:
        """
        Penalty, late arrivals and penalty-category balance for one day.
        A stored penalty that no longer exceeds the current grace count is
        deleted and reported as no penalty; its deduction stays in place.
        """
        employee = self.db.get(User, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        grace = self.settings_store.max_late_days_per_month()
        threshold = self.effective_threshold(employee)
        report = PenaltyDayReport(day=day, penalty=None, threshold=threshold, grace_count=grace)

        penalty = self.db.query(Penalty).filter(
            Penalty.employee_id == employee_id,
            Penalty.late_arrival_date == day,
        ).first()
        if penalty is not None:
            if penalty_applies(penalty.late_arrival_count, grace):
                report.penalty = penalty
            else:
                late_count = penalty.late_arrival_count
                self.db.delete(penalty)
                self.commit()
                logger.info(
                    f"Removed stale penalty for employee {employee_id} on {day}: "
                    f"{late_count} late days no longer exceed grace {grace}"
                )

        if threshold is not None:
            report.late_arrivals = [
                {"date": late_day.isoformat(), "clock_in_time": moment.strftime("%H:%M")}
                for late_day, moment in sorted(self.late_days(employee_id, threshold, day).items())
            ]

        category = self.ledger.categories.get_penalty_category(create_if_missing=False)
        if category is not None:
            report.deducted = self._penalty_deductions(employee_id, category)
            allotment = self.ledger.get_allotment(employee_id, category.id)
            if allotment is not None:
                report.total = self.ledger.granted(allotment)
                report.remaining = self.ledger.compute_remaining(allotment)
        return report

    def _penalty_deductions(self, employee_id: int, category) -> LeaveAmount:
        rows = self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.category_id == category.id,
            LeaveRequest.kind == LeaveKind.PENALTY_DEDUCTION.value,
            LeaveRequest.status == LeaveStatus.APPROVED.value,
        ).all()
        total = LeaveAmount.zero(category.unit)
        for row in rows:
            total = total + LeaveAmount.from_columns(category.unit, row.days, row.minutes)
        return total
