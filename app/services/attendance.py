import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidAttendanceActionError, NotFoundError
from app.models.attendance import AttendanceRecord
from app.models.user import User
from app.services.attendance_penalty import AttendancePenaltyAssessor, PenaltyOutcome, to_local
from app.services.base import BaseService

logger = logging.getLogger(__name__)

# Forgotten clock-outs are closed at this wall-clock time of the clock-in day
AUTO_CLOCK_OUT_HOUR = 23
AUTO_CLOCK_OUT_MINUTE = 11


def local_now() -> datetime:
    return to_local(datetime.now(timezone.utc))


class AttendanceService(BaseService):

    def __init__(self, db: Session, assessor: Optional[AttendancePenaltyAssessor] = None):
        super().__init__(db)
        self.assessor = assessor or AttendancePenaltyAssessor(db)

    def clock_in(
        self, employee_id: int, now: Optional[datetime] = None
    ) -> Tuple[AttendanceRecord, Optional[PenaltyOutcome]]:
        """
        Records a clock-in (several per day are allowed) and runs the penalty
        assessment. Assessment errors are logged; the clock-in stands.
        """
        if self.db.get(User, employee_id) is None:
            raise NotFoundError("Employee", employee_id)
        moment = to_local(now) if now else local_now()

        record = AttendanceRecord(employee_id=employee_id, work_date=moment.date(), clock_in=moment)
        self.db.add(record)
        self.commit()
        self.db.refresh(record)
        logger.info(f"Employee {employee_id} clocked in at {moment.isoformat()}")

        outcome = None
        try:
            outcome = self.assessor.assess(employee_id, moment)
        except Exception:
            self.db.rollback()
            logger.error(f"Penalty assessment failed for employee {employee_id}", exc_info=True)
        return record, outcome

    def clock_out(self, employee_id: int, now: Optional[datetime] = None, auto: bool = False) -> AttendanceRecord:
        moment = to_local(now) if now else local_now()
        record = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date == moment.date(),
            AttendanceRecord.clock_out.is_(None),
        ).order_by(AttendanceRecord.clock_in.desc()).first()
        if record is None:
            raise InvalidAttendanceActionError("No active clock in found. Please clock in first.")

        if auto:
            cutoff = record.clock_in.replace(
                hour=AUTO_CLOCK_OUT_HOUR, minute=AUTO_CLOCK_OUT_MINUTE, second=0, microsecond=0
            )
            # A clock-in after the cutoff closes at the clock-in itself
            moment = max(record.clock_in, cutoff)
        record.clock_out = moment
        record.hours_worked = (moment - record.clock_in).total_seconds() / 3600
        self.commit()
        self.db.refresh(record)
        logger.info(f"Employee {employee_id} clocked out at {moment.isoformat()} (auto={auto})")
        return record

    def records_for(self, employee_id: int, limit: int = 31) -> List[AttendanceRecord]:
        return self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id
        ).order_by(AttendanceRecord.clock_in.desc()).limit(limit).all()
