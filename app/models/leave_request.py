from sqlalchemy import Column, Integer, String, Date, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class LeaveKind(str, enum.Enum):
    REQUEST = "request"
    PENALTY_DEDUCTION = "penalty_deduction"

class HalfDay(str, enum.Enum):
    FIRST_HALF = "first-half"
    SECOND_HALF = "second-half"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        # penalty_day is NULL for ordinary requests, so only penalty deductions collide
        UniqueConstraint("employee_id", "category_id", "penalty_day", name="uq_penalty_deduction_per_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    category_id = Column(Integer, ForeignKey("leave_categories.id"), index=True, nullable=False)

    # Amount: days for DAYS categories, normalized total minutes for HOURS_MINUTES categories
    days = Column(Float, default=0.0, nullable=False)
    minutes = Column(Integer, default=0, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String, nullable=False)
    half_day = Column(String, nullable=True)  # HalfDay value
    short_leave_from = Column(String, nullable=True)  # "HH:MM"
    short_leave_to = Column(String, nullable=True)

    status = Column(String, default=LeaveStatus.PENDING.value, index=True)  # Using String to store enum value for simplicity with SQLite
    kind = Column(String, default=LeaveKind.REQUEST.value, nullable=False, index=True)
    penalty_day = Column(Date, nullable=True)

    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL + penalty kind => system actor
    decided_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    category = relationship("LeaveCategory")
    employee = relationship("User", foreign_keys=[employee_id])

    @property
    def is_penalty_deduction(self) -> bool:
        return self.kind == LeaveKind.PENALTY_DEDUCTION.value
