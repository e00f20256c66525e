from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class LeaveAllotment(Base):
    """
    Grant of a leave category to one employee.

    Exactly one of the days/minutes pairs is meaningful, depending on the
    category unit. The remaining_* columns are derived by BalanceLedger and
    must not be edited anywhere else.
    """
    __tablename__ = "leave_allotments"
    __table_args__ = (
        UniqueConstraint("employee_id", "category_id", name="uq_allotment_employee_category"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    category_id = Column(Integer, ForeignKey("leave_categories.id"), index=True, nullable=False)

    granted_days = Column(Float, default=0.0, nullable=False)
    granted_minutes = Column(Integer, default=0, nullable=False)
    remaining_days = Column(Float, default=0.0, nullable=False)
    remaining_minutes = Column(Integer, default=0, nullable=False)

    carry_forward = Column(Boolean, default=False, nullable=False)
    note = Column(String, nullable=True)

    allotted_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)  # auto-created for penalty deductions
    allotted_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    category = relationship("LeaveCategory")
    employee = relationship("User", foreign_keys=[employee_id])
