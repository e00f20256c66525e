from sqlalchemy import Column, Integer, String, Date, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base

class Penalty(Base):
    """
    Late clock-in penalty. Threshold, grace count and late count are a snapshot
    taken at creation; the grace count is re-checked on read to detect staleness.
    """
    __tablename__ = "penalties"
    __table_args__ = (
        UniqueConstraint("employee_id", "late_arrival_date", name="uq_penalty_employee_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    late_arrival_date = Column(Date, nullable=False, index=True)
    clock_in_at = Column(DateTime, nullable=False)
    clock_in_time = Column(String, nullable=False)  # "HH:MM"
    threshold = Column(String, nullable=False)
    grace_count = Column(Integer, default=0, nullable=False)
    late_arrival_count = Column(Integer, nullable=False)
    penalty_amount = Column(Float, default=0.5, nullable=False)
    reason = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
