from sqlalchemy import Column, Integer, Date, DateTime, Float, ForeignKey
from app.database import Base

class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    work_date = Column(Date, nullable=False, index=True)
    # Naive wall-clock timestamps in settings.local_timezone
    clock_in = Column(DateTime, nullable=False, index=True)
    clock_out = Column(DateTime, nullable=True)
    hours_worked = Column(Float, nullable=True)
