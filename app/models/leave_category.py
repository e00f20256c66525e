from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveUnit(str, enum.Enum):
    DAYS = "days"
    HOURS_MINUTES = "hours_minutes"

class LeaveCategory(Base):
    __tablename__ = "leave_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)
    unit = Column(Enum(LeaveUnit), default=LeaveUnit.DAYS, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_short_leave(self) -> bool:
        return self.unit == LeaveUnit.HOURS_MINUTES
