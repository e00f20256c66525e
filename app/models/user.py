"""
User Model with role-based access.
Employees, HR staff and administrators share one table.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base

# Employee-level override meaning "no clock-in restriction"
UNRESTRICTED_THRESHOLDS = ("unrestricted", "N/R")


class UserRole(str, enum.Enum):
    """
    User roles with hierarchical permissions.

    - ADMIN: Full access, final approver (including HR's own requests)
    - HR: Allots and decides leave, cannot decide own requests
    - EMPLOYEE: Self-service access
    """
    ADMIN = "ADMIN"
    HR = "HR"
    EMPLOYEE = "EMPLOYEE"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)  # Added for display purposes

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # "HH:MM" override of the global clock-in threshold, or an UNRESTRICTED_THRESHOLDS value
    clock_in_threshold = Column(String, nullable=True)

    # Display id housekeeping (see services/employee_ids.py)
    joining_year = Column(Integer, nullable=True)
    joining_year_updated_at = Column(DateTime(timezone=True), nullable=True)
    emp_id = Column(String, unique=True, index=True, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def is_hr(self) -> bool:
        return self.role == UserRole.HR

    @property
    def can_approve(self) -> bool:
        """Check if user can decide leave requests and manage allotments."""
        return self.role in [UserRole.ADMIN, UserRole.HR]

    @property
    def is_unrestricted(self) -> bool:
        return bool(self.clock_in_threshold) and self.clock_in_threshold.strip() in UNRESTRICTED_THRESHOLDS
