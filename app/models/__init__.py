# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, leave_category, leave_allotment, leave_request,
    penalty, attendance, setting, notification, audit_log, counter
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .leave_category import LeaveCategory, LeaveUnit
from .leave_allotment import LeaveAllotment
from .leave_request import LeaveRequest, LeaveStatus, LeaveKind, HalfDay
from .penalty import Penalty
from .attendance import AttendanceRecord
from .setting import Setting
from .notification import Notification
from .audit_log import AuditLog
from .counter import Counter

__all__ = [
    "User",
    "UserRole",
    "LeaveCategory",
    "LeaveUnit",
    "LeaveAllotment",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveKind",
    "HalfDay",
    "Penalty",
    "AttendanceRecord",
    "Setting",
    "Notification",
    "AuditLog",
    "Counter",
]
