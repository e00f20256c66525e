from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message=message, status_code=404, error_code="NOT_FOUND")

class NotAllottedError(AppException):
    def __init__(self, category_name: str = "this leave type"):
        super().__init__(
            message=f"{category_name} has not been allotted to you",
            status_code=400,
            error_code="NOT_ALLOTTED"
        )

class InsufficientBalanceError(AppException):
    """Carries both amounts so the client can render the shortfall."""
    def __init__(self, remaining, requested):
        super().__init__(
            message=f"Insufficient leave balance. You have {remaining} remaining, but requested {requested}.",
            status_code=400,
            error_code="INSUFFICIENT_BALANCE",
            details={"remaining": str(remaining), "requested": str(requested)}
        )
        self.remaining = remaining
        self.requested = requested

class DuplicateAllotmentError(AppException):
    def __init__(self, category_name: str = "this leave type"):
        super().__init__(
            message=f"Already allotted {category_name}",
            status_code=409,
            error_code="DUPLICATE_ALLOTMENT"
        )

class InvalidCategoryError(AppException):
    def __init__(self, message: str = "Invalid leave type"):
        super().__init__(message=message, status_code=400, error_code="INVALID_CATEGORY")

class InvalidLeaveRequestError(AppException):
    def __init__(self, message: str):
        super().__init__(message=message, status_code=400, error_code="INVALID_LEAVE_REQUEST")

class InvalidTransitionError(AppException):
    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move a {current} leave request to {target}",
            status_code=409,
            error_code="INVALID_TRANSITION"
        )

class SelfApprovalForbiddenError(AppException):
    def __init__(self):
        super().__init__(
            message="HR cannot decide on their own leave request; it must go to an Admin.",
            status_code=403,
            error_code="SELF_APPROVAL_FORBIDDEN"
        )

class AlreadyPenalizedError(AppException):
    def __init__(self, employee_id: int, day):
        super().__init__(
            message=f"Penalty already exists for employee {employee_id} on {day}",
            status_code=409,
            error_code="ALREADY_PENALIZED"
        )

class InvalidAttendanceActionError(AppException):
    def __init__(self, message: str):
        super().__init__(message=message, status_code=400, error_code="INVALID_ATTENDANCE_ACTION")

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )

class InvalidSettingError(AppException):
    def __init__(self, message: str):
        super().__init__(message=message, status_code=400, error_code="INVALID_SETTING")
