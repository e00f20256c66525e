from typing import List, Optional

from app.models.audit_log import AuditLog
from app.services.base import BaseService

# Actions that make up the leave deduction history view
DEDUCTION_HISTORY_ACTIONS = ("leave_deducted", "leave_restored", "penalty_deducted")


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int],
        user_role: Optional[str],
        details: dict,
        subject_employee_id: Optional[int] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None,
        is_system: bool = False,
    ):
        """
        Create a centralized audit log entry.
        Strictly append-only. The entry joins the caller's transaction; it is
        flushed here and committed together with the action it describes.
        """
        def sanitize(obj):
            if hasattr(obj, "model_dump"):
                return obj.model_dump(mode="json")
            if isinstance(obj, dict):
                return {k: sanitize(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [sanitize(i) for i in obj]
            if hasattr(obj, "isoformat"):
                return obj.isoformat()
            return obj

        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            user_role=user_role,
            subject_employee_id=subject_employee_id,
            details=sanitize(details),
            before_state=sanitize(before_state),
            after_state=sanitize(after_state),
            is_system=is_system,
        )
        self.db.add(db_log)
        self.db.flush()
        return db_log

    def deduction_history(self, employee_id: int, limit: int = 200) -> List[AuditLog]:
        """Balance-affecting events for one employee, newest first."""
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.subject_employee_id == employee_id,
                AuditLog.action.in_(DEDUCTION_HISTORY_ACTIONS),
            )
            .order_by(AuditLog.id.desc())
            .limit(limit)
            .all()
        )
