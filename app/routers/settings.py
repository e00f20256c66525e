import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_user, require_approver
from app.schemas.settings import PenaltyRulesResponse, PenaltyRulesUpdate
from app.services.audit import AuditService
from app.services.reconciliation import ReconciliationJob
from app.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/settings",
    tags=["settings"]
)


@router.get("/penalty-rules", response_model=PenaltyRulesResponse)
def get_penalty_rules(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    store = SettingsStore(db)
    return PenaltyRulesResponse(
        default_clock_in_threshold=store.default_clock_in_threshold(),
        max_late_days_per_month=store.max_late_days_per_month(),
    )


@router.put("/penalty-rules", response_model=PenaltyRulesResponse)
def update_penalty_rules(
    payload: PenaltyRulesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    store = SettingsStore(db)
    before = {
        "default_clock_in_threshold": store.default_clock_in_threshold(),
        "max_late_days_per_month": store.max_late_days_per_month(),
    }
    store.update_penalty_rules(payload.default_clock_in_threshold, payload.max_late_days_per_month)
    after = {
        "default_clock_in_threshold": store.default_clock_in_threshold(),
        "max_late_days_per_month": store.max_late_days_per_month(),
    }
    AuditService(db).log_action(
        action="settings_updated",
        entity_type="setting",
        entity_id=None,
        user_id=current_user.id,
        user_role=current_user.role.value,
        details={"keys": sorted(payload.model_dump(exclude_unset=True))},
        before_state=before,
        after_state=after,
    )
    db.commit()

    # Balances are re-derived after every settings change
    result = ReconciliationJob(db).run()
    logger.info(f"Penalty rules updated by user {current_user.id}; {result['changed']} balances reconciled")
    return PenaltyRulesResponse(**after, reconciled=result["changed"])
