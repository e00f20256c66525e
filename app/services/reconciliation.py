import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.leave_allotment import LeaveAllotment
from app.services.balance_ledger import BalanceLedger
from app.services.base import BaseService

logger = logging.getLogger(__name__)


class ReconciliationJob(BaseService):
    """
    Recomputes every allotment's remaining balance from the approved set.
    Safe to run repeatedly; on a consistent ledger nothing changes.
    """

    def __init__(self, db: Session, ledger: Optional[BalanceLedger] = None):
        super().__init__(db)
        self.ledger = ledger or BalanceLedger(db)

    def run(self) -> Dict[str, int]:
        allotments = self.db.query(LeaveAllotment).order_by(LeaveAllotment.id).all()
        changed = 0
        for allotment in allotments:
            before = (allotment.remaining_days, allotment.remaining_minutes)
            self.ledger.recompute(allotment.employee_id, allotment.category_id, commit=False)
            if (allotment.remaining_days, allotment.remaining_minutes) != before:
                changed += 1
                logger.info(
                    f"Reconciled allotment {allotment.id}: remaining {before} -> "
                    f"{(allotment.remaining_days, allotment.remaining_minutes)}"
                )
        self.commit()
        self.log_info(
            f"Reconciliation finished: {len(allotments)} allotments processed, {changed} changed",
            processed=len(allotments),
            changed=changed,
        )
        return {"processed": len(allotments), "changed": changed}
