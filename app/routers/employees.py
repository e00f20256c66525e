import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import require_approver
from app.schemas.auth import EmployeeUpdate, UserResponse
from app.services.employee_ids import employee_id_assigner
from app.services.settings_store import validate_threshold

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/employees",
    tags=["employees"]
)


@router.get("", response_model=List[UserResponse])
def list_employees(db: Session = Depends(get_db), current_user: User = Depends(require_approver())):
    # Throttled; most calls return the cached result of the last pass
    employee_id_assigner.ensure(db)
    return db.query(User).order_by(User.id).all()


@router.patch("/{employee_id}", response_model=UserResponse)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    employee = db.get(User, employee_id)
    if employee is None:
        raise NotFoundError("Employee", employee_id)

    changes = payload.model_dump(exclude_unset=True)
    if "full_name" in changes:
        employee.full_name = changes["full_name"]
    if "clock_in_threshold" in changes:
        value = changes["clock_in_threshold"]
        employee.clock_in_threshold = validate_threshold(value) if value else None
    if "joining_year" in changes and changes["joining_year"] != employee.joining_year:
        employee.joining_year = changes["joining_year"]
        employee.joining_year_updated_at = datetime.now(timezone.utc) if employee.joining_year else None

    db.commit()
    db.refresh(employee)
    logger.info(f"Employee {employee_id} updated by user {current_user.id}: {sorted(changes)}")

    if "joining_year" in changes:
        employee_id_assigner.ensure(db, force=True)
        db.refresh(employee)
    return employee
