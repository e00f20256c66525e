from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_user, require_approver
from app.schemas.leave import LeaveCategoryCreate, LeaveCategoryResponse, LeaveCategoryUpdate
from app.services.leave_categories import LeaveCategoryRegistry

router = APIRouter(
    prefix="/leave-types",
    tags=["leave types"]
)


@router.get("", response_model=List[LeaveCategoryResponse])
def list_leave_types(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return LeaveCategoryRegistry(db).list_active()


@router.post("", response_model=LeaveCategoryResponse, status_code=status.HTTP_201_CREATED)
def create_leave_type(
    payload: LeaveCategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    return LeaveCategoryRegistry(db).create(payload.name, unit=payload.unit, description=payload.description)


@router.patch("/{category_id}", response_model=LeaveCategoryResponse)
def update_leave_type(
    category_id: int,
    payload: LeaveCategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    return LeaveCategoryRegistry(db).update(category_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_leave_type(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver())
):
    LeaveCategoryRegistry(db).delete(category_id)
