"""
Leave category registry.

Categories carry an explicit unit. The legacy "short day" name markers are
only consulted when a category is created without a unit.
"""
import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.exceptions import InvalidCategoryError
from app.models.leave_allotment import LeaveAllotment
from app.models.leave_category import LeaveCategory, LeaveUnit
from app.services.base import BaseService

logger = logging.getLogger(__name__)

SHORT_LEAVE_MARKERS = ("shortday", "short-day", "short day")


def infer_unit_from_name(name: str) -> LeaveUnit:
    lowered = (name or "").lower()
    if any(marker in lowered for marker in SHORT_LEAVE_MARKERS):
        return LeaveUnit.HOURS_MINUTES
    return LeaveUnit.DAYS


def _name_key(name: str) -> str:
    return re.sub(r"\s+", "", (name or "").lower())


class LeaveCategoryRegistry(BaseService):

    def create(self, name: str, unit: Optional[LeaveUnit] = None, description: Optional[str] = None) -> LeaveCategory:
        name = (name or "").strip()
        if not name:
            raise InvalidCategoryError("Leave type name is required")
        if self.find_by_name(name):
            raise InvalidCategoryError("Leave type already exists")

        category = LeaveCategory(
            name=name,
            description=description,
            unit=unit or infer_unit_from_name(name),
            is_active=True,
        )
        self.db.add(category)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidCategoryError("Leave type already exists")
        self.db.refresh(category)
        logger.info(f"Created leave category '{category.name}' ({category.unit.value})")
        return category

    def get(self, category_id: int) -> LeaveCategory:
        category = self.db.get(LeaveCategory, category_id)
        if not category:
            raise InvalidCategoryError()
        return category

    def get_active(self, category_id: int) -> LeaveCategory:
        category = self.get(category_id)
        if not category.is_active:
            raise InvalidCategoryError(f"Leave type '{category.name}' is not active")
        return category

    def list_active(self) -> List[LeaveCategory]:
        return (
            self.db.query(LeaveCategory)
            .filter(LeaveCategory.is_active.is_(True))
            .order_by(LeaveCategory.name)
            .all()
        )

    def find_by_name(self, name: str) -> Optional[LeaveCategory]:
        """Case and whitespace insensitive match, so "casual leave" finds "Casual Leave"."""
        key = _name_key(name)
        # The category table is small; compare normalized names in Python
        for category in self.db.query(LeaveCategory).all():
            if _name_key(category.name) == key:
                return category
        return None

    def is_referenced(self, category_id: int) -> bool:
        return self.db.query(LeaveAllotment.id).filter(
            LeaveAllotment.category_id == category_id
        ).first() is not None

    def update(
        self,
        category_id: int,
        name: Optional[str] = None,
        unit: Optional[LeaveUnit] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> LeaveCategory:
        category = self.get(category_id)
        renaming = name is not None and name.strip() != category.name
        changing_unit = unit is not None and unit != category.unit
        if (renaming or changing_unit) and self.is_referenced(category_id):
            raise InvalidCategoryError(
                f"Leave type '{category.name}' is already allotted; its name and unit cannot change"
            )
        if renaming:
            existing = self.find_by_name(name)
            if existing and existing.id != category.id:
                raise InvalidCategoryError("Leave type already exists")
            category.name = name.strip()
        if changing_unit:
            category.unit = unit
        if description is not None:
            category.description = description
        if is_active is not None:
            category.is_active = is_active
        self.commit()
        self.db.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self.is_referenced(category_id):
            raise InvalidCategoryError(f"Leave type '{category.name}' is allotted and cannot be deleted")
        self.db.delete(category)
        self.commit()
        logger.info(f"Deleted leave category {category_id}")

    def get_penalty_category(self, create_if_missing: bool = True) -> Optional[LeaveCategory]:
        """Category that late clock-in penalties are deducted from (Casual Leave by default)."""
        name = settings.penalty.penalty_category_name
        category = self.find_by_name(name)
        if category or not create_if_missing:
            return category

        category = LeaveCategory(
            name=name,
            description=f"{name} for employees",
            unit=LeaveUnit.DAYS,
            is_active=True,
        )
        self.db.add(category)
        try:
            self.db.commit()
        except IntegrityError:
            # Created concurrently by another request
            self.db.rollback()
            return self.find_by_name(name)
        self.db.refresh(category)
        logger.info(f"Created penalty leave category '{name}'")
        return category
