"""
Key/value settings consumed by the attendance penalty rules.
Values in the settings table win over the environment defaults in config.
"""
import logging
from typing import Optional

from app.core.config import settings
from app.core.exceptions import InvalidSettingError
from app.models.setting import Setting
from app.models.user import UNRESTRICTED_THRESHOLDS
from app.services.base import BaseService
from app.services.leave_amount import parse_hhmm

logger = logging.getLogger(__name__)

DEFAULT_CLOCK_IN_THRESHOLD = "defaultClockInThreshold"
MAX_LATE_DAYS_PER_MONTH = "maxLateDaysPerMonth"


def validate_threshold(value: str) -> str:
    value = (value or "").strip()
    if value in UNRESTRICTED_THRESHOLDS:
        return value
    try:
        parse_hhmm(value)
    except ValueError:
        raise InvalidSettingError(f"Clock-in threshold must be HH:MM or 'unrestricted', got '{value}'")
    return value


class SettingsStore(BaseService):

    def get(self, key: str) -> Optional[str]:
        row = self.db.query(Setting).filter(Setting.key == key).first()
        return row.value if row else None

    def set(self, key: str, value: Optional[str]) -> Setting:
        row = self.db.query(Setting).filter(Setting.key == key).first()
        if row is None:
            row = Setting(key=key, value=value)
            self.db.add(row)
        else:
            row.value = value
        self.commit()
        logger.info(f"Setting {key} updated to {value!r}")
        return row

    def default_clock_in_threshold(self) -> str:
        """Global threshold "HH:MM", an unrestricted sentinel, or "" when unset."""
        value = self.get(DEFAULT_CLOCK_IN_THRESHOLD)
        if value is None:
            value = settings.penalty.default_clock_in_threshold
        return (value or "").strip()

    def max_late_days_per_month(self) -> int:
        """Grace count: late days allowed per month before a penalty. Defaults to 0."""
        value = self.get(MAX_LATE_DAYS_PER_MONTH)
        if value is None or value == "":
            return settings.penalty.max_late_days_per_month
        try:
            return max(0, int(value))
        except ValueError:
            self.log_warning(f"Ignoring non-integer {MAX_LATE_DAYS_PER_MONTH} setting", setting_key=MAX_LATE_DAYS_PER_MONTH, setting_value=value)
            return settings.penalty.max_late_days_per_month

    def update_penalty_rules(
        self,
        default_clock_in_threshold: Optional[str] = None,
        max_late_days_per_month: Optional[int] = None,
    ) -> dict:
        if default_clock_in_threshold is not None:
            self.set(DEFAULT_CLOCK_IN_THRESHOLD, validate_threshold(default_clock_in_threshold))
        if max_late_days_per_month is not None:
            if max_late_days_per_month < 0:
                raise InvalidSettingError("Max late days per month cannot be negative")
            self.set(MAX_LATE_DAYS_PER_MONTH, str(max_late_days_per_month))
        return {
            DEFAULT_CLOCK_IN_THRESHOLD: self.default_clock_in_threshold(),
            MAX_LATE_DAYS_PER_MONTH: self.max_late_days_per_month(),
        }
