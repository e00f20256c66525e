from pydantic import BaseModel, Field
from typing import Optional

class PenaltyRulesUpdate(BaseModel):
    default_clock_in_threshold: Optional[str] = Field(None, description='"HH:MM" or "unrestricted"')
    max_late_days_per_month: Optional[int] = Field(None, ge=0)

class PenaltyRulesResponse(BaseModel):
    default_clock_in_threshold: str
    max_late_days_per_month: int
    reconciled: Optional[int] = None
