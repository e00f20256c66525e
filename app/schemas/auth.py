from pydantic import BaseModel, EmailStr, ConfigDict
from typing import Optional
from app.models.user import UserRole
from datetime import datetime

class UserBase(BaseModel):
    email: EmailStr
    role: UserRole
    full_name: Optional[str] = None

class UserResponse(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    emp_id: Optional[str] = None
    joining_year: Optional[int] = None
    clock_in_threshold: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str
    user: Optional[dict] = None

class TokenData(BaseModel):
    email: Optional[str] = None
    role: Optional[str] = None

class EmployeeUpdate(BaseModel):
    """Attendance and id-related fields HR may adjust on an employee."""
    full_name: Optional[str] = None
    joining_year: Optional[int] = None
    clock_in_threshold: Optional[str] = None
