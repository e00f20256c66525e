from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging
from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.core.limiter import DEFAULT_LIMIT, limiter
from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_user
from app.services import auth as auth_service
from app.services.audit import AuditService
from app.schemas.auth import LoginRequest, Token, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

@router.post("/login", response_model=Token)
@limiter.limit(DEFAULT_LIMIT)
def login(request: Request, login_data: LoginRequest, db: Session = Depends(get_db)):
    # Note: Using JSON LoginRequest instead of form-data for frontend compatibility
    user = db.query(User).filter(User.email == login_data.email).first()
    if not user or not auth_service.verify_password(login_data.password, user.hashed_password):
        AuditService(db).log_action(
            action="failed_login",
            entity_type="user",
            entity_id=None,
            user_id=None,
            user_role=None,
            details={"email": login_data.email, "reason": "invalid_credentials"}
        )
        db.commit()
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        raise AccessDeniedError("User is inactive")

    token_data = {
        "sub": user.email,
        "role": user.role.value,
        "user_id": user.id,
    }
    access_token = auth_service.create_access_token(data=token_data)

    AuditService(db).log_action(
        action="login",
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        user_role=user.role.value,
        details={"email": user.email}
    )
    db.commit()
    logger.info(f"User {user.id} logged in")

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "email": user.email,
            "role": user.role.value,
            "emp_id": user.emp_id
        }
    }

@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user
