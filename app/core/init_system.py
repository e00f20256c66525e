import logging
from app.core.config import settings
from app.database import SessionLocal
from app.models.user import User, UserRole
from app.services import auth as auth_service
from app.services.leave_categories import LeaveCategoryRegistry

logger = logging.getLogger(__name__)

def init_system_data():
    """
    Startup data checks:
    - the penalty leave category exists
    - a first Admin exists when BOOTSTRAP_ADMIN_EMAIL/PASSWORD are set and no user does
    """
    db = SessionLocal()
    try:
        category = LeaveCategoryRegistry(db).get_penalty_category()
        logger.info(f"Penalty leave category: '{category.name}' (id {category.id})")

        user_count = db.query(User).count()
        if user_count == 0 and settings.bootstrap_admin_email and settings.bootstrap_admin_password:
            admin_user = User(
                email=settings.bootstrap_admin_email,
                hashed_password=auth_service.get_password_hash(settings.bootstrap_admin_password),
                full_name="Administrator",
                role=UserRole.ADMIN,
                is_active=True
            )
            db.add(admin_user)
            db.commit()
            logger.info(f"✓ Created bootstrap Admin: {settings.bootstrap_admin_email}")
        else:
            logger.info(f"System initialization check: {user_count} user(s) found.")
    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        db.close()
