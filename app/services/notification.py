import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.notification import Notification
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Fire-and-forget delivery to users: in-app push rows and email.
    Callers wrap these in try/except; a failed send never undoes the
    transition that triggered it.
    """

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        type: str = "info",
        tag: Optional[str] = None,
        link: Optional[str] = None
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            tag=tag,
            link=link
        )
        db.add(notification)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(notification)
        return notification

    @staticmethod
    def notify_users(
        db: Session,
        user_ids: Iterable[int],
        title: str,
        message: str,
        type: str = "info",
        tag: Optional[str] = None,
        link: Optional[str] = None
    ) -> List[Notification]:
        return [
            NotificationService.create_notification(db, user_id, title, message, type, tag, link)
            for user_id in user_ids
        ]

    @staticmethod
    def send_email(recipients: Iterable[str], subject: str, body: str) -> bool:
        """Sends a plain-text email. Returns False when no SMTP host is configured."""
        recipients = [r for r in recipients if r]
        if not recipients:
            return False
        if not settings.smtp_host:
            logger.info(f"SMTP not configured; skipped email '{subject}' to {len(recipients)} recipient(s)")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = settings.smtp_sender
        message["To"] = ", ".join(recipients)
        message.set_content(body)
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            smtp.send_message(message)
        logger.info(f"Sent email '{subject}' to {len(recipients)} recipient(s)")
        return True

    @staticmethod
    def approvers(db: Session) -> List[User]:
        """Active Admin and HR users, the audience for new leave requests."""
        return db.query(User).filter(
            User.role.in_([UserRole.ADMIN, UserRole.HR]),
            User.is_active.is_(True),
        ).all()
