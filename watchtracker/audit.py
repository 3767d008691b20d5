import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuditLog, User


def _normalize_email(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized or None


def add_audit_log(
    db: AsyncSession,
    *,
    action: str,
    message: str,
    actor_user: User | None = None,
    actor_user_id: uuid.UUID | None = None,
    actor_email: str | None = None,
    list_group_id: uuid.UUID | None = None,
) -> None:
    db.add(
        AuditLog(
            action=action,
            message=message,
            actor_user_id=actor_user.id if actor_user else actor_user_id,
            actor_email=_normalize_email(actor_user.email if actor_user else actor_email),
            list_group_id=list_group_id,
        )
    )
