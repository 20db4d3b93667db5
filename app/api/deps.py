"""
Request dependencies: caller identity, admin checks, service wiring.

Authentication happens upstream; the auth layer forwards the verified
identity as X-User-Id / X-User-Role headers.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.fsm.states import UserRole
from app.services.email_service import EmailService, get_email_service
from app.services.payment_notifier import PaymentNotifier
from app.services.paytabs_service import PayTabsService, get_paytabs_service
from app.services.reconciliation_service import ReconciliationService


@dataclass
class CurrentUser:
    """Authenticated caller."""

    id: uuid.UUID
    role: str = UserRole.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CurrentUser:
    """Resolve the caller from the auth layer's headers, 401 otherwise."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )
    return CurrentUser(id=user_id, role=(x_user_role or UserRole.USER.value).upper())


async def get_admin_user(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Optional[CurrentUser]:
    """
    Allow admins by role or by the admin API key.
    Returns the admin user when identified by role, None for key access.
    """
    valid_key = settings.admin_api_key
    if x_admin_key and valid_key and x_admin_key == valid_key:
        return None

    user = await get_current_user(x_user_id, x_user_role)
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def get_reconciliation_service(
    db: AsyncSession = Depends(get_db),
    gateway: PayTabsService = Depends(get_paytabs_service),
    email: EmailService = Depends(get_email_service),
) -> ReconciliationService:
    return ReconciliationService(db, gateway, PaymentNotifier(db, email))
