"""
Current User Resolution

Authentication happens upstream of this service; the gateway forwards the
authenticated user's id in the X-User-Id header. Payment callbacks come from
the payment provider instead and carry a shared secret in X-Payment-Secret.
"""
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import secrets

from flybook.config import settings
from flybook.models.user import User
from flybook.utils.database import get_db


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency that provides the authenticated user
    Usage: current_user: User = Depends(get_current_user)
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


async def verify_payment_callback(
    x_payment_secret: Optional[str] = Header(None, alias="X-Payment-Secret"),
) -> None:
    """
    Dependency that admits only the payment provider
    Usage: dependencies=[Depends(verify_payment_callback)]
    """
    expected = settings.PAYMENT_CALLBACK_SECRET
    if not expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payment callbacks are disabled")

    if not x_payment_secret or not secrets.compare_digest(
        x_payment_secret.encode(), expected.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid payment callback secret")
