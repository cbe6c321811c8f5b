"""
Session identity dependencies.

Login itself is handled elsewhere; this module only resolves the
`auth_token` cookie (which holds the user id) into a User and enforces roles.
A viewer's role is read once per request or WebSocket connection and stays
fixed for that connection.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, Cookie, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.database import get_db
from app.models.user import User, ViewerRole
from app.schemas.auth import SessionUserResponse

logger = logging.getLogger(__name__)
router = APIRouter()


async def _load_user(db: AsyncSession, auth_token: Optional[str]) -> Optional[User]:
    if not auth_token:
        return None
    try:
        user_id = UUID(auth_token)
    except ValueError:
        return None

    result = await db.execute(
        select(User).where(User.id == user_id)
    )
    return result.scalar_one_or_none()


# Authentication Dependencies
async def get_current_user(
    auth_token: str = Cookie(None),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get current authenticated user from httpOnly cookie.

    Raises:
        HTTPException 401: If cookie is missing, invalid, or user not found
    """
    if not auth_token:
        raise HTTPException(status_code=401, detail="Not authenticated.")

    user = await _load_user(db, auth_token)
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Invalid token. User not found."
        )

    return user


async def get_websocket_user(websocket: WebSocket, db: AsyncSession) -> Optional[User]:
    """Resolve the session cookie sent with a WebSocket handshake."""
    return await _load_user(db, websocket.cookies.get("auth_token"))


def require_roles(*roles: ViewerRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        @router.post("/")
        async def create(user: User = Depends(require_roles(ViewerRole.CLIENT))):
            ...
    """
    allowed = {role.value for role in roles}

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(
                f"User {current_user.email} (role={current_user.role}) "
                f"denied; endpoint requires one of {sorted(allowed)}"
            )
            raise HTTPException(
                status_code=403,
                detail="You do not have permission to access this resource."
            )
        return current_user

    return dependency


@router.get("/me", response_model=SessionUserResponse)
async def read_session_user(current_user: User = Depends(get_current_user)):
    """Return the user behind the current session cookie."""
    return current_user


@router.post("/logout")
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user)
):
    """Logout user by clearing the authentication cookie."""
    response.delete_cookie(
        key="auth_token",
        httponly=True,
        samesite="lax"
    )

    logger.info(f"User logged out: {current_user.email}")

    return {"message": "Successfully logged out"}
