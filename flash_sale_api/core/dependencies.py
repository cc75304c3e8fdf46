from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import AsyncGenerator, Optional

from ..db.database import AsyncSessionLocal
from ..exceptions import AuthException
from .security import CurrentUser
from .token_bearer import AccessTokenBearer


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Asynchronous dependency that provides a database session for FastAPI routes.

    Yields:
        AsyncSession: An instance of the asynchronous database session.

    Usage:
        Use as a dependency in FastAPI endpoints to access the database session.
        The session is automatically closed after the request is processed.
    """

    async with AsyncSessionLocal() as db:
        yield db


async def get_current_user(user: CurrentUser = Depends(AccessTokenBearer())) -> CurrentUser:
    """
    Retrieve the user of the current session from the access token.

    Raises:
        AuthException: If the token is missing, invalid or expired.
    """
    return user


async def get_optional_user(
    user: Optional[CurrentUser] = Depends(AccessTokenBearer(required=False)),
) -> Optional[CurrentUser]:
    """The session user if a valid token was sent, otherwise None."""
    return user


def get_current_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    # a wrong role is reported as 401, same as a missing session
    if not user.is_admin:
        raise AuthException("Only admins can access this resource!")

    return user
