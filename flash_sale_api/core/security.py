from datetime import timedelta
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError
from typing import Optional

from ..enums import UserRole
from ..exceptions import AuthException
from ..utils.time import utcnow
from .config import Config


class CurrentUser(BaseModel):
    """
    Session identity carried by the access token.

    Tokens are issued by the auth service; this API only verifies the
    signature and reads the claims.
    """

    id: str
    email: Optional[str] = None
    role: UserRole
    session_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(
    user_id: str,
    role: UserRole,
    session_id: Optional[str] = None,
    email: Optional[str] = None,
    expiry: Optional[int] = None,
) -> str:
    """ Sign an access token with the shared secret. """

    expires_at = utcnow() + timedelta(seconds=expiry or Config.ACCESS_TOKEN_EXPIRY)
    payload = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "sid": session_id,
        "email": email,
        "type": "access",
        "exp": expires_at,
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    """ Verify an access token and return the identity it carries. """

    try:
        payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except JWTError:
        raise AuthException("Invalid or expired token provided!")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthException("Invalid or expired token provided!")

    try:
        return CurrentUser(
            id=payload["sub"],
            email=payload.get("email"),
            role=payload.get("role"),
            session_id=payload.get("sid"),
        )
    except ValidationError:
        raise AuthException("Invalid or expired token provided!")
