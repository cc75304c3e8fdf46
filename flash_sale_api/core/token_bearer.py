from fastapi import Request
from fastapi.security import HTTPBearer
from typing import Optional

from ..exceptions import AuthException
from .security import CurrentUser, decode_access_token


class AccessTokenBearer(HTTPBearer):
    """
    Reads the bearer token from the Authorization header and decodes it.

    With `required=False` a missing or invalid token resolves to None, which is
    how endpoints with an optional session treat anonymous callers.
    """

    def __init__(self, required: bool = True):
        super().__init__(auto_error=False)
        self.required = required


    async def __call__(self, request: Request) -> Optional[CurrentUser]:
        credentials = await super().__call__(request)

        if credentials is None:
            if self.required:
                raise AuthException("Authentication required!")
            return None

        try:
            return decode_access_token(credentials.credentials)
        except AuthException:
            if self.required:
                raise
            return None
