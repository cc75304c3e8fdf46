from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..core.config import Config


api_version = Config.API_VERSION


class CustomAuthMiddleWare(BaseHTTPMiddleware):
    """
    Custom authentication middleware for FastAPI applications.
    This middleware intercepts incoming HTTP requests and rejects requests to
    the admin namespace that carry no "Authorization" header with a 401 before
    any route code runs. Public storefront routes, documentation and health
    endpoints pass through untouched; token verification and the role check
    happen in the route dependencies.

    Methods
    -------
    dispatch(request: Request, call_next):
        Processes each incoming request, allowing or denying access based on the
        request path and authentication headers.
    """

    protected_prefixes = (
        f"/api/{api_version}/admin",
    )

    async def dispatch(self, request: Request, call_next):
        # Always allow OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path.rstrip("/")
        protected = any(path == prefix or path.startswith(prefix + "/") for prefix in self.protected_prefixes)

        if protected and "Authorization" not in request.headers:
            return JSONResponse(
                content={
                    "error": "Not authenticated! Please login again to proceed.",
                },
                status_code=401
            )

        return await call_next(request)
