import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import IntegrityError

load_dotenv()

from .core.config import Config
from .core.logging_config import setup_logging
from .db.database import init_db
from .exceptions import (
    APIException,
    api_exception_handler,
    create_exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from .middleware.auth_middleware import CustomAuthMiddleWare
from .routers.admin_flash_sales import router as admin_flash_sales_router
from .routers.flash_sales import router as flash_sales_router


setup_logging(Config.LOG_LEVEL)
logger = logging.getLogger(__name__)

api_version = Config.API_VERSION
swagger_docs_url = f"/api/{api_version}/docs"
redoc_docs_url = f"/api/{api_version}/redoc"
openapi_url = f"/api/{api_version}/openapi.json"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if Config.AUTO_CREATE_TABLES:
        await init_db()
        logger.info("Database tables ensured")
    yield


app = FastAPI(
    docs_url=swagger_docs_url,
    redoc_url=redoc_docs_url,
    openapi_url=openapi_url,
    title="Flash Sale API",
    description="Flash sale engine of the marketplace: time-boxed discounts, per-item stock allocation and view/purchase analytics.",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware first
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'],
    allow_headers=["*"],
)

# Add custom auth middleware after CORS (order matters!)
app.add_middleware(CustomAuthMiddleWare)

# Register endpoints
app.include_router(flash_sales_router, prefix=f'/api/{api_version}', tags=["Flash Sales"])
app.include_router(admin_flash_sales_router, prefix=f'/api/{api_version}/admin', tags=["Admin Flash Sales"])


# Add a root endpoint for health check
@app.get("/")
async def root():
    return {
        "message": "Flash Sale API",
        "version": "1.0.0",
        "docs": swagger_docs_url,
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Register custom exceptions
app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
# unique constraint races that slipped past the service checks
app.add_exception_handler(IntegrityError, create_exception_handler(400, "Resource already exists"))
app.add_exception_handler(Exception, unhandled_exception_handler)
