"""
EduMatch API - Main Application

FastAPI backend with:
- PostgreSQL for structured data
- MongoDB for cached document validation results
- SQS queues + SMTP for notifications
- JWT authentication

Run: uvicorn edumatch.main:app --reload
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from edumatch.api.routes import api_router
from edumatch.core.config import get_settings
from edumatch.core.log import get_logger
from edumatch.db.mongodb import init_mongo_indexes, test_mongo_connection
from edumatch.db.postgres import test_postgres_connection

settings = get_settings()
log = get_logger(__name__)

app = FastAPI(
    title="EduMatch API",
    description="""
    Education marketplace backend.

    ## Features
    - **Explore**: Programmes, scholarships and research positions with filters, sorting and pagination
    - **Institutions**: Public profiles and post management
    - **Notifications**: Queued in-app notifications and transactional emails
    - **Documents**: AI validation of uploaded application documents
    - **Support**: Support requests routed to the support team
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render errors as {"success": false, "error": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Validation error", "details": jsonable_encoder(exc.errors())},
    )


@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
    except PyMongoError as e:
        log.warning("MongoDB index initialization failed: %s", e)


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "postgres": "connected" if test_postgres_connection() else "disconnected",
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
