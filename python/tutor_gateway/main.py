"""
FastAPI Gateway for the Sensei Japanese tutor
Routes chat messages to completion providers with template fallback
"""

import os
import logging
from datetime import datetime

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

from . import dependencies
from .models import ErrorDetail, HealthResponse
from .services.completion_router import CompletionRouter, RouterSettings
from .services.provider_catalog import load_catalog
from .services.student_context_service import StudentContextService
from .services.tutor_chat_service import TutorChatService
from .routes import ai as ai_router
from .routes import student_records as records_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

try:
    http_requests_total = Counter(
        'http_requests_total',
        'Total HTTP requests by method, path template, and status',
        ['method', 'route', 'status']
    )
except ValueError:
    # metrics already registered (uvicorn --reload)
    pass

app = FastAPI(
    title="Sensei Tutor Gateway",
    description="Intent-routed completion gateway for the Japanese tutor chat",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS for the Next.js frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def http_request_counter_middleware(request, call_next):
    """Count all HTTP requests with method, route template, and status labels"""
    response = await call_next(request)

    route = request.url.path
    if request.scope.get("route"):
        route = request.scope["route"].path

    http_requests_total.labels(
        method=request.method,
        route=route,
        status=str(response.status_code)
    ).inc()

    return response

@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info("Initializing Sensei Tutor Gateway...")

    settings = RouterSettings.from_env()
    if not settings.api_key:
        logger.warning("HUGGINGFACE_API_KEY not set, every reply will come from templates")

    context_service = None
    try:
        redis_client = await dependencies.get_redis()
        context_service = StudentContextService(redis_client)
        logger.info("Redis connected successfully")
    except HTTPException as e:
        logger.warning(f"Redis connection failed, continuing with default student context: {e.detail}")

    router = CompletionRouter(catalog=load_catalog(settings.catalog_path), settings=settings)
    dependencies.tutor_chat_service = TutorChatService(router=router, context_service=context_service)

    logger.info("All services initialized successfully")

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown - prevents connection leaks"""
    logger.info("Shutting down Sensei Tutor Gateway...")

    try:
        if dependencies.tutor_chat_service:
            await dependencies.tutor_chat_service.close()
            logger.info("Completion router client closed")
    except Exception as e:
        logger.error(f"Error closing tutor chat service: {e}")

    try:
        if dependencies.redis_client:
            await dependencies.redis_client.aclose()
            logger.info("Redis connections closed")
    except Exception as e:
        logger.error(f"Error closing Redis: {e}")

    logger.info("Shutdown complete")

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    services = {}
    overall_status = "healthy"

    svc = dependencies.tutor_chat_service
    if svc is None:
        return HealthResponse(
            status="unhealthy",
            services={"providers": False, "redis": False},
            timestamp=datetime.utcnow().isoformat()
        )

    health = await svc.health_check()
    services["providers"] = bool(health["router"]["providers_enabled"])
    services["redis"] = bool(health["redis"])
    # templates still answer without providers or Redis
    if not all(services.values()):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        services=services,
        timestamp=datetime.utcnow().isoformat()
    )

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(ai_router.router)
app.include_router(records_router.router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Handle request validation errors with structured 422 responses"""
    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(f"Request validation failed: {error_details}")

    error = ErrorDetail(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={
            "validation_errors": error_details,
            "error_count": len(error_details)
        }
    )
    return JSONResponse(status_code=422, content={"success": False, "error": error.model_dump()})

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    error = ErrorDetail(code="HTTP_ERROR", message=str(exc.detail), details={"status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": error.model_dump()})

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler for unhandled errors"""
    logger.exception(f"Unhandled exception: {exc}")

    error = ErrorDetail(
        code="INTERNAL_SERVER_ERROR",
        message="An unexpected error occurred",
        details={"error": str(exc)}
    )
    return JSONResponse(status_code=500, content={"success": False, "error": error.model_dump()})

if __name__ == "__main__":
    uvicorn.run(
        "tutor_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
