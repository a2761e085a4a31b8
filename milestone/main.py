from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import uvicorn
import logging

from .config import get_settings
from .database import engine, async_session
from .models import Base
from .api.v1.router import api_router
from .core.exceptions import AppError
from .services.ai_advisor import AIAdvisor
from .services.notification_service import NotificationService
from .services.scheduler import JobScheduler
from .services.task_queue import OutboundTaskQueue, TaskContext
from .utils.logging import setup_logging
from .utils.time import utc_now

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging(settings.log_level, settings.log_file)
    logger.info("Starting Milestone application")

    # Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    advisor = AIAdvisor()
    notifier = NotificationService.from_settings(async_session)
    task_queue = OutboundTaskQueue(TaskContext(async_session, advisor, notifier))
    await task_queue.start()

    app.state.advisor = advisor
    app.state.notifier = notifier
    app.state.task_queue = task_queue

    scheduler = None
    if settings.enable_scheduled_tasks:
        scheduler = JobScheduler(async_session, advisor, notifier, clock=utc_now)
        await scheduler.start()
    app.state.scheduler = scheduler

    yield

    # Shutdown
    logger.info("Shutting down Milestone application")
    if scheduler is not None:
        await scheduler.stop()
    await task_queue.stop()
    if notifier.transport is not None:
        await notifier.transport.disconnect()


# Create FastAPI application
settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Daily standups, blockers and attendance for teams",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


def error_response(status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return error_response(400, {
        "code": "VALIDATION_ERROR",
        "message": "Validation failed",
        "details": details,
    })


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "SERVER_ERROR" if exc.status_code >= 500 else "BAD_REQUEST")
    return error_response(exc.status_code, {"code": code, "message": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "Internal server error" if settings.is_production else str(exc)
    return error_response(500, {"code": "SERVER_ERROR", "message": message})


# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    task_queue = getattr(app.state, "task_queue", None)
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": settings.app_version,
            "timestamp": utc_now().isoformat(),
            "task_queue": task_queue.stats if task_queue else None,
            "scheduler_running": bool(scheduler and scheduler.running),
        },
    }


if __name__ == "__main__":
    uvicorn.run(
        "milestone.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
