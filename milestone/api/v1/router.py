from fastapi import APIRouter
from .auth import router as auth_router
from .standups import router as standups_router
from .blockers import router as blockers_router
from .attendance import router as attendance_router
from .ai import router as ai_router
from .reports import router as reports_router
from .analytics import router as analytics_router
from .uploads import router as uploads_router
from .users import router as users_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(standups_router, prefix="/standups", tags=["standups"])
api_router.include_router(blockers_router, prefix="/blockers", tags=["blockers"])
api_router.include_router(attendance_router, prefix="/attendance", tags=["attendance"])
api_router.include_router(ai_router, prefix="/ai", tags=["ai"])
api_router.include_router(reports_router, prefix="/reports", tags=["reports"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
api_router.include_router(uploads_router, prefix="/uploads", tags=["uploads"])
api_router.include_router(users_router, prefix="/users", tags=["users"])
