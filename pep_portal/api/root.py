from fastapi import APIRouter

from pep_portal.core.config import settings

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "PEP Portal Backend",
        "status": "ok",
        "current_period": settings.DEFAULT_PERIOD_YEAR,
        "docs": "/docs",
        "health": "/health",
        "documents": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/documents",
    }
