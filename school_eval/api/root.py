from fastapi import APIRouter

from school_eval.core.config import settings

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "School Evaluations Backend",
        "env": settings.APP_ENV,
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
    }
