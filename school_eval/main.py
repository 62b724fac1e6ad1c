from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_eval.api.audit import router as audit_router
from school_eval.api.compositions import router as compositions_router
from school_eval.api.curriculum import router as curriculum_router
from school_eval.api.directory import router as directory_router
from school_eval.api.evaluations import router as evaluations_router
from school_eval.api.health import router as health_router
from school_eval.api.me import router as me_router
from school_eval.api.questions import router as questions_router
from school_eval.api.root import router as root_router
from school_eval.core.config import settings
from school_eval.core.logging import configure_logging

configure_logging(settings)

app = FastAPI(title="School Evaluations")

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

app.include_router(root_router)
app.include_router(health_router)
app.include_router(me_router)
app.include_router(directory_router)
app.include_router(questions_router)
app.include_router(curriculum_router)
app.include_router(evaluations_router)
app.include_router(compositions_router)
app.include_router(audit_router)
