"""
Gradebook API entry point.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gradebook.core.config import settings
from gradebook.core.errors import ConflictError, GradebookError
from gradebook.api.assignments import router as assignments_router
from gradebook.api.attempts import router as attempts_router
from gradebook.api.auth import router as auth_router
from gradebook.api.admin_runs import router as runs_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url=None if settings.is_production() else "/docs",
    redoc_url=None if settings.is_production() else "/redoc",
)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
if not settings.is_production():
    app.include_router(auth_router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
app.include_router(assignments_router, prefix=f"{settings.API_V1_PREFIX}/assignments", tags=["assignments"])
app.include_router(attempts_router, prefix=f"{settings.API_V1_PREFIX}/attempts", tags=["attempts"])
app.include_router(runs_router, prefix=f"{settings.API_V1_PREFIX}/admin", tags=["regrade-runs"])

@app.exception_handler(GradebookError)
async def gradebook_exception_handler(request: Request, exc: GradebookError):
    """Translate grading errors into JSON with the full error list."""
    if isinstance(exc, ConflictError):
        logger.warning("Conflict on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "errors": exc.errors, "error": exc.to_dict()})

@app.get("/health")
def health(): return {"status": "ok", "version": settings.APP_VERSION}
