"""FastAPI GameRun admin API."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

import config
from gamerun.models import User
from gamerun.models.base import init_db
from gamerun.services import storage
from gamerun.services.errors import WorkflowError
from web.api.auth_routes import router as auth_router
from web.api.billing_routes import router as billing_router
from web.api.profile_routes import router as profile_router
from web.api.routes import router as api_router
from web.api.settings_routes import router as settings_router
from web.api.team_routes import router as team_router
from web.auth import require_admin_user

logger = logging.getLogger("gamerun.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="GameRun Admin API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)
app.include_router(team_router)
app.include_router(billing_router)
app.include_router(profile_router)
app.include_router(auth_router)
app.include_router(settings_router)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    """Service errors carry their HTTP status; the message is shown as-is."""
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=400, content={"detail": str(exc.orig) if getattr(exc, "orig", None) else str(exc)})


@app.post("/api/upload")
async def upload_image(file: UploadFile = File(...), admin: User = Depends(require_admin_user)):
    """Store an image (image/* only, up to MAX_IMAGE_BYTES) and return its public URL."""
    data = await file.read()
    stored = storage.save_image(file.filename or "", file.content_type, data)
    return {"url": stored.url, "path": stored.path}


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Uploaded files (images, quest PDFs)
Path(config.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount(config.UPLOAD_URL_PREFIX, StaticFiles(directory=str(config.UPLOAD_DIR)), name="uploads")
