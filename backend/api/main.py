"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging
from email.utils import formatdate
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import editor, fields, projects, submissions
from db import init_db
from services.image_formats import register_heif_opener
from settings import settings

logger = logging.getLogger(__name__)

# Register HEIF/HEIC opener at startup (for phone photos)
heif_available = register_heif_opener()


# Create app
app = FastAPI(
    title="Card Studio API",
    description="API for designing card templates and generating personalized cards",
    version="0.1.0",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount static files for templates, photos and generated cards
media_path = Path(settings.MEDIA_ROOT)
media_path.mkdir(parents=True, exist_ok=True)
app.mount("/media", StaticFiles(directory=str(media_path)), name="media")

# Include routers
app.include_router(projects.router, prefix="/projects", tags=["projects"])
app.include_router(fields.router, prefix="/projects/{project_id}/fields", tags=["fields"])
app.include_router(submissions.router, prefix="/projects", tags=["submissions"])
app.include_router(editor.router, tags=["editor"])


@app.middleware("http")
async def media_cache_middleware(request: Request, call_next):
    """Long-lived caching for stored media.

    Every stored file gets a fresh uuid name and is never rewritten, so
    responses under /media can be cached as immutable.
    """
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/media/") and response.status_code == 200:
        file_path = media_path.joinpath(path[len("/media/"):])
        if file_path.is_file():
            stat = file_path.stat()
            response.headers["Cache-Control"] = "public, max-age=604800, immutable"
            response.headers.setdefault("Last-Modified", formatdate(stat.st_mtime, usegmt=True))
            response.headers.setdefault("ETag", f'W/"{stat.st_mtime:.0f}-{stat.st_size}"')
    return response


@app.on_event("startup")
def startup_event():
    """Initialize database tables on startup."""
    init_db()
    logger.info("Card Studio API started (heif=%s)", heif_available)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Card Studio API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
