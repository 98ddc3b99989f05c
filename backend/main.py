"""FastAPI backend for LookLab: thin routes over the Evolink and APIMart vendor clients."""

import logging
import sys
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from looklab.config import get_settings

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

settings = get_settings()

app = FastAPI(
    title="LookLab API",
    description="Apparel image generation: text-to-image, fabric swap, virtual try-on and prompt extraction.",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

cors_origins = settings.cors_origin_list
logger.info("CORS configured for origins: %s", cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.looklab_blob_backend == "file":
    logger.info("Blob store: local files under %s served at /files", settings.uploads_dir)
    app.mount("/files", StaticFiles(directory=str(settings.uploads_dir)), name="files")
else:
    logger.info("Blob store: %s", settings.looklab_blob_backend)
if not settings.evolink_api_key:
    logger.warning("EVOLINK_API_KEY is not set; generation routes will answer 500")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
class HealthResponse(BaseModel):
    status: str
    data_dir: str


@app.get("/health", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(status="ok", data_dir=str(settings.data_dir))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
from backend.routes import fabric, images, nano_banana, prompt_extractor, try_on, uploads  # noqa: E402

app.include_router(images.router, prefix="/api", tags=["images"])
app.include_router(nano_banana.router, prefix="/api", tags=["nano_banana"])
app.include_router(fabric.router, prefix="/api", tags=["fabric"])
app.include_router(try_on.router, prefix="/api", tags=["try_on"])
app.include_router(prompt_extractor.router, prefix="/api", tags=["prompt_extractor"])
app.include_router(uploads.router, prefix="/api", tags=["uploads"])
