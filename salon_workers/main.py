import os
import logging
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from . import metrics
from .studio import studio_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Studio worker starting up...")
    metrics.reset()
    yield
    logger.info("Studio worker shutting down...")

app = FastAPI(lifespan=lifespan)
app.include_router(studio_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/health")
def health_check():
    """Verify worker is running and env vars are configured."""
    gemini_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
    sb_url = os.environ.get("SUPABASE_URL", "")
    return {
        "status": "ok",
        "gemini_api_key_set": bool(gemini_key),
        "supabase_url_set": bool(sb_url),
        "studio_store": os.environ.get("STUDIO_STORE", "memory"),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all worker metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("salon_workers.main:app", host="0.0.0.0", port=port, reload=True)
