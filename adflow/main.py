from contextlib import asynccontextmanager
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load Environment Variables FIRST
load_dotenv()

from .firebase_client import init_firebase
from .routers import ad_groups

# --- Setup & Middleware ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize Firebase on startup"""
    try:
        init_firebase()
        logger.info("Firebase Admin SDK initialized.")
    except Exception as e:
        logger.error(f"Firebase Init Error: {e}")
    yield
    logger.info("Ad group service shutting down")


app = FastAPI(
    title="adflow - Ad Group Service",
    description="Ad-group status reconciliation and review-history scrubbing",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
app.router.redirect_slashes = False

# --- Include Routers ---
app.include_router(ad_groups.router, prefix="/api", tags=["Ad Group Management"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "adflow"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
