# .env must be loaded before config and db read the environment
from dotenv import load_dotenv
load_dotenv()

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .db import init_db
from .logging_config import setup_logging
from .routes import limiter, payments_router, webhook_router

# Uvicorn imports this module once per worker
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("WA Order Bot started")
    yield


app = FastAPI(
    title="WA Order Bot API",
    description="WhatsApp customer service and order-taking bot",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Webhook", "description": "Inbound WhatsApp messages"},
        {"name": "Payments", "description": "Payment gateway callbacks"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# QR code images are served from here so WhatsApp can fetch them
_media_dir = get_settings().qr_storage_dir
os.makedirs(_media_dir, exist_ok=True)
app.mount("/media", StaticFiles(directory=_media_dir), name="media")

app.include_router(webhook_router)
app.include_router(payments_router)


@app.get("/health", tags=["Health"])
def health() -> Dict[str, str]:
    """Liveness check for the hosting platform."""
    return {"status": "ok"}
