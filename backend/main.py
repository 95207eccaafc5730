"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import pnl, wallets
from api.helpers import get_price_service
from config import settings
from database import init_db
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup; release the price client on shutdown."""
    init_db()
    logger.info("Wallet PnL API started (%s)", settings.ENVIRONMENT)
    yield
    if get_price_service.cache_info().currsize:
        get_price_service().close()


app = FastAPI(
    title="Wallet PnL",
    description="FIFO cost basis and realized/unrealized PnL for wallet portfolios",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(wallets.router)
app.include_router(pnl.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
