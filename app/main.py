"""
FastAPI application entry point.
Initializes the FastAPI app, configures logging, and includes the Stock sync routes.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.routers import settings as settings_router
from app.routers import stock_sync
from app.utils.logger import configure_logging

SERVICE_NAME = "Stock Catalog Sync"
SERVICE_VERSION = "1.0.0"

# Configure logging first
configure_logging()
logger = structlog.get_logger()

# Create FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Syncs products, variants and stock levels from the Stock ERP API "
    "and posts production inventory movements back to it",
    version=SERVICE_VERSION,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(stock_sync.router)
app.include_router(settings_router.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    logger.info(
        "Stock Catalog Sync started",
        environment=settings.app_environment,
        page_size=settings.stock_sync_page_size,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    logger.info("Stock Catalog Sync shutting down")


@app.get("/")
async def root():
    """Root endpoint - also serves as a simple health check."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
