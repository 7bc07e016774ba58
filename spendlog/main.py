"""
SpendLog FastAPI Application
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from spendlog.config import settings
from spendlog.api.v1.router import api_router
from spendlog.core.database import engine, Base
from spendlog.core.exceptions import SpendLogError
from spendlog.core.logging_config import configure_logging
from spendlog.ml.inference.model_loader import model_loader
import spendlog.models  # noqa: F401

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Personal finance tracking, budget health and bank statement imports",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(SpendLogError)
async def spendlog_error_handler(request: Request, exc: SpendLogError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    configure_logging()
    logger.info("Starting %s v%s", settings.PROJECT_NAME, settings.VERSION)

    # Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")

    # Load ML models
    model_loader.load_models()

    logger.info("Application started")

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down")
    await engine.dispose()

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "SpendLog API",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "ml_models": {
            "classifier": model_loader.get_category_classifier() is not None
        }
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "spendlog.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
