"""
SmartScan API - application factory
FastAPI application for document scanning and classification
"""

from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from smartscan import __version__
from smartscan.api.models import HealthResponse
from smartscan.api.routes import router
from smartscan.document_processor import DocumentProcessor


def create_app(
    processor: Optional[DocumentProcessor] = None,
    config: Optional[Dict] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        processor: Pipeline to serve (built from `config` if None)
        config:    Loaded configuration; ignored when `processor` is given
    """
    app = FastAPI(
        title="SmartScan API",
        description="Detect, flatten, enhance, OCR and classify document photos",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.processor = processor or DocumentProcessor.from_config(config)
    app.include_router(router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": "SmartScan API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        return HealthResponse(status="healthy", service="smartscan-api", version=__version__)

    logger.info(f"SmartScan API {__version__} ready")
    return app
