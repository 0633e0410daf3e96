"""
SmartScan API - Main Application
FastAPI application for document scanning and classification

Run with: python main.py
Access API docs at: http://localhost:8000/docs
"""

import os

from smartscan.api import create_app
from smartscan.config import load_config
from smartscan.utils import setup_logging


config = load_config()
setup_logging(config["logging"].get("file"), config["logging"].get("level", "INFO"))

app = create_app(config=config)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("SMARTSCAN_HOST", "0.0.0.0"),
        port=int(os.getenv("SMARTSCAN_PORT", "8000")),
        reload=False,
    )
