"""
API Package
Contains FastAPI routes, models and the application factory
"""

from smartscan.api.app import create_app
from smartscan.api.routes import router

__all__ = [
    'create_app',
    'router',
]
