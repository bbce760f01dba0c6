"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.review import router as review_router
from routes.catalog import router as catalog_router

__all__ = [
    "imports_router",
    "review_router",
    "catalog_router",
]
