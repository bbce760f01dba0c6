"""
Business logic services.

Each service handles one stage of the standardization pipeline.
"""

from services.matching_service import find_matches, find_exact_term, search_terms
from services.analysis_service import analyze, validate_mapping
from services.standardization_service import standardize
from services.catalog_store import CatalogStore, SupabaseCatalogStore
from services.memory_catalog_store import InMemoryCatalogStore
from services.catalog_service import (
    CatalogService,
    get_catalog_service,
    get_catalog_store,
    set_catalog_store,
)
from services.review_service import ReviewSession, start_review_session
from services.export_service import ExportService, get_export_service

__all__ = [
    "find_matches",
    "find_exact_term",
    "search_terms",
    "analyze",
    "validate_mapping",
    "standardize",
    "CatalogStore",
    "SupabaseCatalogStore",
    "InMemoryCatalogStore",
    "CatalogService",
    "get_catalog_service",
    "get_catalog_store",
    "set_catalog_store",
    "ReviewSession",
    "start_review_session",
    "ExportService",
    "get_export_service",
]
