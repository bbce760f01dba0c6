"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.catalog import (
    FieldKind,
    ReferenceField,
    CanonicalTerm,
    NomenclatureSystem,
    Catalog,
    SystemCreate,
    SystemUpdate,
    DeviceTypeTermCreate,
    ReferenceTermCreate,
    TermUpdate,
    MergeRequest,
    StoreStatus,
)
from models.review import (
    ImportRow,
    ColumnMapping,
    StandardizedRow,
    MatchReason,
    ReviewAction,
    RowStatus,
    PotentialMatch,
    ReviewItem,
    ParseRequest,
    ParseResponse,
    ReviewSessionCreate,
    AcceptSuggestionRequest,
    AcceptTermRequest,
    CreateTermRequest,
    ReviewSessionResponse,
)

__all__ = [
    "BaseSchema",
    # Catalog
    "FieldKind",
    "ReferenceField",
    "CanonicalTerm",
    "NomenclatureSystem",
    "Catalog",
    "SystemCreate",
    "SystemUpdate",
    "DeviceTypeTermCreate",
    "ReferenceTermCreate",
    "TermUpdate",
    "MergeRequest",
    "StoreStatus",
    # Review
    "ImportRow",
    "ColumnMapping",
    "StandardizedRow",
    "MatchReason",
    "ReviewAction",
    "RowStatus",
    "PotentialMatch",
    "ReviewItem",
    "ParseRequest",
    "ParseResponse",
    "ReviewSessionCreate",
    "AcceptSuggestionRequest",
    "AcceptTermRequest",
    "CreateTermRequest",
    "ReviewSessionResponse",
]
