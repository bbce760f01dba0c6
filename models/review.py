"""
Review queue schemas.

A ReviewItem is one cell value that had no exact catalog match when the
import was analyzed. Items are resolved in place and never removed.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field

from models.base import BaseSchema
from models.catalog import CanonicalTerm, FieldKind


# Raw parsed row: {"_rowIndex": 0, "<column>": "<value>", ...}
ImportRow = dict[str, Any]

# Source column name -> field kind
ColumnMapping = dict[str, FieldKind]

# Output row: "Original <col>", "Standardized <col>", "Status <col>", pass-through columns
StandardizedRow = dict[str, str]


class MatchReason(str, Enum):
    """Why a candidate term was suggested."""
    EXACT = "Exact match"
    EXACT_VARIATION = "Exact variation match"
    CONTAINS = "Contains match"
    SIMILAR_TERM = "Similar term"
    SIMILAR_VARIATION = "Similar variation"
    WORD_SIMILARITY = "Word similarity"


class ReviewAction(str, Enum):
    """Terminal state of a review item."""
    ACCEPTED = "accepted"
    ADDED = "added"
    SKIPPED = "skipped"
    AUTO_MATCHED = "auto-matched"


class RowStatus(str, Enum):
    """Per-field status in standardized output."""
    STANDARDIZED = "Standardized"
    NO_MATCH = "No Match"
    SKIPPED = "Skipped"
    ADDED = "Added as New Term"
    AUTO_MATCHED = "Auto-Matched"


class PotentialMatch(BaseSchema):
    """A candidate canonical term for an input value."""

    term: CanonicalTerm
    score: float = Field(..., ge=0, le=1)
    reason: MatchReason

    @property
    def is_exact(self) -> bool:
        return self.score >= 1.0


class ReviewItem(BaseSchema):
    """One ambiguous cell awaiting an operator decision."""

    row_index: int = Field(..., ge=0)
    column: str = Field(..., description="Source column the value came from")
    field: FieldKind
    original_value: str
    potential_matches: list[PotentialMatch] = Field(default_factory=list)
    processed: bool = False
    action: Optional[ReviewAction] = None
    matched_term: Optional[CanonicalTerm] = None
    resolution_note: Optional[str] = None

    @property
    def key(self) -> tuple[FieldKind, str]:
        """Identity used for propagation and status lookup."""
        return (self.field, self.original_value)

    def resolve(
        self,
        action: ReviewAction,
        term: Optional[CanonicalTerm] = None,
        note: Optional[str] = None
    ) -> None:
        self.processed = True
        self.action = action
        self.matched_term = term.model_copy(deep=True) if term else None
        self.resolution_note = note


# ===================
# REQUESTS / RESPONSES
# ===================

class ParseRequest(BaseSchema):
    """Pasted spreadsheet text."""

    # Leading tabs can be empty header cells
    model_config = ConfigDict(str_strip_whitespace=False)

    raw_text: str = Field(..., description="Tab or space separated rows, header first")


class ParseResponse(BaseSchema):
    """Parsed rows plus the suggested column mapping."""

    headers: list[str]
    rows: list[ImportRow]
    suggested_mapping: ColumnMapping


class ReviewSessionCreate(BaseSchema):
    """Start reviewing an import."""

    rows: list[ImportRow]
    mapping: ColumnMapping
    system_id: Optional[str] = Field(None, description="Active nomenclature system for Device Type")


EXPECTED_INDEX_HELP = "current_index the decision was made for; a repeat after the cursor moved gets 409"


class AcceptSuggestionRequest(BaseSchema):
    """Accept one of the current item's suggestions."""

    expected_index: int = Field(..., ge=0, description=EXPECTED_INDEX_HELP)
    match_index: int = Field(0, ge=0)
    confirm_low_confidence: bool = Field(
        False,
        description="Must be true to accept a suggestion at or below the low-confidence threshold"
    )


class AcceptTermRequest(BaseSchema):
    """Accept a term picked through manual catalog search."""

    expected_index: int = Field(..., ge=0, description=EXPECTED_INDEX_HELP)
    term_id: str = Field(..., min_length=1)


class CreateTermRequest(BaseSchema):
    """Mint a new canonical term from the current item."""

    expected_index: int = Field(..., ge=0, description=EXPECTED_INDEX_HELP)
    standard: str = Field("", description="New canonical name")


class ReviewSessionResponse(BaseSchema):
    """Snapshot of a review session for clients."""

    session_id: str
    system_id: Optional[str]
    persistent: bool
    total_items: int
    current_index: int
    complete: bool
    current_item: Optional[ReviewItem] = None
    queue: list[ReviewItem] = Field(default_factory=list)
    results: Optional[list[StandardizedRow]] = None
    warnings: list[str] = Field(default_factory=list)
