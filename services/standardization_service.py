"""
Standardizer: final pass over an import.

Every matchable cell is re-resolved against the current (post-review)
catalog by exact standard-or-variation match, and its status combines
that lookup with what the operator decided for the same (field, value).
Re-matching picks up terms created or merged later in the session even
for rows reviewed before them.
"""

from typing import Any, Iterable, Optional
import structlog

from models.catalog import Catalog, CanonicalTerm, FieldKind
from models.review import (
    ImportRow,
    ReviewAction,
    ReviewItem,
    RowStatus,
    StandardizedRow,
)
from services.analysis_service import cell_value
from services.matching_service import find_exact_term

logger = structlog.get_logger(__name__)

# Highest precedence first
STATUS_PRECEDENCE: list[tuple[ReviewAction, RowStatus]] = [
    (ReviewAction.SKIPPED, RowStatus.SKIPPED),
    (ReviewAction.ADDED, RowStatus.ADDED),
    (ReviewAction.ACCEPTED, RowStatus.STANDARDIZED),
    (ReviewAction.AUTO_MATCHED, RowStatus.AUTO_MATCHED),
]


def original_key(column: str) -> str:
    return f"Original {column}"


def standardized_key(column: str) -> str:
    return f"Standardized {column}"


def status_key(column: str) -> str:
    return f"Status {column}"


def standardize(
    rows: list[ImportRow],
    mapping: dict[str, Any],
    catalog: Catalog,
    review_items: Iterable[ReviewItem] = (),
    system_id: Optional[str] = None
) -> list[StandardizedRow]:
    """
    Produce one output row per input row.

    Reference Field columns pass through under their own name; skipped
    ("") columns are dropped; matchable columns expand to Original /
    Standardized / Status.

    Args:
        rows: Parsed import rows
        mapping: Source column → field kind
        catalog: Catalog snapshot after review
        review_items: Review queue with operator decisions
        system_id: Active nomenclature system for Device Type columns

    Returns:
        Standardized rows in input order
    """
    columns = []
    for column, kind in mapping.items():
        try:
            kind = FieldKind(kind)
        except ValueError:
            continue
        if kind != FieldKind.SKIP:
            columns.append((column, kind))

    term_lists: dict[FieldKind, list[CanonicalTerm]] = {
        field: catalog.terms_for(field, system_id)
        for _, field in columns
        if field.is_matchable
    }

    actions: dict[tuple[FieldKind, str], set[ReviewAction]] = {}
    for item in review_items:
        if item.action is not None:
            actions.setdefault(item.key, set()).add(item.action)

    output: list[StandardizedRow] = []
    counts = {status: 0 for status in RowStatus}

    for row in rows:
        out: StandardizedRow = {}
        for column, field in columns:
            if field == FieldKind.REFERENCE:
                raw = row.get(column)
                out[column] = "" if raw is None else str(raw)
                continue

            value = cell_value(row, column)
            if not value:
                out[original_key(column)] = ""
                out[standardized_key(column)] = ""
                out[status_key(column)] = ""
                continue

            term = find_exact_term(value, term_lists[field])
            status = resolve_status(actions.get((field, value), set()), term is not None)
            counts[status] += 1

            out[original_key(column)] = value
            out[standardized_key(column)] = term.standard if term else value
            out[status_key(column)] = status.value
        output.append(out)

    logger.info(
        "import_standardized",
        rows=len(output),
        **{status.name.lower(): count for status, count in counts.items()}
    )

    return output


def resolve_status(actions: set[ReviewAction], matched: bool) -> RowStatus:
    """Operator decisions outrank the catalog lookup."""
    for action, status in STATUS_PRECEDENCE:
        if action in actions:
            return status
    return RowStatus.STANDARDIZED if matched else RowStatus.NO_MATCH
