"""
Review queue builder.

Runs the term matcher over every mapped cell. Cells whose best match is
exact are resolved on the spot; everything else becomes a ReviewItem.
Queue order is row order, then mapping order within a row.
"""

from typing import Any, Optional
import structlog

from models.catalog import Catalog, CanonicalTerm, FieldKind
from models.review import ImportRow, ReviewItem
from parsers.inventory_parser import ROW_INDEX_KEY
from services.matching_service import MAX_RESULTS, find_matches
from exceptions import NoColumnsMappedError

logger = structlog.get_logger(__name__)


def validate_mapping(mapping: dict[str, Any]) -> list[tuple[str, FieldKind]]:
    """
    Columns that are matched against the catalog, in mapping order.

    Args:
        mapping: Source column → field kind (enum or its string value)

    Returns:
        List of (column, field) for Device Type / Manufacturer / Model columns

    Raises:
        NoColumnsMappedError: If no column is mapped to a matchable field
    """
    columns = []
    for column, kind in mapping.items():
        try:
            kind = FieldKind(kind)
        except ValueError:
            logger.warning("unknown_field_kind", column=column, kind=kind)
            continue
        if kind.is_matchable:
            columns.append((column, kind))

    if not columns:
        raise NoColumnsMappedError()

    return columns


def cell_value(row: ImportRow, column: str) -> str:
    """Trimmed cell text; missing cells read as empty."""
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


def row_index_of(row: ImportRow, position: int) -> int:
    index = row.get(ROW_INDEX_KEY)
    return int(index) if index is not None else position


def analyze(
    rows: list[ImportRow],
    mapping: dict[str, Any],
    catalog: Catalog,
    system_id: Optional[str] = None,
    limit: int = MAX_RESULTS
) -> list[ReviewItem]:
    """
    Build the review queue for an import.

    Args:
        rows: Parsed import rows
        mapping: Source column → field kind
        catalog: Catalog snapshot to match against
        system_id: Active nomenclature system for Device Type columns
        limit: Suggestions kept per item

    Returns:
        Ordered review queue (empty when every value matched exactly)

    Raises:
        NoColumnsMappedError: If nothing is mapped to a matchable field
        SystemNotFoundError: If Device Type is mapped and the system is unknown
    """
    columns = validate_mapping(mapping)

    term_lists: dict[FieldKind, list[CanonicalTerm]] = {
        field: catalog.terms_for(field, system_id)
        for _, field in columns
    }

    queue: list[ReviewItem] = []
    auto_resolved = 0

    for position, row in enumerate(rows):
        for column, field in columns:
            value = cell_value(row, column)
            if not value:
                continue

            matches = find_matches(value, term_lists[field], limit=limit)
            if matches and matches[0].score == 1.0:
                auto_resolved += 1
                continue

            queue.append(ReviewItem(
                row_index=row_index_of(row, position),
                column=column,
                field=field,
                original_value=value,
                potential_matches=matches,
            ))

    logger.info(
        "import_analyzed",
        rows=len(rows),
        columns=[c for c, _ in columns],
        system_id=system_id,
        exact_matches=auto_resolved,
        review_items=len(queue),
    )

    return queue
