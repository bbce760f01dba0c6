"""
Import parsers module.
"""

from parsers.inventory_parser import (
    parse_pasted_text,
    parse_inventory_file,
    suggest_column_mapping,
    ImportParseResult,
    ROW_INDEX_KEY,
)

__all__ = [
    "parse_pasted_text",
    "parse_inventory_file",
    "suggest_column_mapping",
    "ImportParseResult",
    "ROW_INDEX_KEY",
]
