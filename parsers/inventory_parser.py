"""
Inventory import parser.

Turns pasted spreadsheet text (or an uploaded xlsx/csv) into row dicts
and proposes which source column holds Device Type, Manufacturer or Model.

Row shape:
    {"_rowIndex": 0, "Tipo": "Ventilador", "Marca": "GE", ...}
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Callable, Union
import re
import structlog

import pandas as pd

from exceptions import EmptyImportError, ImportFileError
from models.catalog import FieldKind

logger = structlog.get_logger(__name__)

ROW_INDEX_KEY = "_rowIndex"

# Header keyword → field. Checked in order; first hit wins.
COLUMN_KEYWORDS: list[tuple[FieldKind, tuple[str, ...]]] = [
    (FieldKind.DEVICE_TYPE, ("tipo", "type", "device", "equipo")),
    (FieldKind.MANUFACTURER, ("marca", "manufacturer", "fabricante", "mfr", "mfg", "brand")),
    (FieldKind.MODEL, ("modelo", "model")),
]

_MULTI_SPACE = re.compile(r" {2,}")


@dataclass
class ImportParseResult:
    """Result of parsing an import."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict] = field(default_factory=list)
    suggested_mapping: dict[str, FieldKind] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        """True if any data row was parsed."""
        return len(self.rows) > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "headers": self.headers,
            "rows": self.rows,
            "suggested_mapping": {k: v.value for k, v in self.suggested_mapping.items()},
        }


def parse_pasted_text(raw_text: str) -> ImportParseResult:
    """
    Parse pasted spreadsheet text.

    The first non-empty line is the header. The separator is chosen from
    the header: tab if present, else runs of 2+ spaces, else one space.
    Blank data lines are skipped and do not consume a row index.

    Args:
        raw_text: Text copied from a spreadsheet

    Returns:
        ImportParseResult with rows and suggested mapping

    Raises:
        EmptyImportError: If the text is empty or whitespace only
    """
    if not raw_text or not raw_text.strip():
        raise EmptyImportError()

    lines = [line.rstrip("\r") for line in raw_text.split("\n")]
    non_empty = [line for line in lines if line.strip()]

    header_line = non_empty[0]
    split = _detect_separator(header_line)
    headers = [cell.strip() for cell in split(header_line)]

    rows = []
    for line in non_empty[1:]:
        cells = split(line)
        row = {ROW_INDEX_KEY: len(rows)}
        for i, header in enumerate(headers):
            row[header] = cells[i].strip() if i < len(cells) else ""
        rows.append(row)

    result = ImportParseResult(
        headers=headers,
        rows=rows,
        suggested_mapping=suggest_column_mapping(headers),
    )

    logger.info(
        "paste_parsed",
        columns=len(headers),
        row_count=len(rows),
    )

    return result


def parse_inventory_file(
    file: Union[str, Path, BytesIO],
    filename: str = "",
) -> ImportParseResult:
    """
    Parse an uploaded spreadsheet (first sheet of xlsx/xls, or csv).

    Produces the same rows and mapping as pasting the sheet would.

    Raises:
        ImportFileError: If the file cannot be read
        EmptyImportError: If the sheet has no header row
    """
    name = (filename or (str(file) if isinstance(file, (str, Path)) else "")).lower()
    logger.info("parsing_inventory_file", filename=name)

    try:
        if name.endswith(".csv"):
            df = pd.read_csv(file, dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(file, dtype=str, keep_default_na=False, engine="openpyxl")
    except Exception as e:
        logger.error("inventory_file_read_failed", filename=name, error=str(e))
        raise ImportFileError(
            message="Failed to read spreadsheet file",
            details={"filename": filename, "original_error": str(e)}
        )

    headers = [str(col).strip() for col in df.columns]
    if not headers:
        raise EmptyImportError()
    df.columns = headers

    rows = []
    for _, record in df.iterrows():
        values = {h: _cell_text(record[h]) for h in headers}
        if not any(values.values()):
            continue
        rows.append({ROW_INDEX_KEY: len(rows), **values})

    result = ImportParseResult(
        headers=headers,
        rows=rows,
        suggested_mapping=suggest_column_mapping(headers),
    )

    logger.info(
        "inventory_file_parsed",
        filename=name,
        columns=len(headers),
        row_count=len(rows),
    )

    return result


def suggest_column_mapping(headers: list[str]) -> dict[str, FieldKind]:
    """
    Guess a field for every header from keywords (Spanish and English).

    Headers with no keyword hit become pass-through Reference Fields.
    """
    mapping = {}
    for header in headers:
        lowered = header.lower()
        mapping[header] = FieldKind.REFERENCE
        for kind, keywords in COLUMN_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                mapping[header] = kind
                break
    return mapping


def _detect_separator(header_line: str) -> Callable[[str], list[str]]:
    """Pick the splitter for this paste from its header line."""
    if "\t" in header_line:
        return lambda line: line.split("\t")
    if _MULTI_SPACE.search(header_line.strip()):
        return lambda line: _MULTI_SPACE.split(line.strip())
    return lambda line: line.strip().split(" ")


def _cell_text(value) -> str:
    """Cell value as trimmed text."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()
