"""
Import API routes.

Parse pasted spreadsheet text or an uploaded file into rows and a
suggested column mapping. Nothing is matched or stored here.
"""

from io import BytesIO

from fastapi import APIRouter, UploadFile, File
from fastapi.responses import JSONResponse
import structlog

from models.review import ParseRequest, ParseResponse
from parsers.inventory_parser import parse_pasted_text, parse_inventory_file
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.post("/parse", response_model=ParseResponse)
async def parse_paste(data: ParseRequest):
    """
    Parse pasted rows.

    Raises:
        422: Empty paste
    """
    try:
        result = parse_pasted_text(data.raw_text)
        return ParseResponse(**result.to_dict())

    except Exception as e:
        return handle_error(e)


@router.post("/upload", response_model=ParseResponse)
async def upload_file(file: UploadFile = File(..., description="Inventory spreadsheet (.xlsx or .csv)")):
    """
    Parse the first sheet of an uploaded spreadsheet.

    Raises:
        422: Unreadable or empty file
    """
    try:
        contents = await file.read()
        result = parse_inventory_file(BytesIO(contents), filename=file.filename or "")
        return ParseResponse(**result.to_dict())

    except Exception as e:
        return handle_error(e)
