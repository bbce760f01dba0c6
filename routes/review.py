"""
Review API routes.

A review session is opened for one parsed import and walked one item
at a time. Sessions live in memory and expire after
settings.review_session_ttl_minutes of inactivity.
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
import structlog

from models.catalog import CanonicalTerm
from models.review import (
    AcceptSuggestionRequest,
    AcceptTermRequest,
    CreateTermRequest,
    ReviewSessionCreate,
    ReviewSessionResponse,
    StandardizedRow,
)
from services.catalog_service import get_catalog_store
from services.export_service import get_export_service
from services.review_service import ReviewSession, start_review_session
from services.session_cache_service import store_session, retrieve_session, delete_session
from exceptions import AppError, ReviewSessionNotFoundError, ValidationError

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


def _get_session(session_id: str) -> ReviewSession:
    session = retrieve_session(session_id)
    if session is None:
        raise ReviewSessionNotFoundError(session_id)
    return session


def _touch(session: ReviewSession) -> ReviewSessionResponse:
    """Refresh the session's expiry and render it."""
    store_session(session.session_id, session)
    return session.to_response()


def _require_results(session: ReviewSession) -> list[StandardizedRow]:
    if not session.complete:
        raise ValidationError(
            "Review is not finished",
            code="REVIEW_INCOMPLETE",
            details={"current_index": session.current_index, "total_items": len(session.queue)}
        )
    if session.results is None:
        session.finalize()
    return session.results


# ===================
# SESSION ROUTES
# ===================

@router.post("/sessions", response_model=ReviewSessionResponse, status_code=201)
async def create_session(data: ReviewSessionCreate):
    """
    Analyze an import and open a review session.

    If nothing needs review the response already carries results.

    Raises:
        422: No matchable column mapped
        404: Unknown nomenclature system
    """
    try:
        session = start_review_session(
            data.rows,
            data.mapping,
            get_catalog_store(),
            system_id=data.system_id
        )
        return _touch(session)

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}", response_model=ReviewSessionResponse)
async def get_session(session_id: str):
    """Full session state including the queue."""
    try:
        return _get_session(session_id).to_response()

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/current", response_model=ReviewSessionResponse)
async def get_current(session_id: str):
    """Session state without the queue."""
    try:
        return _get_session(session_id).to_response(include_queue=False)

    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}", status_code=204)
async def discard_session(session_id: str):
    """Drop a session. Catalog changes already made are kept."""
    try:
        _get_session(session_id)
        delete_session(session_id)
        logger.info("review_session_discarded", session_id=session_id)
        return None

    except Exception as e:
        return handle_error(e)


# ===================
# DECISION ROUTES
# ===================

@router.post("/sessions/{session_id}/accept", response_model=ReviewSessionResponse)
async def accept_suggestion(session_id: str, data: AcceptSuggestionRequest):
    """
    Accept one of the current item's suggestions.

    Raises:
        404: Session or suggestion not found
        409: Item already resolved (repeated submission)
        422: Review finished, or low-confidence pick not confirmed
        500: Catalog write failed (item stays current)
    """
    try:
        session = _get_session(session_id)
        session.accept_suggestion(data.match_index, data.confirm_low_confidence, expected_index=data.expected_index)
        return _touch(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/accept-term", response_model=ReviewSessionResponse)
async def accept_term(session_id: str, data: AcceptTermRequest):
    """Accept a term chosen through catalog search."""
    try:
        session = _get_session(session_id)
        session.accept_catalog_term(data.term_id, expected_index=data.expected_index)
        return _touch(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/create-term", response_model=ReviewSessionResponse)
async def create_term(session_id: str, data: CreateTermRequest):
    """
    Add a new canonical term from the current item.

    Raises:
        409: Item already resolved, or another create is still pending
        422: Blank name
    """
    try:
        session = _get_session(session_id)
        session.create_new_term(data.standard, expected_index=data.expected_index)
        return _touch(session)

    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/skip", response_model=ReviewSessionResponse)
async def skip_item(
    session_id: str,
    expected_index: int = Query(..., ge=0, description="current_index the skip was made for")
):
    try:
        session = _get_session(session_id)
        session.skip(expected_index=expected_index)
        return _touch(session)

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/search", response_model=list[CanonicalTerm])
async def search_catalog(
    session_id: str,
    q: Optional[str] = Query(None, description="Search text"),
    limit: int = Query(50, ge=1, le=200)
):
    """Search the current item's field in the catalog."""
    try:
        return _get_session(session_id).search_catalog(q, limit=limit)

    except Exception as e:
        return handle_error(e)


# ===================
# RESULT ROUTES
# ===================

@router.get("/sessions/{session_id}/results", response_model=list[StandardizedRow])
async def get_results(session_id: str):
    """
    Standardized rows.

    Raises:
        422: Review is not finished
    """
    try:
        return _require_results(_get_session(session_id))

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/export")
async def export_tsv(session_id: str):
    """Results as tab-separated text for the clipboard."""
    try:
        rows = _require_results(_get_session(session_id))
        return PlainTextResponse(get_export_service().export_tsv(rows))

    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/export.xlsx")
async def export_excel(session_id: str):
    """Results as an Excel download."""
    try:
        rows = _require_results(_get_session(session_id))
        output = get_export_service().export_excel(rows)

        filename = f"standardized_{session_id[:8]}.xlsx"
        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    except Exception as e:
        return handle_error(e)
