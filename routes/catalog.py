"""
Catalog API routes.

Reading the catalog is open. Everything that edits it sits behind the
admin password header (X-Admin-Password), a soft gate for the admin
panel rather than an access-control boundary.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
import structlog

from config import settings
from models.catalog import (
    Catalog,
    CanonicalTerm,
    DeviceTypeTermCreate,
    MergeRequest,
    NomenclatureSystem,
    ReferenceTermCreate,
    StoreStatus,
    SystemCreate,
    SystemUpdate,
    TermUpdate,
)
from services.catalog_service import get_catalog_service
from exceptions import AppError, AdminAccessDeniedError

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


def require_admin(x_admin_password: Optional[str] = Header(None)) -> None:
    """Reject requests without the admin password."""
    if x_admin_password != settings.admin_password:
        logger.warning("admin_access_denied")
        raise AdminAccessDeniedError()


# ===================
# READ ROUTES
# ===================

@router.get("", response_model=Catalog)
async def get_catalog():
    """All systems with their Device Type terms, plus Manufacturer and Model terms."""
    try:
        return get_catalog_service().get_catalog()

    except Exception as e:
        return handle_error(e)


@router.get("/status", response_model=StoreStatus)
async def get_status():
    """Which store is in use and whether it accepts writes."""
    try:
        return get_catalog_service().status()

    except Exception as e:
        return handle_error(e)


# ===================
# ADMIN ROUTES
# ===================

@router.post("/admin/verify", dependencies=[Depends(require_admin)])
async def verify_admin():
    """Check the admin password."""
    return {"verified": True}


@router.post("/seed", dependencies=[Depends(require_admin)])
async def seed_catalog():
    """Load the default catalog if the store is empty."""
    try:
        seeded = get_catalog_service().seed()
        return {"seeded": seeded}

    except Exception as e:
        return handle_error(e)


@router.post("/systems", response_model=NomenclatureSystem, status_code=201, dependencies=[Depends(require_admin)])
async def create_system(data: SystemCreate):
    """
    Create a nomenclature system.

    Raises:
        409: A system with this id already exists
    """
    try:
        return get_catalog_service().create_system(data)

    except Exception as e:
        return handle_error(e)


@router.patch("/systems/{system_id}", response_model=NomenclatureSystem, dependencies=[Depends(require_admin)])
async def update_system(system_id: str, data: SystemUpdate):
    try:
        return get_catalog_service().update_system(system_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/systems/{system_id}", status_code=204, dependencies=[Depends(require_admin)])
async def delete_system(system_id: str):
    """Delete a system and all of its Device Type terms."""
    try:
        get_catalog_service().delete_system(system_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/device-types", response_model=CanonicalTerm, status_code=201, dependencies=[Depends(require_admin)])
async def create_device_type_term(data: DeviceTypeTermCreate):
    """
    Add a Device Type term to a system.

    Raises:
        404: System not found
        409: Standard already exists in this system
        422: Blank standard
    """
    try:
        return get_catalog_service().create_device_type_term(data)

    except Exception as e:
        return handle_error(e)


@router.put("/device-types/{term_id}", dependencies=[Depends(require_admin)])
async def update_device_type_term(term_id: str, data: TermUpdate):
    try:
        get_catalog_service().update_device_type_term(term_id, data)
        return {"updated": term_id}

    except Exception as e:
        return handle_error(e)


@router.delete("/device-types/{term_id}", status_code=204, dependencies=[Depends(require_admin)])
async def delete_device_type_term(term_id: str):
    try:
        get_catalog_service().delete_device_type_term(term_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/references", response_model=CanonicalTerm, status_code=201, dependencies=[Depends(require_admin)])
async def create_reference_term(data: ReferenceTermCreate):
    """
    Add a Manufacturer or Model term.

    Raises:
        409: Standard already exists for this field
        422: Blank standard or not a reference field
    """
    try:
        return get_catalog_service().create_reference_term(data)

    except Exception as e:
        return handle_error(e)


@router.put("/references/{term_id}", dependencies=[Depends(require_admin)])
async def update_reference_term(term_id: str, data: TermUpdate):
    try:
        get_catalog_service().update_reference_term(term_id, data)
        return {"updated": term_id}

    except Exception as e:
        return handle_error(e)


@router.delete("/references/{term_id}", status_code=204, dependencies=[Depends(require_admin)])
async def delete_reference_term(term_id: str):
    try:
        get_catalog_service().delete_reference_term(term_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/merge", response_model=CanonicalTerm, dependencies=[Depends(require_admin)])
async def merge_terms(data: MergeRequest):
    """
    Fold the target term into the source term.

    Raises:
        404: Either term not found
        409: Another merge is running
        422: No target, or target equals source
        500: A step failed after the first write (details list the completed steps)
    """
    try:
        return get_catalog_service().merge_terms(data)

    except Exception as e:
        return handle_error(e)
