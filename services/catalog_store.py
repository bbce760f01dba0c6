"""
Catalog store port and its Supabase implementation.

The engine never talks to the database directly: it loads a Catalog
snapshot and sends single-row mutations through a CatalogStore. There
are no multi-statement transactions, so every write here is one
request and every append is idempotent.

Tables:
    nomenclature_systems (id, name, description, last_updated)
    device_type_terms    (id, system_id, standard, variations[])
    reference_terms      (id, field, standard, variations[])
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
import re
import structlog

from config import get_supabase_client
from config.seed_catalog import (
    DEFAULT_SYSTEMS,
    DEFAULT_DEVICE_TYPE_TERMS,
    DEFAULT_REFERENCE_TERMS,
)
from models.catalog import (
    Catalog,
    CanonicalTerm,
    NomenclatureSystem,
    ReferenceField,
    StoreStatus,
)
from exceptions import (
    AppError,
    DatabaseError,
    EmptyTermNameError,
    SystemExistsError,
    SystemNotFoundError,
    TermNotFoundError,
)

logger = structlog.get_logger(__name__)


class CatalogStore(ABC):
    """
    Durable term/system storage used by the matching engine.

    Implementations raise AppError subclasses only: DatabaseError for
    store failures, NotFoundError subclasses for vanished ids.
    """

    mode: str = "unknown"
    persistent: bool = True

    # ===================
    # READ
    # ===================

    @abstractmethod
    def load_catalog(self) -> Catalog:
        """Load every system (with its terms) and both reference lists."""

    @abstractmethod
    def can_write(self) -> StoreStatus:
        """Connectivity check used at startup."""

    # ===================
    # DEVICE TYPE TERMS
    # ===================

    @abstractmethod
    def upsert_device_type_term(self, system_id: str, standard: str, variation: Optional[str] = None) -> str:
        """Create the term or append the variation to the existing one. Returns term id."""

    @abstractmethod
    def append_variation_to_device_type(self, term_id: str, variation: str) -> None:
        """Append if absent and bump the owning system's last_updated."""

    @abstractmethod
    def update_device_type_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        """Full overwrite of standard and variations."""

    @abstractmethod
    def update_device_type_term_variations(self, term_id: str, variations: list[str]) -> None:
        """Overwrite variations only."""

    @abstractmethod
    def delete_device_type_term(self, term_id: str) -> None:
        pass

    # ===================
    # REFERENCE TERMS
    # ===================

    @abstractmethod
    def upsert_reference_term(self, field: ReferenceField, standard: str, variation: Optional[str] = None) -> str:
        """Create the term or append the variation. Rejects anything but Manufacturer/Model."""

    @abstractmethod
    def append_variation_to_reference(self, term_id: str, variation: str) -> None:
        pass

    @abstractmethod
    def update_reference_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        pass

    @abstractmethod
    def delete_reference_term(self, term_id: str) -> None:
        pass

    # ===================
    # SYSTEMS
    # ===================

    @abstractmethod
    def create_nomenclature_system(
        self,
        name: str,
        description: str = "",
        system_id: Optional[str] = None
    ) -> NomenclatureSystem:
        pass

    @abstractmethod
    def update_nomenclature_system(
        self,
        system_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> NomenclatureSystem:
        pass

    @abstractmethod
    def delete_nomenclature_system(self, system_id: str) -> None:
        """Delete the system's device-type terms, then the system."""

    @abstractmethod
    def update_system_timestamp(self, system_id: str) -> None:
        pass

    @abstractmethod
    def seed_default_data(self) -> bool:
        """Write the starter catalog into an empty store. Returns True if it seeded."""


# ===================
# HELPERS
# ===================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def slugify_system_id(name: str) -> str:
    """'GMDN 2024' -> 'gmdn-2024'"""
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return slug or "system"


def clean_variations(standard: str, variations: list[str]) -> list[str]:
    """Unique, trimmed variations without the standard itself."""
    return CanonicalTerm(id="_", standard=standard, variations=variations).variations


def require_standard(standard: Optional[str]) -> str:
    standard = (standard or "").strip()
    if not standard:
        raise EmptyTermNameError()
    return standard


def _term_from_row(row: dict) -> CanonicalTerm:
    return CanonicalTerm(
        id=str(row["id"]),
        standard=row["standard"],
        variations=row.get("variations") or [],
    )


def _system_from_row(row: dict, terms: list[CanonicalTerm]) -> NomenclatureSystem:
    return NomenclatureSystem(
        id=str(row["id"]),
        name=row["name"],
        description=row.get("description") or "",
        last_updated=row.get("last_updated"),
        device_type_terms=terms,
    )


class SupabaseCatalogStore(CatalogStore):
    """
    Catalog store backed by Supabase tables.

    Each public method is one logical operation; failures are logged and
    raised as DatabaseError with the underlying message.
    """

    mode = "supabase"
    persistent = True

    def __init__(self, client=None):
        self.db = client or get_supabase_client()
        self.systems_table = "nomenclature_systems"
        self.device_types_table = "device_type_terms"
        self.references_table = "reference_terms"

    # ===================
    # READ OPERATIONS
    # ===================

    def load_catalog(self) -> Catalog:
        """
        Load the full catalog.

        Systems come back ordered by name, reference terms by standard.

        Returns:
            Catalog snapshot

        Raises:
            DatabaseError: If any of the three reads fails
        """
        logger.info("loading_catalog")

        try:
            systems = (
                self.db.table(self.systems_table)
                .select("*")
                .order("name")
                .execute()
            ).data or []

            device_types = (
                self.db.table(self.device_types_table)
                .select("*")
                .order("standard")
                .execute()
            ).data or []

            references = (
                self.db.table(self.references_table)
                .select("*")
                .order("standard")
                .execute()
            ).data or []

        except Exception as e:
            logger.error("load_catalog_failed", error=str(e), error_type=type(e).__name__)
            raise DatabaseError("select", str(e))

        terms_by_system: dict[str, list[CanonicalTerm]] = {}
        for row in device_types:
            terms_by_system.setdefault(str(row["system_id"]), []).append(_term_from_row(row))

        reference_db = {ReferenceField.MANUFACTURER: [], ReferenceField.MODEL: []}
        for row in references:
            try:
                field = ReferenceField(row.get("field"))
            except ValueError:
                logger.warning("reference_term_bad_field", term_id=row.get("id"), field=row.get("field"))
                continue
            reference_db[field].append(_term_from_row(row))

        catalog = Catalog(
            nomenclature_systems=[
                _system_from_row(row, terms_by_system.get(str(row["id"]), []))
                for row in systems
            ],
            reference_db=reference_db,
        )

        logger.info(
            "catalog_loaded",
            systems=len(catalog.nomenclature_systems),
            device_type_terms=len(device_types),
            manufacturers=len(reference_db[ReferenceField.MANUFACTURER]),
            models=len(reference_db[ReferenceField.MODEL]),
        )

        return catalog

    def can_write(self) -> StoreStatus:
        """Probe the store with a cheap read."""
        try:
            self.db.table(self.systems_table).select("id").limit(1).execute()
            return StoreStatus(mode=self.mode, persistent=True, can_write=True)
        except Exception as e:
            logger.error("store_check_failed", error=str(e), error_type=type(e).__name__)
            code = getattr(e, "code", None)
            return StoreStatus(
                mode=self.mode,
                persistent=True,
                can_write=False,
                error=str(e),
                code=str(code) if code is not None else None,
            )

    # ===================
    # DEVICE TYPE TERMS
    # ===================

    def upsert_device_type_term(self, system_id: str, standard: str, variation: Optional[str] = None) -> str:
        """
        Create a Device Type term or add a variation to it.

        Idempotent by (system_id, standard).

        Returns:
            Term id

        Raises:
            EmptyTermNameError: If standard is blank
            SystemNotFoundError: If the system doesn't exist
            DatabaseError: If the store rejects a read or write
        """
        standard = require_standard(standard)
        variation = (variation or "").strip() or None

        logger.info(
            "upserting_device_type_term",
            system_id=system_id,
            standard=standard,
            variation=variation
        )

        self._get_system_row(system_id)

        try:
            existing = (
                self.db.table(self.device_types_table)
                .select("*")
                .eq("system_id", system_id)
                .eq("standard", standard)
                .execute()
            ).data

            if existing:
                row = existing[0]
                term_id = str(row["id"])
                variations = row.get("variations") or []
                if variation and variation != standard and variation not in variations:
                    self.db.table(self.device_types_table).update(
                        {"variations": [*variations, variation]}
                    ).eq("id", term_id).execute()
                    self._touch_system(system_id)
                    logger.info("device_type_variation_added", term_id=term_id, variation=variation)
                return term_id

            result = (
                self.db.table(self.device_types_table)
                .insert({
                    "system_id": system_id,
                    "standard": standard,
                    "variations": [variation] if variation and variation != standard else [],
                })
                .execute()
            )
            term_id = str(result.data[0]["id"])

        except AppError:
            raise
        except Exception as e:
            logger.error(
                "upsert_device_type_term_failed",
                system_id=system_id,
                standard=standard,
                error=str(e)
            )
            raise DatabaseError("upsert", str(e), details={"table": self.device_types_table})

        logger.info("device_type_term_created", term_id=term_id, system_id=system_id)

        # Term is already stored; a stale timestamp is not worth failing over
        self._touch_system(system_id)

        return term_id

    def append_variation_to_device_type(self, term_id: str, variation: str) -> None:
        """
        Append a variation to a Device Type term if absent.

        Raises:
            TermNotFoundError: If the term vanished
            DatabaseError: If the update fails
        """
        row = self._get_term_row(self.device_types_table, term_id)
        variation = (variation or "").strip()
        variations = row.get("variations") or []

        if not variation or variation == row["standard"] or variation in variations:
            logger.debug("device_type_variation_exists", term_id=term_id, variation=variation)
            return

        try:
            self.db.table(self.device_types_table).update(
                {"variations": [*variations, variation]}
            ).eq("id", term_id).execute()
        except Exception as e:
            logger.error("append_device_type_variation_failed", term_id=term_id, error=str(e))
            raise DatabaseError("update", str(e), details={"table": self.device_types_table})

        logger.info("device_type_variation_added", term_id=term_id, variation=variation)
        self._touch_system(str(row["system_id"]))

    def update_device_type_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        standard = require_standard(standard)
        row = self._get_term_row(self.device_types_table, term_id)
        self._update_row(
            self.device_types_table,
            term_id,
            {"standard": standard, "variations": clean_variations(standard, variations)},
        )
        self._touch_system(str(row["system_id"]))

    def update_device_type_term_variations(self, term_id: str, variations: list[str]) -> None:
        row = self._get_term_row(self.device_types_table, term_id)
        self._update_row(
            self.device_types_table,
            term_id,
            {"variations": clean_variations(row["standard"], variations)},
        )

    def delete_device_type_term(self, term_id: str) -> None:
        row = self._get_term_row(self.device_types_table, term_id)
        self._delete_rows(self.device_types_table, "id", term_id)
        logger.info("device_type_term_deleted", term_id=term_id)
        self._touch_system(str(row["system_id"]))

    # ===================
    # REFERENCE TERMS
    # ===================

    def upsert_reference_term(self, field: ReferenceField, standard: str, variation: Optional[str] = None) -> str:
        """
        Create a Manufacturer/Model term or add a variation to it.

        Raises:
            InvalidReferenceFieldError: If field is Device Type or unknown
            EmptyTermNameError: If standard is blank
            DatabaseError: If the store rejects a read or write
        """
        field = ReferenceField.parse(field)
        standard = require_standard(standard)
        variation = (variation or "").strip() or None

        logger.info(
            "upserting_reference_term",
            field=field.value,
            standard=standard,
            variation=variation
        )

        try:
            existing = (
                self.db.table(self.references_table)
                .select("*")
                .eq("field", field.value)
                .eq("standard", standard)
                .execute()
            ).data

            if existing:
                row = existing[0]
                term_id = str(row["id"])
                variations = row.get("variations") or []
                if variation and variation != standard and variation not in variations:
                    self.db.table(self.references_table).update(
                        {"variations": [*variations, variation]}
                    ).eq("id", term_id).execute()
                    logger.info("reference_variation_added", term_id=term_id, variation=variation)
                return term_id

            result = (
                self.db.table(self.references_table)
                .insert({
                    "field": field.value,
                    "standard": standard,
                    "variations": [variation] if variation and variation != standard else [],
                })
                .execute()
            )
            term_id = str(result.data[0]["id"])

        except Exception as e:
            logger.error(
                "upsert_reference_term_failed",
                field=field.value,
                standard=standard,
                error=str(e)
            )
            raise DatabaseError("upsert", str(e), details={"table": self.references_table})

        logger.info("reference_term_created", term_id=term_id, field=field.value)
        return term_id

    def append_variation_to_reference(self, term_id: str, variation: str) -> None:
        row = self._get_term_row(self.references_table, term_id)
        variation = (variation or "").strip()
        variations = row.get("variations") or []

        if not variation or variation == row["standard"] or variation in variations:
            logger.debug("reference_variation_exists", term_id=term_id, variation=variation)
            return

        self._update_row(self.references_table, term_id, {"variations": [*variations, variation]})
        logger.info("reference_variation_added", term_id=term_id, variation=variation)

    def update_reference_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        standard = require_standard(standard)
        self._get_term_row(self.references_table, term_id)
        self._update_row(
            self.references_table,
            term_id,
            {"standard": standard, "variations": clean_variations(standard, variations)},
        )

    def delete_reference_term(self, term_id: str) -> None:
        self._get_term_row(self.references_table, term_id)
        self._delete_rows(self.references_table, "id", term_id)
        logger.info("reference_term_deleted", term_id=term_id)

    # ===================
    # SYSTEMS
    # ===================

    def create_nomenclature_system(
        self,
        name: str,
        description: str = "",
        system_id: Optional[str] = None
    ) -> NomenclatureSystem:
        """
        Create an empty nomenclature system.

        Raises:
            SystemExistsError: If the id is already taken
            DatabaseError: If the insert fails
        """
        system_id = system_id or slugify_system_id(name)
        logger.info("creating_system", system_id=system_id, name=name)

        try:
            existing = (
                self.db.table(self.systems_table)
                .select("id")
                .eq("id", system_id)
                .execute()
            ).data
        except Exception as e:
            logger.error("create_system_lookup_failed", system_id=system_id, error=str(e))
            raise DatabaseError("select", str(e), details={"table": self.systems_table})

        if existing:
            raise SystemExistsError(system_id)

        try:
            result = (
                self.db.table(self.systems_table)
                .insert({
                    "id": system_id,
                    "name": name,
                    "description": description or "",
                    "last_updated": utc_now().isoformat(),
                })
                .execute()
            )
        except Exception as e:
            logger.error("create_system_failed", system_id=system_id, error=str(e))
            raise DatabaseError("insert", str(e), details={"table": self.systems_table})

        logger.info("system_created", system_id=system_id)
        return _system_from_row(result.data[0], [])

    def update_nomenclature_system(
        self,
        system_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> NomenclatureSystem:
        row = self._get_system_row(system_id)

        update_data = {"last_updated": utc_now().isoformat()}
        if name is not None:
            update_data["name"] = name
        if description is not None:
            update_data["description"] = description

        self._update_row(self.systems_table, system_id, update_data)
        logger.info("system_updated", system_id=system_id, fields=list(update_data.keys()))

        return _system_from_row({**row, **update_data}, [])

    def delete_nomenclature_system(self, system_id: str) -> None:
        self._get_system_row(system_id)
        self._delete_rows(self.device_types_table, "system_id", system_id)
        self._delete_rows(self.systems_table, "id", system_id)
        logger.info("system_deleted", system_id=system_id)

    def update_system_timestamp(self, system_id: str) -> None:
        self._update_row(self.systems_table, system_id, {"last_updated": utc_now().isoformat()})

    def seed_default_data(self) -> bool:
        """
        Populate an empty store with the starter catalog.

        Returns:
            True if data was written, False if any system already existed
        """
        try:
            existing = (
                self.db.table(self.systems_table)
                .select("id")
                .limit(1)
                .execute()
            ).data
        except Exception as e:
            logger.error("seed_check_failed", error=str(e))
            raise DatabaseError("select", str(e), details={"table": self.systems_table})

        if existing:
            logger.debug("seed_skipped", reason="systems_exist")
            return False

        now = utc_now().isoformat()
        try:
            for system in DEFAULT_SYSTEMS:
                self.db.table(self.systems_table).insert({**system, "last_updated": now}).execute()
            for term in DEFAULT_DEVICE_TYPE_TERMS:
                self.db.table(self.device_types_table).insert(dict(term)).execute()
            for term in DEFAULT_REFERENCE_TERMS:
                self.db.table(self.references_table).insert(dict(term)).execute()
        except Exception as e:
            logger.error("seed_default_data_failed", error=str(e))
            raise DatabaseError("insert", str(e), details={"operation": "seed"})

        logger.info(
            "default_data_seeded",
            systems=len(DEFAULT_SYSTEMS),
            device_type_terms=len(DEFAULT_DEVICE_TYPE_TERMS),
            reference_terms=len(DEFAULT_REFERENCE_TERMS),
        )
        return True

    # ===================
    # ROW HELPERS
    # ===================

    def _get_term_row(self, table: str, term_id: str) -> dict:
        try:
            rows = self.db.table(table).select("*").eq("id", term_id).execute().data
        except Exception as e:
            logger.error("get_term_failed", table=table, term_id=term_id, error=str(e))
            raise DatabaseError("select", str(e), details={"table": table})
        if not rows:
            raise TermNotFoundError(term_id)
        return rows[0]

    def _get_system_row(self, system_id: str) -> dict:
        try:
            rows = self.db.table(self.systems_table).select("*").eq("id", system_id).execute().data
        except Exception as e:
            logger.error("get_system_failed", system_id=system_id, error=str(e))
            raise DatabaseError("select", str(e), details={"table": self.systems_table})
        if not rows:
            raise SystemNotFoundError(system_id)
        return rows[0]

    def _update_row(self, table: str, row_id: str, data: dict) -> None:
        try:
            self.db.table(table).update(data).eq("id", row_id).execute()
        except Exception as e:
            logger.error("update_row_failed", table=table, row_id=row_id, error=str(e))
            raise DatabaseError("update", str(e), details={"table": table})

    def _delete_rows(self, table: str, column: str, value: str) -> None:
        try:
            self.db.table(table).delete().eq(column, value).execute()
        except Exception as e:
            logger.error("delete_rows_failed", table=table, column=column, error=str(e))
            raise DatabaseError("delete", str(e), details={"table": table})

    def _touch_system(self, system_id: str) -> None:
        """Bump last_updated; failure is logged, not raised."""
        try:
            self.db.table(self.systems_table).update(
                {"last_updated": utc_now().isoformat()}
            ).eq("id", system_id).execute()
        except Exception as e:
            logger.warning("system_timestamp_update_failed", system_id=system_id, error=str(e))
