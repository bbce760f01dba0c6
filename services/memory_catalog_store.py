"""
In-process catalog store.

Used when Supabase credentials are missing (degraded mode) and in tests.
Holds the seed catalog in memory; nothing survives a restart.
"""

from typing import Optional
from uuid import uuid4
import structlog

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
from services.catalog_store import (
    CatalogStore,
    clean_variations,
    require_standard,
    slugify_system_id,
    utc_now,
)
from exceptions import SystemExistsError, TermNotFoundError

logger = structlog.get_logger(__name__)


class InMemoryCatalogStore(CatalogStore):
    """
    Catalog store over a Catalog object in memory.

    load_catalog() hands out deep copies so callers never share state
    with the store.
    """

    mode = "memory"
    persistent = False

    def __init__(self, catalog: Optional[Catalog] = None, seed: bool = True):
        self._catalog = catalog.model_copy(deep=True) if catalog else Catalog()
        if catalog is None and seed:
            self.seed_default_data()

    # ===================
    # READ
    # ===================

    def load_catalog(self) -> Catalog:
        return self._catalog.model_copy(deep=True)

    def can_write(self) -> StoreStatus:
        return StoreStatus(
            mode=self.mode,
            persistent=False,
            can_write=True,
            error="Catalog changes are kept in memory only",
        )

    # ===================
    # DEVICE TYPE TERMS
    # ===================

    def upsert_device_type_term(self, system_id: str, standard: str, variation: Optional[str] = None) -> str:
        standard = require_standard(standard)
        system = self._system(system_id)

        for term in system.device_type_terms:
            if term.standard == standard:
                if variation and term.add_variation(variation):
                    system.last_updated = utc_now()
                return term.id

        term = CanonicalTerm(id=str(uuid4()), standard=standard, variations=clean_variations(standard, [variation] if variation else []))
        system.device_type_terms.append(term)
        system.last_updated = utc_now()
        logger.info("device_type_term_created", term_id=term.id, system_id=system_id, persistent=False)
        return term.id

    def append_variation_to_device_type(self, term_id: str, variation: str) -> None:
        system, term = self._device_type(term_id)
        if term.add_variation(variation):
            system.last_updated = utc_now()
            logger.info("device_type_variation_added", term_id=term_id, variation=variation, persistent=False)

    def update_device_type_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        standard = require_standard(standard)
        system, term = self._device_type(term_id)
        term.standard = standard
        term.variations = clean_variations(standard, variations)
        system.last_updated = utc_now()

    def update_device_type_term_variations(self, term_id: str, variations: list[str]) -> None:
        _, term = self._device_type(term_id)
        term.variations = clean_variations(term.standard, variations)

    def delete_device_type_term(self, term_id: str) -> None:
        system, term = self._device_type(term_id)
        system.device_type_terms = [t for t in system.device_type_terms if t.id != term_id]
        system.last_updated = utc_now()

    # ===================
    # REFERENCE TERMS
    # ===================

    def upsert_reference_term(self, field: ReferenceField, standard: str, variation: Optional[str] = None) -> str:
        field = ReferenceField.parse(field)
        standard = require_standard(standard)
        terms = self._catalog.reference_db.setdefault(field, [])

        for term in terms:
            if term.standard == standard:
                if variation:
                    term.add_variation(variation)
                return term.id

        term = CanonicalTerm(id=str(uuid4()), standard=standard, variations=clean_variations(standard, [variation] if variation else []))
        terms.append(term)
        logger.info("reference_term_created", term_id=term.id, field=field.value, persistent=False)
        return term.id

    def append_variation_to_reference(self, term_id: str, variation: str) -> None:
        _, term = self._reference(term_id)
        if term.add_variation(variation):
            logger.info("reference_variation_added", term_id=term_id, variation=variation, persistent=False)

    def update_reference_term(self, term_id: str, standard: str, variations: list[str]) -> None:
        standard = require_standard(standard)
        _, term = self._reference(term_id)
        term.standard = standard
        term.variations = clean_variations(standard, variations)

    def delete_reference_term(self, term_id: str) -> None:
        field, _ = self._reference(term_id)
        self._catalog.reference_db[field] = [
            t for t in self._catalog.reference_db[field] if t.id != term_id
        ]

    # ===================
    # SYSTEMS
    # ===================

    def create_nomenclature_system(
        self,
        name: str,
        description: str = "",
        system_id: Optional[str] = None
    ) -> NomenclatureSystem:
        system_id = system_id or slugify_system_id(name)
        if any(s.id == system_id for s in self._catalog.nomenclature_systems):
            raise SystemExistsError(system_id)

        system = NomenclatureSystem(
            id=system_id,
            name=name,
            description=description or "",
            last_updated=utc_now(),
        )
        self._catalog.nomenclature_systems.append(system)
        self._catalog.nomenclature_systems.sort(key=lambda s: s.name)
        return system.model_copy(deep=True)

    def update_nomenclature_system(
        self,
        system_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> NomenclatureSystem:
        system = self._system(system_id)
        if name is not None:
            system.name = name
        if description is not None:
            system.description = description
        system.last_updated = utc_now()
        return system.model_copy(deep=True)

    def delete_nomenclature_system(self, system_id: str) -> None:
        self._system(system_id)
        self._catalog.nomenclature_systems = [
            s for s in self._catalog.nomenclature_systems if s.id != system_id
        ]

    def update_system_timestamp(self, system_id: str) -> None:
        self._system(system_id).last_updated = utc_now()

    def seed_default_data(self) -> bool:
        if self._catalog.nomenclature_systems:
            return False

        now = utc_now()
        for system in DEFAULT_SYSTEMS:
            self._catalog.nomenclature_systems.append(
                NomenclatureSystem(**system, last_updated=now)
            )
        self._catalog.nomenclature_systems.sort(key=lambda s: s.name)

        for term in DEFAULT_DEVICE_TYPE_TERMS:
            self._system(term["system_id"]).device_type_terms.append(
                CanonicalTerm(id=str(uuid4()), standard=term["standard"], variations=term["variations"])
            )
        for term in DEFAULT_REFERENCE_TERMS:
            self._catalog.reference_db.setdefault(ReferenceField(term["field"]), []).append(
                CanonicalTerm(id=str(uuid4()), standard=term["standard"], variations=term["variations"])
            )

        logger.info("default_data_seeded", persistent=False)
        return True

    # ===================
    # LOOKUPS
    # ===================

    def _system(self, system_id: str) -> NomenclatureSystem:
        return self._catalog.get_system(system_id)

    def _device_type(self, term_id: str) -> tuple[NomenclatureSystem, CanonicalTerm]:
        for system in self._catalog.nomenclature_systems:
            for term in system.device_type_terms:
                if term.id == term_id:
                    return system, term
        raise TermNotFoundError(term_id)

    def _reference(self, term_id: str) -> tuple[ReferenceField, CanonicalTerm]:
        for field, terms in self._catalog.reference_db.items():
            for term in terms:
                if term.id == term_id:
                    return field, term
        raise TermNotFoundError(term_id)
