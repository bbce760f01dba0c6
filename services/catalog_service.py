"""
Catalog admin service.

CRUD for nomenclature systems and terms, plus merging duplicate terms.
Also owns the process-wide CatalogStore: Supabase when configured,
otherwise the in-memory seed catalog (degraded mode).
"""

from dataclasses import dataclass
from typing import Callable, Optional
import structlog

from models.catalog import (
    Catalog,
    CanonicalTerm,
    DeviceTypeTermCreate,
    FieldKind,
    MergeRequest,
    NomenclatureSystem,
    ReferenceField,
    ReferenceTermCreate,
    StoreStatus,
    SystemCreate,
    SystemUpdate,
    TermUpdate,
)
from services.catalog_store import CatalogStore, SupabaseCatalogStore, clean_variations, require_standard
from services.memory_catalog_store import InMemoryCatalogStore
from utils.text_utils import normalize
from exceptions import (
    AppError,
    ConfigurationError,
    InvalidMergeError,
    MergeIncompleteError,
    OperationInProgressError,
    SystemNotFoundError,
    TermExistsError,
    TermNotFoundError,
)

logger = structlog.get_logger(__name__)


@dataclass
class UnfinishedMerge:
    """Steps already applied by a merge that failed part way."""
    completed: list[str]
    result: CanonicalTerm


def merge_variations(source: CanonicalTerm, target: CanonicalTerm) -> list[str]:
    """
    Variations of source after absorbing target.

    Keeps source's own variations first, then target's standard, then
    target's variations. A value equal to source's standard is dropped.
    """
    return clean_variations(
        source.standard,
        [*source.variations, target.standard, *target.variations],
    )


class CatalogService:
    """
    Catalog admin operations.

    Holds a busy flag so only one merge runs at a time.
    """

    def __init__(self, store: Optional[CatalogStore] = None):
        self.store = store or get_catalog_store()
        self._merge_pending = False
        self._unfinished_merges: dict[tuple, UnfinishedMerge] = {}

    # ===================
    # READ OPERATIONS
    # ===================

    def get_catalog(self) -> Catalog:
        return self.store.load_catalog()

    def status(self) -> StoreStatus:
        return self.store.can_write()

    def seed(self) -> bool:
        return self.store.seed_default_data()

    # ===================
    # SYSTEMS
    # ===================

    def create_system(self, data: SystemCreate) -> NomenclatureSystem:
        return self.store.create_nomenclature_system(data.name, data.description or "", system_id=data.id)

    def update_system(self, system_id: str, data: SystemUpdate) -> NomenclatureSystem:
        return self.store.update_nomenclature_system(system_id, name=data.name, description=data.description)

    def delete_system(self, system_id: str) -> None:
        logger.info("deleting_system", system_id=system_id)
        self.store.delete_nomenclature_system(system_id)

    # ===================
    # TERMS
    # ===================

    def create_device_type_term(self, data: DeviceTypeTermCreate) -> CanonicalTerm:
        """
        Add a Device Type term to a system.

        Raises:
            EmptyTermNameError: If the standard is blank
            SystemNotFoundError: If the system doesn't exist
            TermExistsError: If the system already has this standard
        """
        standard = require_standard(data.standard)
        terms = self.get_catalog().terms_for(FieldKind.DEVICE_TYPE, data.system_id)
        self._ensure_unique(standard, terms)

        term_id = self.store.upsert_device_type_term(data.system_id, standard)
        variations = clean_variations(standard, data.variations)
        if variations:
            self.store.update_device_type_term(term_id, standard, variations)

        logger.info("device_type_term_added", term_id=term_id, system_id=data.system_id)
        return CanonicalTerm(id=term_id, standard=standard, variations=variations)

    def update_device_type_term(self, term_id: str, data: TermUpdate) -> None:
        self.store.update_device_type_term(term_id, data.standard, data.variations)

    def delete_device_type_term(self, term_id: str) -> None:
        self.store.delete_device_type_term(term_id)

    def create_reference_term(self, data: ReferenceTermCreate) -> CanonicalTerm:
        """
        Add a Manufacturer or Model term.

        Raises:
            EmptyTermNameError: If the standard is blank
            TermExistsError: If the field already has this standard
        """
        field = ReferenceField.parse(data.field)
        standard = require_standard(data.standard)
        self._ensure_unique(standard, self.get_catalog().terms_for(FieldKind(field.value)))

        term_id = self.store.upsert_reference_term(field, standard)
        variations = clean_variations(standard, data.variations)
        if variations:
            self.store.update_reference_term(term_id, standard, variations)

        logger.info("reference_term_added", term_id=term_id, field=field.value)
        return CanonicalTerm(id=term_id, standard=standard, variations=variations)

    def update_reference_term(self, term_id: str, data: TermUpdate) -> None:
        self.store.update_reference_term(term_id, data.standard, data.variations)

    def delete_reference_term(self, term_id: str) -> None:
        self.store.delete_reference_term(term_id)

    # ===================
    # MERGE
    # ===================

    def merge_terms(self, data: MergeRequest) -> CanonicalTerm:
        """
        Fold the target term into the source term.

        Steps, each a separate store write:
            1. update_source  source.variations ∪ {target.standard} ∪ target.variations
            2. delete_target
            3. touch_system   (Device Type only)

        A failure after step 1 raises MergeIncompleteError naming the steps
        already applied. Repeating the same merge finishes it: step 1 is a
        set union, and once the target is deleted the remaining steps are
        resumed from the recorded progress.

        Raises:
            InvalidMergeError: If target is unset or equals source
            OperationInProgressError: If another merge is running
            TermNotFoundError: If either term is missing
            MergeIncompleteError: If a later step failed
        """
        if not data.target_id:
            raise InvalidMergeError("Select a term to merge")
        if data.target_id == data.source_id:
            raise InvalidMergeError(
                "A term cannot be merged with itself",
                details={"source_id": data.source_id}
            )
        if self._merge_pending:
            raise OperationInProgressError("merge")

        self._merge_pending = True
        try:
            return self._run_merge(data)
        finally:
            self._merge_pending = False

    def _run_merge(self, data: MergeRequest) -> CanonicalTerm:
        field = FieldKind(data.field)
        is_device_type = field == FieldKind.DEVICE_TYPE
        if is_device_type and not data.system_id:
            raise SystemNotFoundError("None")
        if not is_device_type:
            ReferenceField.parse(field)

        key = (field, data.source_id, data.target_id, data.system_id)
        unfinished = self._unfinished_merges.get(key)

        catalog = self.get_catalog()
        source = catalog.find_term(field, data.source_id, data.system_id)
        if source is None:
            raise TermNotFoundError(data.source_id)
        target = catalog.find_term(field, data.target_id, data.system_id)

        if target is None:
            # Target already deleted by an earlier attempt: finish what is left
            if unfinished is None or "delete_target" not in unfinished.completed:
                raise TermNotFoundError(data.target_id)
            result = unfinished.result
            done = list(unfinished.completed)
            logger.info("resuming_merge", source_id=source.id, target_id=data.target_id, completed=done)
        else:
            result = CanonicalTerm(id=source.id, standard=source.standard, variations=merge_variations(source, target))
            done = []
            logger.info(
                "merging_terms",
                field=field.value,
                source_id=source.id,
                target_id=target.id,
                variations=len(result.variations)
            )

        steps: list[tuple[str, Callable[[], None]]]
        if is_device_type:
            steps = [
                ("update_source", lambda: self.store.update_device_type_term_variations(result.id, result.variations)),
                ("delete_target", lambda: self.store.delete_device_type_term(data.target_id)),
                ("touch_system", lambda: self.store.update_system_timestamp(data.system_id)),
            ]
        else:
            steps = [
                ("update_source", lambda: self.store.update_reference_term(result.id, result.standard, result.variations)),
                ("delete_target", lambda: self.store.delete_reference_term(data.target_id)),
            ]

        completed = list(done)
        for name, step in steps:
            if name in done:
                continue
            try:
                step()
            except AppError as e:
                logger.error(
                    "merge_step_failed",
                    step=name,
                    completed=completed,
                    source_id=source.id,
                    target_id=data.target_id,
                    error=e.message
                )
                if not completed:
                    raise
                self._unfinished_merges[key] = UnfinishedMerge(completed=completed, result=result)
                raise MergeIncompleteError(name, completed, e.message) from e
            completed.append(name)

        self._unfinished_merges.pop(key, None)
        logger.info("terms_merged", source_id=source.id, target_id=data.target_id)
        return result

    @staticmethod
    def _ensure_unique(standard: str, terms: list[CanonicalTerm]) -> None:
        wanted = normalize(standard)
        for term in terms:
            if normalize(term.standard) == wanted:
                raise TermExistsError(standard)


# ===================
# STORE FACTORY
# ===================

_catalog_store: Optional[CatalogStore] = None


def get_catalog_store() -> CatalogStore:
    """
    Get or create the process-wide catalog store.

    Falls back to InMemoryCatalogStore when Supabase is not configured
    or unreachable; the store's `persistent` flag reports which one is in use.
    """
    global _catalog_store
    if _catalog_store is None:
        try:
            _catalog_store = SupabaseCatalogStore()
        except ConfigurationError as e:
            logger.warning("catalog_store_degraded", reason=e.message, mode="memory")
            _catalog_store = InMemoryCatalogStore()
        except Exception as e:
            logger.error("catalog_store_unavailable", error=str(e), error_type=type(e).__name__, mode="memory")
            _catalog_store = InMemoryCatalogStore()
    return _catalog_store


def set_catalog_store(store: Optional[CatalogStore]) -> None:
    """Replace the process-wide store (None resets it)."""
    global _catalog_store, _catalog_service
    _catalog_store = store
    _catalog_service = None


# Singleton instance for convenience
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create CatalogService instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
