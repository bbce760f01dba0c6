"""
Review resolver: walks the review queue one operator decision at a time.

Item lifecycle:
    unprocessed → accepted | added | skipped | auto-matched

Accept and create write to the catalog store first; only when the write
succeeds is the item marked and the cursor moved, so a failed write
leaves the operator on the same item to retry. A decision on one value
is copied to every later unprocessed item with the same (field, value).
When the cursor passes the last item the catalog is reloaded from the
store and the import is standardized.
"""

from typing import Optional
from uuid import uuid4
import structlog

from config import settings
from models.catalog import Catalog, CanonicalTerm, FieldKind, ReferenceField
from models.review import (
    ImportRow,
    ReviewAction,
    ReviewItem,
    ReviewSessionResponse,
    StandardizedRow,
)
from services.analysis_service import analyze
from services.catalog_store import CatalogStore, clean_variations
from services.matching_service import search_terms
from services.standardization_service import standardize
from exceptions import (
    AppError,
    EmptyTermNameError,
    LowConfidenceMatchError,
    MatchNotFoundError,
    OperationInProgressError,
    ReviewCompleteError,
    StaleReviewItemError,
    SystemNotFoundError,
    TermNotFoundError,
)

logger = structlog.get_logger(__name__)

AUTO_MATCH_FROM_ACCEPTED = "Auto-matched from accepted suggestion"
AUTO_MATCH_FROM_ADDED = "Auto-matched from newly added term"


class ReviewSession:
    """
    One operator's pass over one import.

    Holds the rows, the mapping, a catalog snapshot that is kept in step
    with this session's writes, and the review queue with its cursor.
    """

    def __init__(
        self,
        rows: list[ImportRow],
        mapping: dict,
        catalog: Catalog,
        store: CatalogStore,
        queue: Optional[list[ReviewItem]] = None,
        system_id: Optional[str] = None,
        session_id: Optional[str] = None,
        low_confidence_threshold: float = 0.4
    ):
        self.session_id = session_id or str(uuid4())
        self.rows = rows
        self.mapping = mapping
        self.catalog = catalog
        self.store = store
        self.queue = queue or []
        self.system_id = system_id
        self.low_confidence_threshold = low_confidence_threshold
        self.current_index = 0
        self.results: Optional[list[StandardizedRow]] = None
        self.warnings: list[str] = []
        self._create_pending = False

    # ===================
    # STATE
    # ===================

    @property
    def complete(self) -> bool:
        return self.current_index >= len(self.queue)

    @property
    def current_item(self) -> Optional[ReviewItem]:
        return None if self.complete else self.queue[self.current_index]

    @property
    def persistent(self) -> bool:
        return self.store.persistent

    def is_low_confidence(self, score: float) -> bool:
        return score <= self.low_confidence_threshold

    # ===================
    # TRANSITIONS
    # ===================

    def accept_suggestion(
        self,
        match_index: int = 0,
        confirm_low_confidence: bool = False,
        expected_index: Optional[int] = None
    ) -> ReviewItem:
        """
        Accept one of the current item's suggested terms.

        The original value is stored as a variation of the term.

        Args:
            match_index: Position in the item's potential_matches
            confirm_low_confidence: Required for suggestions at or below the threshold
            expected_index: Queue position the client is looking at

        Raises:
            StaleReviewItemError: If expected_index is not the current item
            ReviewCompleteError: If the queue is finished
            MatchNotFoundError: If match_index is out of range
            LowConfidenceMatchError: If a low-confidence pick was not confirmed
            AppError: Store failure; the item stays current
        """
        item = self._require_current(expected_index)

        if match_index < 0 or match_index >= len(item.potential_matches):
            raise MatchNotFoundError(match_index)

        match = item.potential_matches[match_index]
        if self.is_low_confidence(match.score) and not confirm_low_confidence:
            raise LowConfidenceMatchError(match.score, self.low_confidence_threshold)

        return self._accept(item, match.term)

    def accept_catalog_term(self, term_id: str, expected_index: Optional[int] = None) -> ReviewItem:
        """
        Accept a term the operator found through manual search.

        Raises:
            StaleReviewItemError: If expected_index is not the current item
            ReviewCompleteError: If the queue is finished
            TermNotFoundError: If the term isn't in the item's field
            AppError: Store failure; the item stays current
        """
        item = self._require_current(expected_index)
        term = self.catalog.find_term(item.field, term_id, self.system_id)
        if term is None:
            raise TermNotFoundError(term_id)
        return self._accept(item, term)

    def create_new_term(self, standard: str, expected_index: Optional[int] = None) -> ReviewItem:
        """
        Mint a new canonical term with the current value as its first variation.

        Only one create may be pending per session.

        Raises:
            StaleReviewItemError: If expected_index is not the current item
            ReviewCompleteError: If the queue is finished
            EmptyTermNameError: If the name is blank
            OperationInProgressError: If another create is still pending
            AppError: Store failure; the item stays current
        """
        item = self._require_current(expected_index)

        standard = (standard or "").strip()
        if not standard:
            raise EmptyTermNameError()

        if self._create_pending:
            raise OperationInProgressError("term creation")

        logger.info(
            "creating_term_from_review",
            session_id=self.session_id,
            field=item.field.value,
            standard=standard,
            original_value=item.original_value
        )

        self._create_pending = True
        try:
            term_id = self._upsert_term(item.field, standard, item.original_value)
        finally:
            self._create_pending = False

        term = self._remember_term(item.field, term_id, standard, item.original_value)
        item.resolve(ReviewAction.ADDED, term)
        propagated = self._propagate(item, term, AUTO_MATCH_FROM_ADDED)

        logger.info(
            "review_item_added",
            session_id=self.session_id,
            index=self.current_index,
            term_id=term_id,
            propagated=propagated
        )

        self._advance()
        return item

    def skip(self, expected_index: Optional[int] = None) -> ReviewItem:
        """Leave the current value as is. No catalog change."""
        item = self._require_current(expected_index)
        item.resolve(ReviewAction.SKIPPED)

        logger.info(
            "review_item_skipped",
            session_id=self.session_id,
            index=self.current_index,
            field=item.field.value
        )

        self._advance()
        return item

    # ===================
    # SEARCH / RESULTS
    # ===================

    def search_catalog(self, query: Optional[str], limit: int = 50) -> list[CanonicalTerm]:
        """Search the current item's term list."""
        item = self._require_current()
        return search_terms(query, self.catalog.terms_for(item.field, self.system_id), limit=limit)

    def finalize(self, reload: bool = True) -> list[StandardizedRow]:
        """
        Standardize the import.

        With reload, the catalog is re-read from the store first so this
        session's writes (and anyone else's) are reflected. If the reload
        fails, or the reloaded catalog no longer has the active system,
        the in-memory snapshot is used and a warning is recorded.
        """
        snapshot = self.catalog
        if reload:
            try:
                self.catalog = self.store.load_catalog()
            except AppError as e:
                logger.warning(
                    "catalog_reload_failed",
                    session_id=self.session_id,
                    error=e.message
                )
                self.warnings.append(
                    f"Could not reload the catalog ({e.message}); results use this session's changes only"
                )

        try:
            self.results = self._standardize()
        except SystemNotFoundError:
            if self.catalog is snapshot:
                raise
            logger.warning(
                "active_system_missing_after_reload",
                session_id=self.session_id,
                system_id=self.system_id
            )
            self.warnings.append(
                f"Nomenclature system '{self.system_id}' was removed during review; "
                "results use this session's catalog"
            )
            self.catalog = snapshot
            self.results = self._standardize()

        logger.info(
            "review_session_finalized",
            session_id=self.session_id,
            rows=len(self.results),
            reviewed=len(self.queue)
        )

        return self.results

    def to_response(self, include_queue: bool = True) -> ReviewSessionResponse:
        return ReviewSessionResponse(
            session_id=self.session_id,
            system_id=self.system_id,
            persistent=self.persistent,
            total_items=len(self.queue),
            current_index=self.current_index,
            complete=self.complete,
            current_item=self.current_item,
            queue=self.queue if include_queue else [],
            results=self.results,
            warnings=self.warnings,
        )

    # ===================
    # INTERNALS
    # ===================

    def _require_current(self, expected_index: Optional[int] = None) -> ReviewItem:
        """
        The item a decision applies to.

        A repeated submission carries the index it was made for; once
        the cursor has moved on it must not land on the next item.
        """
        if expected_index is not None and expected_index != self.current_index:
            raise StaleReviewItemError(expected_index, self.current_index)
        item = self.current_item
        if item is None:
            raise ReviewCompleteError()
        return item

    def _accept(self, item: ReviewItem, term: CanonicalTerm) -> ReviewItem:
        logger.info(
            "accepting_review_item",
            session_id=self.session_id,
            field=item.field.value,
            term_id=term.id,
            original_value=item.original_value
        )

        self._append_variation(item.field, term.id, item.original_value)

        local = self.catalog.find_term(item.field, term.id, self.system_id) or term
        local.add_variation(item.original_value)

        item.resolve(ReviewAction.ACCEPTED, local)
        propagated = self._propagate(item, local, AUTO_MATCH_FROM_ACCEPTED)

        logger.info(
            "review_item_accepted",
            session_id=self.session_id,
            index=self.current_index,
            term_id=term.id,
            propagated=propagated
        )

        self._advance()
        return item

    def _standardize(self) -> list[StandardizedRow]:
        return standardize(self.rows, self.mapping, self.catalog, self.queue, system_id=self.system_id)

    def _propagate(self, source: ReviewItem, term: CanonicalTerm, note: str) -> int:
        """Resolve later unprocessed items with the same (field, value)."""
        count = 0
        for later in self.queue[self.current_index + 1:]:
            if not later.processed and later.key == source.key:
                later.resolve(ReviewAction.AUTO_MATCHED, term, note)
                count += 1
        return count

    def _advance(self) -> None:
        self.current_index += 1
        while self.current_index < len(self.queue) and self.queue[self.current_index].processed:
            self.current_index += 1

        if self.complete:
            self.finalize(reload=True)

    def _append_variation(self, field: FieldKind, term_id: str, variation: str) -> None:
        if field == FieldKind.DEVICE_TYPE:
            self.store.append_variation_to_device_type(term_id, variation)
        else:
            self.store.append_variation_to_reference(term_id, variation)

    def _upsert_term(self, field: FieldKind, standard: str, variation: str) -> str:
        if field == FieldKind.DEVICE_TYPE:
            return self.store.upsert_device_type_term(self.system_id, standard, variation)
        return self.store.upsert_reference_term(ReferenceField.parse(field), standard, variation)

    def _remember_term(self, field: FieldKind, term_id: str, standard: str, variation: str) -> CanonicalTerm:
        """Mirror a store upsert into the session catalog."""
        terms = self.catalog.terms_for(field, self.system_id)
        for term in terms:
            if term.id == term_id:
                term.add_variation(variation)
                return term

        term = CanonicalTerm(id=term_id, standard=standard, variations=clean_variations(standard, [variation]))
        terms.append(term)
        return term


# ===================
# SESSION FACTORY
# ===================

def start_review_session(
    rows: list[ImportRow],
    mapping: dict,
    store: CatalogStore,
    system_id: Optional[str] = None
) -> ReviewSession:
    """
    Analyze an import and open a review session for it.

    When nothing needs review the session is standardized straight away.

    Raises:
        NoColumnsMappedError: If nothing is mapped to a matchable field
        SystemNotFoundError: If Device Type is mapped and the system is unknown
        DatabaseError: If the catalog can't be loaded
    """
    system_id = system_id or settings.default_system_id
    catalog = store.load_catalog()

    queue = analyze(rows, mapping, catalog, system_id, limit=settings.max_suggestions)

    session = ReviewSession(
        rows=rows,
        mapping=mapping,
        catalog=catalog,
        store=store,
        queue=queue,
        system_id=system_id,
        low_confidence_threshold=settings.low_confidence_threshold,
    )

    if not store.persistent:
        session.warnings.append("Catalog store is not configured; reviews will not persist beyond this session")

    logger.info(
        "review_session_started",
        session_id=session.session_id,
        rows=len(rows),
        review_items=len(queue),
        system_id=system_id,
        persistent=store.persistent
    )

    if not queue:
        session.finalize(reload=False)

    return session
