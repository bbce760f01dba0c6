"""
Tests for review_service: the review state machine.
"""

import pytest

from exceptions import (
    DatabaseError,
    EmptyTermNameError,
    LowConfidenceMatchError,
    MatchNotFoundError,
    OperationInProgressError,
    ReviewCompleteError,
    StaleReviewItemError,
    TermNotFoundError,
)
from models.catalog import FieldKind, ReferenceField
from models.review import ReviewAction
from services.analysis_service import analyze
from services.memory_catalog_store import InMemoryCatalogStore
from services.review_service import (
    ReviewSession,
    start_review_session,
    AUTO_MATCH_FROM_ACCEPTED,
    AUTO_MATCH_FROM_ADDED,
)
from tests.factories import make_rows


MFR_MAPPING = {"Mfr": FieldKind.MANUFACTURER}


def _mfr_rows(*values: str) -> list[dict]:
    return make_rows(*[{"Mfr": v} for v in values])


def _open(store, rows, mapping=MFR_MAPPING, system_id="umdns", threshold=0.4) -> ReviewSession:
    """Session over the store's current catalog with an explicit threshold."""
    catalog = store.load_catalog()
    return ReviewSession(
        rows=rows,
        mapping=mapping,
        catalog=catalog,
        store=store,
        queue=analyze(rows, mapping, catalog, system_id),
        system_id=system_id,
        low_confidence_threshold=threshold,
    )


class TestStartReviewSession:
    """Tests for start_review_session()."""

    def test_queue_and_cursor(self, memory_store):
        session = start_review_session(_mfr_rows("Philps", "GE", "Siemens"), MFR_MAPPING, memory_store)

        assert [i.original_value for i in session.queue] == ["Philps", "Siemens"]
        assert session.current_index == 0
        assert not session.complete
        assert session.results is None

    def test_all_exact_finalizes_immediately(self, memory_store):
        session = start_review_session(_mfr_rows("GE", "Phillips"), MFR_MAPPING, memory_store)

        assert session.complete
        assert session.current_item is None
        assert [r["Standardized Mfr"] for r in session.results] == ["GE Healthcare", "Philips Healthcare"]

    def test_default_system_applies(self, memory_store):
        session = start_review_session(make_rows({"Type": "AED"}), {"Type": FieldKind.DEVICE_TYPE}, memory_store)

        assert session.system_id == "umdns"
        assert session.complete

    def test_memory_store_warns_not_persistent(self, memory_store):
        session = start_review_session(_mfr_rows("GE"), MFR_MAPPING, memory_store)

        assert session.persistent is False
        assert len(session.warnings) == 1

    def test_supabase_store_is_persistent(self, supabase_store):
        session = start_review_session(_mfr_rows("GE"), MFR_MAPPING, supabase_store)

        assert session.persistent is True
        assert session.warnings == []


class TestAcceptSuggestion:
    """Tests for accepting a suggested term."""

    def test_propagates_to_later_same_value_items(self, memory_store):
        """
        One decision per literal value per session.

        Arrange: "Philps" at queue indexes 0, 2 and 5
        Act: accept the first suggestion at index 0
        Assert: 2 and 5 auto-matched to the same term, cursor on index 1
        """
        session = _open(memory_store, _mfr_rows("Philps", "Siemens", "Philps", "Mindray", "Siemens", "Philps"))

        session.accept_suggestion(0)

        queue = session.queue
        assert queue[0].action == ReviewAction.ACCEPTED
        for index in (2, 5):
            assert queue[index].processed
            assert queue[index].action == ReviewAction.AUTO_MATCHED
            assert queue[index].resolution_note == AUTO_MATCH_FROM_ACCEPTED
            assert queue[index].matched_term.id == queue[0].matched_term.id
        assert not queue[1].processed and not queue[4].processed
        assert session.current_index == 1

    def test_cursor_skips_auto_matched_items(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps", "Siemens", "Philps", "Mindray"))

        session.accept_suggestion(0)
        session.skip()

        assert session.current_index == 3
        assert session.current_item.original_value == "Mindray"

    def test_variation_written_to_store(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps"))
        term_id = session.current_item.potential_matches[0].term.id

        session.accept_suggestion(0)

        stored = memory_store.load_catalog().find_term(FieldKind.MANUFACTURER, term_id)
        assert "Philps" in stored.variations

    def test_accept_is_idempotent_in_store(self, supabase_store, mock_supabase):
        session = _open(supabase_store, _mfr_rows("Philps"))
        term_id = session.current_item.potential_matches[0].term.id
        supabase_store.append_variation_to_reference(term_id, "Philps")

        session.accept_suggestion(0)

        row = [r for r in mock_supabase.rows("reference_terms") if r["id"] == term_id][0]
        assert row["variations"].count("Philps") == 1

    def test_store_failure_keeps_item_current(self, supabase_store, mock_supabase):
        """
        A failed catalog write leaves the operator on the same item.

        Arrange: reference update fails once
        Act: accept, then retry
        Assert: first attempt raises and nothing advances; retry succeeds
        """
        session = _open(supabase_store, _mfr_rows("Philps", "Philps"))
        mock_supabase.fail("reference_terms", "update", times=1)

        with pytest.raises(DatabaseError):
            session.accept_suggestion(0)

        assert session.current_index == 0
        assert not session.queue[0].processed
        assert not session.queue[1].processed

        session.accept_suggestion(0)

        assert session.complete
        assert session.queue[1].action == ReviewAction.AUTO_MATCHED

    def test_match_index_out_of_range(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps"))

        with pytest.raises(MatchNotFoundError):
            session.accept_suggestion(99)
        assert session.current_index == 0

    def test_no_suggestions(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens"))

        with pytest.raises(MatchNotFoundError):
            session.accept_suggestion(0)

    def test_low_confidence_needs_confirmation(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps"), threshold=0.9)

        with pytest.raises(LowConfidenceMatchError):
            session.accept_suggestion(0)
        assert session.current_index == 0

        session.accept_suggestion(0, confirm_low_confidence=True)
        assert session.queue[0].action == ReviewAction.ACCEPTED

    def test_score_equal_to_threshold_is_low_confidence(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps"))

        assert session.is_low_confidence(0.4)
        assert not session.is_low_confidence(0.41)


class TestAcceptCatalogTerm:
    """Tests for the manual search path."""

    def test_search_then_accept(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens", "Siemens"))

        [term] = session.search_catalog("general electric")
        session.accept_catalog_term(term.id)

        assert session.queue[0].matched_term.standard == "GE Healthcare"
        assert session.queue[1].action == ReviewAction.AUTO_MATCHED
        stored = memory_store.load_catalog().find_term(FieldKind.MANUFACTURER, term.id)
        assert "Siemens" in stored.variations

    def test_search_uses_current_item_field(self, memory_store):
        rows = make_rows({"Type": "Monitor", "Mfr": "Siemens"})
        mapping = {"Type": FieldKind.DEVICE_TYPE, "Mfr": FieldKind.MANUFACTURER}
        session = _open(memory_store, rows, mapping=mapping)

        assert {t.standard for t in session.search_catalog("")} == {"Defibrillator", "Electrocautery Unit"}

    def test_unknown_term(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens"))

        with pytest.raises(TermNotFoundError):
            session.accept_catalog_term("missing")


class TestCreateNewTerm:
    """Tests for minting a new canonical term."""

    def test_creates_term_and_propagates(self, memory_store):
        session = _open(memory_store, _mfr_rows("Mindray Med", "GE", "Mindray Med"))

        session.create_new_term("  Mindray  ")

        first, second = session.queue
        assert first.action == ReviewAction.ADDED
        assert first.matched_term.standard == "Mindray"
        assert first.matched_term.variations == ["Mindray Med"]
        assert second.action == ReviewAction.AUTO_MATCHED
        assert second.resolution_note == AUTO_MATCH_FROM_ADDED
        assert session.complete

        stored = memory_store.load_catalog().reference_db[ReferenceField.MANUFACTURER]
        assert "Mindray" in [t.standard for t in stored]

    def test_device_type_term_goes_to_active_system(self, memory_store):
        session = _open(memory_store, make_rows({"Type": "Bomba de Infusion"}), mapping={"Type": FieldKind.DEVICE_TYPE})

        session.create_new_term("Infusion Pump")

        umdns = memory_store.load_catalog().get_system("umdns")
        assert "Infusion Pump" in [t.standard for t in umdns.device_type_terms]

    def test_blank_name_rejected(self, memory_store):
        session = _open(memory_store, _mfr_rows("Mindray"))

        with pytest.raises(EmptyTermNameError):
            session.create_new_term("   ")
        assert session.current_index == 0

    def test_second_create_while_pending_is_rejected(self):
        """
        Only one create may be in flight per session.

        Arrange: a store whose upsert re-enters create_new_term
        Act: create
        Assert: the nested call is rejected, the outer one completes
        """
        nested_errors = []

        class ReentrantStore(InMemoryCatalogStore):
            session = None

            def upsert_reference_term(self, field, standard, variation=None):
                try:
                    self.session.create_new_term(standard)
                except OperationInProgressError as e:
                    nested_errors.append(e)
                return super().upsert_reference_term(field, standard, variation)

        store = ReentrantStore()
        session = _open(store, _mfr_rows("Mindray", "Siemens"))
        store.session = session

        session.create_new_term("Mindray")

        assert len(nested_errors) == 1
        assert session.queue[0].action == ReviewAction.ADDED
        assert session.current_index == 1

    def test_failed_create_releases_guard(self, supabase_store, mock_supabase):
        session = _open(supabase_store, _mfr_rows("Mindray"))
        mock_supabase.fail("reference_terms", "insert", times=1)

        with pytest.raises(DatabaseError):
            session.create_new_term("Mindray")
        assert session.current_index == 0

        session.create_new_term("Mindray")
        assert session.queue[0].action == ReviewAction.ADDED


class TestSkipAndFinalize:
    """Tests for skip, completion and results."""

    def test_skip_does_not_touch_catalog(self, memory_store):
        before = memory_store.load_catalog()
        session = _open(memory_store, _mfr_rows("Siemens"))

        session.skip()

        assert session.queue[0].action == ReviewAction.SKIPPED
        assert memory_store.load_catalog() == before

    def test_skip_does_not_propagate(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens", "Siemens"))

        session.skip()

        assert session.current_index == 1
        assert not session.queue[1].processed

    def test_actions_after_completion_raise(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens"))
        session.skip()

        with pytest.raises(ReviewCompleteError):
            session.skip()
        with pytest.raises(ReviewCompleteError):
            session.accept_suggestion(0)

    def test_full_walkthrough_results(self, memory_store):
        """
        Accept, skip, create, skip, then standardize.

        Arrange: six manufacturer values with repeats
        Act: resolve every item
        Assert: statuses follow decision precedence; catalog reload applied
        """
        session = _open(memory_store, _mfr_rows("Philps", "Siemens", "Philps", "Mindray", "Siemens", "Philps"))

        session.accept_suggestion(0)
        session.skip()
        session.create_new_term("Mindray Medical")
        session.skip()

        assert session.complete
        statuses = [r["Status Mfr"] for r in session.results]
        assert statuses == [
            "Standardized", "Skipped", "Standardized", "Added as New Term", "Skipped", "Standardized"
        ]
        standardized = [r["Standardized Mfr"] for r in session.results]
        assert standardized[0] == "Philips Healthcare"
        assert standardized[3] == "Mindray Medical"
        assert standardized[1] == "Siemens"

    def test_reload_failure_falls_back_to_session_catalog(self, supabase_store, mock_supabase):
        session = _open(supabase_store, _mfr_rows("Philps", "Siemens"))
        session.accept_suggestion(0)
        mock_supabase.fail("nomenclature_systems", "select")

        session.skip()

        assert session.complete
        assert session.results[0]["Standardized Mfr"] == "Philips Healthcare"
        assert any("reload" in w for w in session.warnings)

    def test_to_response(self, memory_store):
        session = _open(memory_store, _mfr_rows("Philps", "Siemens"))

        response = session.to_response(include_queue=False)

        assert response.total_items == 2
        assert response.current_item.original_value == "Philps"
        assert response.queue == []
        assert response.persistent is False

    def test_active_system_deleted_during_review(self, memory_store):
        """
        Removing the active system mid-review does not break the last decision.

        Arrange: one Device Type item in UMDNS, then UMDNS deleted from the store
        Act: skip the item
        Assert: results come from the session catalog with a warning
        """
        session = _open(memory_store, make_rows({"Type": "Defibrilator"}), mapping={"Type": FieldKind.DEVICE_TYPE})
        memory_store.delete_nomenclature_system("umdns")

        session.skip()

        assert session.complete
        assert session.results[0]["Status Type"] == "Skipped"
        assert session.results[0]["Standardized Type"] == "Defibrilator"
        assert any("removed" in w for w in session.warnings)
        assert session.catalog.get_system("umdns") is not None


class TestRepeatedSubmission:
    """A decision carries the index it was made for."""

    def test_repeated_create_is_rejected(self, memory_store):
        """
        Submitting the same create twice must not resolve the next item.

        Arrange: queue "Mindray", "Siemens"
        Act: create "Mindray" for index 0 twice
        Assert: second call rejected; "Siemens" untouched in queue and catalog
        """
        session = _open(memory_store, _mfr_rows("Mindray", "Siemens"))

        session.create_new_term("Mindray", expected_index=0)
        with pytest.raises(StaleReviewItemError) as exc:
            session.create_new_term("Mindray", expected_index=0)

        assert exc.value.status_code == 409
        assert exc.value.details == {"expected_index": 0, "current_index": 1}
        assert session.current_index == 1
        assert not session.queue[1].processed
        [mindray] = [
            t for t in memory_store.load_catalog().reference_db[ReferenceField.MANUFACTURER]
            if t.standard == "Mindray"
        ]
        assert mindray.variations == []

    def test_repeated_accept_is_rejected_before_any_write(self, supabase_store, mock_supabase):
        session = _open(supabase_store, _mfr_rows("Philps", "Siemens"))
        session.accept_suggestion(0, expected_index=0)
        before = [dict(r) for r in mock_supabase.rows("reference_terms")]

        with pytest.raises(StaleReviewItemError):
            session.accept_suggestion(0, expected_index=0)
        with pytest.raises(StaleReviewItemError):
            session.accept_catalog_term(session.queue[0].matched_term.id, expected_index=0)

        assert mock_supabase.rows("reference_terms") == before

    def test_repeated_skip_is_rejected(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens", "Mindray"))

        session.skip(expected_index=0)
        with pytest.raises(StaleReviewItemError):
            session.skip(expected_index=0)

        assert not session.queue[1].processed

    def test_matching_index_is_accepted(self, memory_store):
        session = _open(memory_store, _mfr_rows("Siemens", "Mindray"))

        session.skip(expected_index=0)
        session.skip(expected_index=1)

        assert session.complete
