"""
Tests for SupabaseCatalogStore against the mock Supabase client.
"""

import pytest

from config.seed_catalog import DEFAULT_SYSTEMS, DEFAULT_DEVICE_TYPE_TERMS, DEFAULT_REFERENCE_TERMS
from exceptions import (
    DatabaseError,
    EmptyTermNameError,
    InvalidReferenceFieldError,
    SystemExistsError,
    SystemNotFoundError,
    TermNotFoundError,
)
from models.catalog import FieldKind, ReferenceField
from services.catalog_store import SupabaseCatalogStore, clean_variations, slugify_system_id
from tests.factories import TermFactory


def _rows(mock_supabase, table: str, **filters) -> list[dict]:
    return [
        r for r in mock_supabase.rows(table)
        if all(r.get(k) == v for k, v in filters.items())
    ]


class TestHelpers:

    def test_slugify(self):
        assert slugify_system_id("GMDN 2024") == "gmdn-2024"
        assert slugify_system_id("  ") == "system"

    def test_clean_variations(self):
        assert clean_variations("GE", [" GE ", "General Electric", "", "General Electric", "GE Medical"]) == [
            "General Electric",
            "GE Medical",
        ]


class TestLoadCatalog:
    """Tests for load_catalog()."""

    def test_seeded_catalog_shape(self, supabase_store):
        catalog = supabase_store.load_catalog()

        # ordered by name
        assert [s.id for s in catalog.nomenclature_systems] == ["gmdn", "umdns"]
        assert [t.standard for t in catalog.get_system("umdns").device_type_terms] == [
            "Defibrillator",
            "Electrocautery Unit",
        ]
        assert [t.standard for t in catalog.reference_db[ReferenceField.MODEL]] == ["CARESCAPE R860", "M3046A"]

    def test_rows_with_unknown_field_are_ignored(self, mock_supabase):
        mock_supabase.set_table_data("reference_terms", [
            TermFactory.create_row(id="r1", standard="GE Healthcare", field="Manufacturer"),
            TermFactory.create_row(id="r2", standard="Ventilator", field="Device Type"),
        ])
        store = SupabaseCatalogStore(client=mock_supabase)

        catalog = store.load_catalog()

        assert [t.id for t in catalog.reference_db[ReferenceField.MANUFACTURER]] == ["r1"]
        assert catalog.reference_db[ReferenceField.MODEL] == []

    def test_failure_raises_database_error(self, supabase_store, mock_supabase):
        mock_supabase.fail("device_type_terms", "select")

        with pytest.raises(DatabaseError) as exc:
            supabase_store.load_catalog()
        assert exc.value.status_code == 500
        assert "select" in exc.value.message


class TestCanWrite:

    def test_healthy(self, supabase_store):
        status = supabase_store.can_write()

        assert status.can_write is True
        assert status.mode == "supabase"
        assert status.error is None

    def test_unreachable(self, supabase_store, mock_supabase):
        mock_supabase.fail("nomenclature_systems", "select")

        status = supabase_store.can_write()

        assert status.can_write is False
        assert "failed" in status.error


class TestDeviceTypeTerms:
    """Tests for Device Type term operations."""

    def test_upsert_creates_term(self, supabase_store, mock_supabase):
        term_id = supabase_store.upsert_device_type_term("umdns", "Infusion Pump", "Bomba de Infusion")

        [row] = _rows(mock_supabase, "device_type_terms", id=term_id)
        assert row["system_id"] == "umdns"
        assert row["variations"] == ["Bomba de Infusion"]

    def test_upsert_existing_appends_variation(self, supabase_store, mock_supabase):
        first = supabase_store.upsert_device_type_term("umdns", "Defibrillator", "Desfib")
        second = supabase_store.upsert_device_type_term("umdns", "Defibrillator", "Desfib")

        assert first == second
        [row] = _rows(mock_supabase, "device_type_terms", id=first)
        assert row["variations"].count("Desfib") == 1

    def test_upsert_touches_system_timestamp(self, supabase_store, mock_supabase):
        [system] = _rows(mock_supabase, "nomenclature_systems", id="gmdn")
        system["last_updated"] = "2000-01-01T00:00:00+00:00"

        supabase_store.upsert_device_type_term("gmdn", "Patient Monitor")

        assert system["last_updated"] != "2000-01-01T00:00:00+00:00"

    def test_upsert_survives_timestamp_failure(self, supabase_store, mock_supabase):
        mock_supabase.fail("nomenclature_systems", "update")

        term_id = supabase_store.upsert_device_type_term("gmdn", "Patient Monitor")

        assert _rows(mock_supabase, "device_type_terms", id=term_id)

    def test_upsert_unknown_system(self, supabase_store):
        with pytest.raises(SystemNotFoundError):
            supabase_store.upsert_device_type_term("nope", "Patient Monitor")

    def test_upsert_blank_standard(self, supabase_store):
        with pytest.raises(EmptyTermNameError):
            supabase_store.upsert_device_type_term("umdns", "  ")

    def test_append_variation_is_idempotent(self, supabase_store, mock_supabase):
        [row] = _rows(mock_supabase, "device_type_terms", standard="Ventilator")

        supabase_store.append_variation_to_device_type(row["id"], "Vent")
        supabase_store.append_variation_to_device_type(row["id"], "Vent")
        supabase_store.append_variation_to_device_type(row["id"], "Ventilator")

        assert row["variations"] == ["Ventilador", "Mechanical Ventilator", "Vent"]

    def test_append_to_missing_term(self, supabase_store):
        with pytest.raises(TermNotFoundError):
            supabase_store.append_variation_to_device_type("missing", "Vent")

    def test_update_and_delete(self, supabase_store, mock_supabase):
        [row] = _rows(mock_supabase, "device_type_terms", standard="Ventilator")

        supabase_store.update_device_type_term(row["id"], "Mechanical Ventilator", ["Ventilator", "Mechanical Ventilator"])
        assert row["standard"] == "Mechanical Ventilator"
        assert row["variations"] == ["Ventilator"]

        supabase_store.update_device_type_term_variations(row["id"], ["Vent", "Vent"])
        assert row["variations"] == ["Vent"]

        supabase_store.delete_device_type_term(row["id"])
        assert _rows(mock_supabase, "device_type_terms", id=row["id"]) == []

    def test_update_failure(self, supabase_store, mock_supabase):
        [row] = _rows(mock_supabase, "device_type_terms", standard="Ventilator")
        mock_supabase.fail("device_type_terms", "update")

        with pytest.raises(DatabaseError):
            supabase_store.update_device_type_term_variations(row["id"], ["Vent"])


class TestReferenceTerms:
    """Tests for Manufacturer / Model term operations."""

    def test_upsert_creates_and_reuses(self, supabase_store, mock_supabase):
        first = supabase_store.upsert_reference_term(ReferenceField.MANUFACTURER, "Mindray", "Mindray Medical")
        second = supabase_store.upsert_reference_term("Manufacturer", "Mindray", "MINDRAY")

        assert first == second
        [row] = _rows(mock_supabase, "reference_terms", id=first)
        assert row["field"] == "Manufacturer"
        assert row["variations"] == ["Mindray Medical", "MINDRAY"]

    @pytest.mark.parametrize("field", ["Device Type", FieldKind.DEVICE_TYPE, "Serial", ""])
    def test_device_type_is_never_a_reference_field(self, supabase_store, mock_supabase, field):
        before = len(mock_supabase.rows("reference_terms"))

        with pytest.raises(InvalidReferenceFieldError):
            supabase_store.upsert_reference_term(field, "Ventilator")

        assert len(mock_supabase.rows("reference_terms")) == before

    def test_append_variation(self, supabase_store, mock_supabase):
        [row] = _rows(mock_supabase, "reference_terms", standard="GE Healthcare")

        supabase_store.append_variation_to_reference(row["id"], "G.E.")
        supabase_store.append_variation_to_reference(row["id"], "G.E.")

        assert row["variations"] == ["GE", "General Electric", "GE Medical", "G.E."]

    def test_update_and_delete(self, supabase_store, mock_supabase):
        [row] = _rows(mock_supabase, "reference_terms", standard="M3046A")

        supabase_store.update_reference_term(row["id"], "M3046A", ["M3046", "M-3046", "M3046A"])
        assert row["variations"] == ["M3046", "M-3046"]

        supabase_store.delete_reference_term(row["id"])
        assert _rows(mock_supabase, "reference_terms", id=row["id"]) == []

    def test_delete_missing(self, supabase_store):
        with pytest.raises(TermNotFoundError):
            supabase_store.delete_reference_term("missing")


class TestSystems:
    """Tests for nomenclature system operations."""

    def test_create_derives_id(self, supabase_store, mock_supabase):
        system = supabase_store.create_nomenclature_system("ECRI 2024", "Test system")

        assert system.id == "ecri-2024"
        assert system.device_type_terms == []
        assert _rows(mock_supabase, "nomenclature_systems", id="ecri-2024")

    def test_create_duplicate(self, supabase_store):
        with pytest.raises(SystemExistsError):
            supabase_store.create_nomenclature_system("UMDNS", system_id="umdns")

    def test_update(self, supabase_store):
        system = supabase_store.update_nomenclature_system("gmdn", description="Updated")

        assert system.name == "GMDN"
        assert system.description == "Updated"

    def test_delete_cascades_terms(self, supabase_store, mock_supabase):
        supabase_store.delete_nomenclature_system("umdns")

        assert _rows(mock_supabase, "nomenclature_systems", id="umdns") == []
        assert _rows(mock_supabase, "device_type_terms", system_id="umdns") == []
        assert _rows(mock_supabase, "device_type_terms", system_id="gmdn")

    def test_delete_missing(self, supabase_store):
        with pytest.raises(SystemNotFoundError):
            supabase_store.delete_nomenclature_system("nope")


class TestSeed:

    def test_seed_writes_defaults_once(self, mock_supabase):
        store = SupabaseCatalogStore(client=mock_supabase)

        assert store.seed_default_data() is True
        assert store.seed_default_data() is False

        assert len(mock_supabase.rows("nomenclature_systems")) == len(DEFAULT_SYSTEMS)
        assert len(mock_supabase.rows("device_type_terms")) == len(DEFAULT_DEVICE_TYPE_TERMS)
        assert len(mock_supabase.rows("reference_terms")) == len(DEFAULT_REFERENCE_TERMS)

    def test_seed_failure(self, mock_supabase):
        mock_supabase.fail("reference_terms", "insert")
        store = SupabaseCatalogStore(client=mock_supabase)

        with pytest.raises(DatabaseError):
            store.seed_default_data()
