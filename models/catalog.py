"""
Catalog schemas: nomenclature systems, canonical terms, reference fields.

A Device Type term always lives inside a NomenclatureSystem; Manufacturer
and Model terms live in the global reference table. The two field enums
keep those shapes apart.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, ValidationInfo, field_validator

from models.base import BaseSchema
from exceptions import InvalidReferenceFieldError, SystemNotFoundError


class FieldKind(str, Enum):
    """What a source column is mapped to."""
    DEVICE_TYPE = "Device Type"
    MANUFACTURER = "Manufacturer"
    MODEL = "Model"
    REFERENCE = "Reference Field"
    SKIP = ""

    @property
    def is_matchable(self) -> bool:
        """True for fields that are matched against the catalog."""
        return self in (FieldKind.DEVICE_TYPE, FieldKind.MANUFACTURER, FieldKind.MODEL)


class ReferenceField(str, Enum):
    """Global (system-independent) catalog dimensions."""
    MANUFACTURER = "Manufacturer"
    MODEL = "Model"

    @classmethod
    def parse(cls, value: "str | FieldKind | ReferenceField") -> "ReferenceField":
        """
        Coerce a field name into a ReferenceField.

        Raises:
            InvalidReferenceFieldError: For Device Type or any unknown name
        """
        raw = value.value if isinstance(value, Enum) else value
        try:
            return cls(raw)
        except ValueError:
            raise InvalidReferenceFieldError(raw)


class CanonicalTerm(BaseSchema):
    """
    A canonical name and its known aliases.

    Variations are kept unique and never repeat the standard itself.
    """

    id: str = Field(..., description="Term id")
    standard: str = Field(..., min_length=1, description="Canonical display name")
    variations: list[str] = Field(default_factory=list, description="Known aliases")

    @field_validator("variations")
    @classmethod
    def unique_variations(cls, v: list[str], info: ValidationInfo) -> list[str]:
        """Drop blanks, duplicates and copies of the standard, keeping order."""
        standard = (info.data or {}).get("standard")
        seen = set()
        cleaned = []
        for variation in v:
            variation = (variation or "").strip()
            if not variation or variation == standard or variation in seen:
                continue
            seen.add(variation)
            cleaned.append(variation)
        return cleaned

    def has_variation(self, value: str) -> bool:
        return value in self.variations

    def add_variation(self, value: str) -> bool:
        """Append a variation if absent. Returns True when it was added."""
        value = (value or "").strip()
        if not value or value == self.standard or value in self.variations:
            return False
        self.variations = [*self.variations, value]
        return True


class NomenclatureSystem(BaseSchema):
    """One naming standard (e.g. UMDNS, GMDN) and its Device Type terms."""

    id: str = Field(..., description="System id")
    name: str = Field(..., min_length=1, description="Display name")
    description: Optional[str] = Field("", description="Free-text description")
    last_updated: Optional[datetime] = Field(None, description="Bumped on any term change")
    device_type_terms: list[CanonicalTerm] = Field(default_factory=list)


class Catalog(BaseSchema):
    """
    Snapshot of the whole catalog as loaded from the store.

    Engine components read from a snapshot; only the store is authoritative.
    """

    nomenclature_systems: list[NomenclatureSystem] = Field(default_factory=list)
    reference_db: dict[ReferenceField, list[CanonicalTerm]] = Field(
        default_factory=lambda: {ReferenceField.MANUFACTURER: [], ReferenceField.MODEL: []}
    )

    def get_system(self, system_id: str) -> NomenclatureSystem:
        for system in self.nomenclature_systems:
            if system.id == system_id:
                return system
        raise SystemNotFoundError(system_id)

    def terms_for(self, field: FieldKind, system_id: Optional[str] = None) -> list[CanonicalTerm]:
        """
        Term list that values of `field` are matched against.

        Device Type reads the given system's terms; Manufacturer and Model
        read the reference table.
        """
        if field == FieldKind.DEVICE_TYPE:
            if system_id is None:
                raise SystemNotFoundError("None")
            return self.get_system(system_id).device_type_terms
        reference_field = ReferenceField.parse(field)
        return self.reference_db.setdefault(reference_field, [])

    def find_term(
        self,
        field: FieldKind,
        term_id: str,
        system_id: Optional[str] = None
    ) -> Optional[CanonicalTerm]:
        for term in self.terms_for(field, system_id):
            if term.id == term_id:
                return term
        return None


# ===================
# ADMIN REQUESTS
# ===================

class SystemCreate(BaseSchema):
    """Create a nomenclature system."""

    name: str = Field(..., min_length=1, max_length=100, examples=["UMDNS"])
    description: Optional[str] = Field("", max_length=500)
    id: Optional[str] = Field(None, description="Explicit id; derived from name when omitted")


class SystemUpdate(BaseSchema):
    """Update a nomenclature system. Only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class DeviceTypeTermCreate(BaseSchema):
    """Create a Device Type term inside a system."""

    system_id: str = Field(..., min_length=1)
    standard: str = Field(..., description="Canonical name")
    variations: list[str] = Field(default_factory=list)


class ReferenceTermCreate(BaseSchema):
    """Create a Manufacturer or Model term."""

    field: ReferenceField
    standard: str = Field(..., description="Canonical name")
    variations: list[str] = Field(default_factory=list)


class TermUpdate(BaseSchema):
    """Full overwrite of a term's standard and variations."""

    standard: str = Field(..., description="Canonical name")
    variations: list[str] = Field(default_factory=list)


class MergeRequest(BaseSchema):
    """Fold the target term into the source term."""

    field: FieldKind
    source_id: str = Field(..., min_length=1, description="Term that survives")
    target_id: Optional[str] = Field(None, description="Term that is absorbed and deleted")
    system_id: Optional[str] = Field(None, description="Required for Device Type")


class StoreStatus(BaseSchema):
    """Result of the store connectivity check."""

    mode: str = Field(..., description="'supabase' or 'memory'")
    persistent: bool
    can_write: bool
    error: Optional[str] = None
    code: Optional[str] = None
