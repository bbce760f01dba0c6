"""
Starter nomenclature catalog.

Written to an empty store by seed_default_data() and used as the whole
catalog when the app runs without Supabase credentials.
"""

# =============================================================================
# NOMENCLATURE SYSTEMS
# =============================================================================

DEFAULT_SYSTEMS = [
    {
        "id": "umdns",
        "name": "UMDNS",
        "description": "Universal Medical Device Nomenclature System",
    },
    {
        "id": "gmdn",
        "name": "GMDN",
        "description": "Global Medical Device Nomenclature",
    },
]


# =============================================================================
# DEVICE TYPE TERMS (scoped to a system)
# =============================================================================

DEFAULT_DEVICE_TYPE_TERMS = [
    {
        "system_id": "umdns",
        "standard": "Electrocautery Unit",
        "variations": ["Electrocauterio", "ESU", "Cautery Unit"],
    },
    {
        "system_id": "umdns",
        "standard": "Defibrillator",
        "variations": ["Desfibrilador", "AED"],
    },
    {
        "system_id": "gmdn",
        "standard": "Ventilator",
        "variations": ["Ventilador", "Mechanical Ventilator"],
    },
]


# =============================================================================
# REFERENCE TERMS (global)
# =============================================================================

DEFAULT_REFERENCE_TERMS = [
    {
        "field": "Manufacturer",
        "standard": "Philips Healthcare",
        "variations": ["Philips", "Phillips", "Philips Medical"],
    },
    {
        "field": "Manufacturer",
        "standard": "GE Healthcare",
        "variations": ["GE", "General Electric", "GE Medical"],
    },
    {
        "field": "Model",
        "standard": "M3046A",
        "variations": ["M3046", "M-3046A"],
    },
    {
        "field": "Model",
        "standard": "CARESCAPE R860",
        "variations": ["R860", "Carescape R860"],
    },
]
