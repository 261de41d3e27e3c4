"""
Reference options for the prediction screen: commodities, bases and the
basis selection limit.
"""

from typing import Dict, List

DEFAULT_COMMODITY: str = "sulphur"
DEFAULT_BASIS: List[str] = ["middle-east"]

# Maximum number of bases per forecast run
MAX_BASIS: int = 2

COMMODITIES: List[Dict[str, str]] = [
    {"value": "sulphur", "label": "Sulphur"},
    {"value": "ethylene", "label": "Ethylene"},
    {"value": "pygas", "label": "Pygas"},
    {"value": "naphtha", "label": "Naphtha"},
    {"value": "urea", "label": "Urea"},
]

BASES: List[Dict[str, str]] = [
    {"value": "vancouver", "label": "Vancouver"},
    {"value": "middle-east", "label": "Middle East"},
    {"value": "iran", "label": "Iran"},
    {"value": "black-sea", "label": "Black Sea"},
    {"value": "baltic-sea", "label": "Baltic Sea"},
    {"value": "us-gulf", "label": "US Gulf"},
    {"value": "mediterranean", "label": "Mediterranean"},
]


def normalize_commodity(value: str) -> str:
    """
    Map a commodity value or label (any case) to its option value.

    Unknown input falls back to the default commodity.

    >>> normalize_commodity(" Urea ")
    'urea'
    >>> normalize_commodity("gold")
    'sulphur'
    """
    candidate = (value or "").strip().lower()
    for option in COMMODITIES:
        if candidate in (option["value"], option["label"].lower()):
            return option["value"]
    return DEFAULT_COMMODITY


def basis_option_label(value: str) -> str:
    """Display label of a basis option value, or the value itself when unknown."""
    for option in BASES:
        if option["value"] == value:
            return option["label"]
    return value
