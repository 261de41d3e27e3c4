"""
Workflow Payload Normalizer

Turns whatever the forecasting workflow returned into a Canonical Payload: a
dict whose ``tender`` entry is always a dict. Workflow versions disagree on
the envelope, so the raw value may be:

- a list wrapping a single result
- an object whose ``output`` field is the result encoded as a JSON string
- an object whose ``output`` field is the result object
- a flat object carrying ``tenderAction`` / ``tenderPredictedPrice`` / ``unit``
  at the root
- an already canonical object with a ``tender`` dict

normalize_payload() runs one discriminator step per envelope. Each step takes
the working value and returns the next one without mutating its input, so the
steps can be tested on their own. The pipeline never raises: missing structure
degrades to absent optional fields.

Fallback values used when a tender has to be synthesized live in one
NormalizerDefaults instance (DEFAULTS).
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from tenderdesk.models.enums import ConfidenceLabel, Impact


logger = logging.getLogger(__name__)


# =============================================================================
# Defaults and shape tags
# =============================================================================

@dataclass(frozen=True)
class NormalizerDefaults:
    """Fallbacks for a tender synthesized from root-level fields."""
    tender_action: str = "PASS"
    tender_predicted_price: Optional[float] = None
    unit: str = "USD/t"
    confidence: str = ConfidenceLabel.MEDIUM.value
    rationale: str = ""


DEFAULTS = NormalizerDefaults()


class PayloadShape(str, Enum):
    """Envelope detected on a working value, in pipeline order."""
    EMPTY = "empty"
    LIST_WRAPPED = "list_wrapped"
    ENCODED_ENVELOPE = "encoded_envelope"
    OBJECT_ENVELOPE = "object_envelope"
    FLAT_TENDER = "flat_tender"
    CANONICAL = "canonical"


# Keys that mark an ``output`` object as the forecast itself
FORECAST_MARKER_KEYS = ("tender", "caliBidTable", "tenderPredictedPrice", "tenderAction")

_NUMBER_TOKEN = re.compile(r"-?\d+(\.\d+)?")


# =============================================================================
# Loose parsing helpers
# =============================================================================

def is_number(value: Any) -> bool:
    """True for int/float values; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_finite_number(value: Any) -> bool:
    """True for numbers a float can hold; ints too large for a float are not finite."""
    if not is_number(value):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def label_from_alignment_score(score: Any) -> ConfidenceLabel:
    """
    Map an alignment score in [0, 1] to a confidence label.

    >= 0.6 is High, >= 0.35 is Medium, anything else (including non-finite
    values) is Low.
    """
    if not is_finite_number(score):
        return ConfidenceLabel.LOW
    if score >= 0.6:
        return ConfidenceLabel.HIGH
    if score >= 0.35:
        return ConfidenceLabel.MEDIUM
    return ConfidenceLabel.LOW


def parse_maybe_json_string(value: Any) -> Any:
    """JSON-decode ``value`` when it is a string; None for non-strings and invalid JSON."""
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


def safe_json_parse(raw: Optional[str]) -> Any:
    """JSON-decode stored text; None for empty or invalid input."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def to_number_loose(value: Any) -> Optional[float]:
    """
    Parse a number out of a number or a numeric-looking string.

    Strings yield their first ``-?\\d+(\\.\\d+)?`` token, so "USD 410/t"
    parses as 410. Returns None for anything unparseable or non-finite.
    """
    if is_number(value):
        return value if is_finite_number(value) else None

    if isinstance(value, str):
        match = _NUMBER_TOKEN.search(value)
        if not match:
            return None
        token = match.group(0)
        try:
            number = float(token) if "." in token else int(token)
        except ValueError:
            # int() refuses digit strings past sys.get_int_max_str_digits()
            return None
        return number if is_finite_number(number) else None

    return None


def normalize_confidence(value: Any) -> ConfidenceLabel:
    """Case-insensitive "high"/"low" map to High/Low; anything else is Medium."""
    text = str(value if value is not None else "").strip().lower()
    if text == "high":
        return ConfidenceLabel.HIGH
    if text == "low":
        return ConfidenceLabel.LOW
    return ConfidenceLabel.MEDIUM


def action_to_impact(action: Any) -> Impact:
    """
    Map a tender action to the direction it implies.

    BUY BID / BID -> Up, SELL OFFER / OFFER -> Down, anything else -> Risk.
    """
    text = str(action if action is not None else "").strip().upper()
    if text in ("BUY BID", "BID"):
        return Impact.UP
    if text in ("SELL OFFER", "OFFER"):
        return Impact.DOWN
    return Impact.RISK


def is_api_multi_response(value: Any) -> bool:
    """True for ``{"results": [...]}`` multi-basis responses."""
    return isinstance(value, dict) and isinstance(value.get("results"), list)


# =============================================================================
# Discriminator steps
# =============================================================================

def _looks_like_forecast(value: Any) -> bool:
    return isinstance(value, dict) and any(value.get(key) is not None for key in FORECAST_MARKER_KEYS)


def classify_payload(value: Any) -> PayloadShape:
    """Tag the envelope the next pipeline step would act on."""
    if isinstance(value, list):
        return PayloadShape.LIST_WRAPPED
    if not isinstance(value, dict) or not value:
        return PayloadShape.EMPTY

    output = value.get("output")
    if isinstance(output, str):
        return PayloadShape.ENCODED_ENVELOPE
    if _looks_like_forecast(output):
        return PayloadShape.OBJECT_ENVELOPE
    if isinstance(value.get("tender"), dict):
        return PayloadShape.CANONICAL
    return PayloadShape.FLAT_TENDER


def unwrap_list(value: Any) -> Any:
    """A list yields its first element (None when empty); anything else passes through."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def decode_output_envelope(value: Any) -> Any:
    """
    Replace the working value by its JSON-decoded ``output`` string.

    Undecodable strings (and strings that do not decode to an object) leave
    the value unchanged.
    """
    if not isinstance(value, dict) or not isinstance(value.get("output"), str):
        return value

    parsed = parse_maybe_json_string(value["output"])
    if isinstance(parsed, dict):
        return parsed

    logger.debug("output field is not an encoded object; keeping envelope")
    return value


def promote_output_object(value: Any) -> Any:
    """Replace the working value by its ``output`` object when that object is a forecast."""
    if isinstance(value, dict) and _looks_like_forecast(value.get("output")):
        return value["output"]
    return value


def synthesize_tender(value: Any, defaults: NormalizerDefaults = DEFAULTS) -> Dict[str, Any]:
    """
    Ensure the payload carries a ``tender`` dict.

    When ``tender`` is missing (or not an object) it is built from the root
    fields, falling back to ``defaults``. Non-dict values (None, [], scalars)
    become ``{"tender": <all defaults>}``.
    """
    base = value if isinstance(value, dict) else {}
    if isinstance(base.get("tender"), dict):
        return base

    def pick(key: str, fallback: Any) -> Any:
        found = base.get(key)
        return fallback if found is None else found

    tender = {
        "tenderAction": pick("tenderAction", defaults.tender_action),
        "tenderPredictedPrice": pick("tenderPredictedPrice", defaults.tender_predicted_price),
        "unit": pick("unit", defaults.unit),
        "confidence": pick("confidence", defaults.confidence),
        "rationale": pick("rationale", defaults.rationale),
    }
    for optional_key in ("decisionConfidence", "signals"):
        if base.get(optional_key) is not None:
            tender[optional_key] = base[optional_key]

    return {**base, "tender": tender}


def derive_decision_confidence(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fill ``tender.decisionConfidence`` from a finite ``signals.alignmentScore`` when absent."""
    tender = payload.get("tender")
    if not isinstance(tender, dict) or tender.get("decisionConfidence") is not None:
        return payload

    signals = tender.get("signals")
    score = signals.get("alignmentScore") if isinstance(signals, dict) else None
    if not is_finite_number(score):
        return payload

    return {
        **payload,
        "tender": {**tender, "decisionConfidence": label_from_alignment_score(score).value},
    }


# =============================================================================
# Pipeline
# =============================================================================

def normalize_payload(raw: Any, defaults: NormalizerDefaults = DEFAULTS) -> Dict[str, Any]:
    """
    Normalize a raw workflow response into a Canonical Payload.

    Args:
        raw: Any JSON value returned by the workflow.
        defaults: Fallbacks for synthesized tenders.

    Returns:
        A new dict with a ``tender`` dict; unknown keys are preserved. The
        input is never mutated, and normalizing the result again returns an
        equal payload.

    Example:
        >>> normalize_payload({"tenderAction": "BID", "tenderPredictedPrice": 410})["tender"]["tenderAction"]
        'BID'
    """
    working = unwrap_list(raw)
    working = decode_output_envelope(working)
    working = promote_output_object(working)
    payload = synthesize_tender(working, defaults)
    payload = derive_decision_confidence(payload)

    # top level and tender are fresh dicts so callers can edit them freely
    return {**payload, "tender": dict(payload["tender"])}
