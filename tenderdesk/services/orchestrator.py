"""
Prediction Request Orchestrator

Runs one ``POST /predict`` call for an authenticated user:

1. Validate the (leniently parsed) body and normalize basis keys
2. Derive the deterministic record id (user + commodity + future date)
3. Build the workflow payload, including the legacy single-basis fields
4. Call the forecasting webhook exactly once
5. Persist the outcome, overwriting the previous record but keeping createdAt
6. Return the raw workflow JSON plus ``predictionId``

The caller gets a PredictOutcome (HTTP status + JSON body) rather than an
exception so the router can return workflow failures (502) with their
details. Unexpected failures are recorded as best-effort error records and
reported as 500.
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from asyncpg import Connection

from tenderdesk.core.auth import AuthenticatedUser
from tenderdesk.core.config import Settings
from tenderdesk.core.webhook import WorkflowError, call_workflow_json
from tenderdesk.models.enums import PredictionStatus
from tenderdesk.models.options import MAX_BASIS
from tenderdesk.services.normalizer import is_finite_number, is_number
from tenderdesk.services.prediction_store import insert_prediction, save_prediction


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BASIS_LABELS: Dict[str, str] = {
    "middle east": "Middle East",
    "us gulf": "US Gulf",
    "black sea": "Black Sea",
    "baltic sea": "Baltic Sea",
    "mediterranean": "Mediterranean",
    "vancouver": "Vancouver",
    "iran": "Iran",
}

MISSING_FIELDS_ERROR = "commodity, basisKeys (or basisKey/basis), and futureDate are required"
BAD_DATE_ERROR = "futureDate must be YYYY-MM-DD"

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_DASHES = re.compile(r"-+")
_WHITESPACE = re.compile(r"\s+")
_ID_UNSAFE = re.compile(r"[/#?\[\]]")


class InvalidPredictionRequest(ValueError):
    """The request body is missing required fields or carries a malformed date."""


@dataclass
class PredictionRequest:
    """Validated ``/predict`` input."""
    commodity: str
    future_date: str
    basis_keys: List[str]
    basis_labels: List[str]
    base_prices: List[Optional[float]]

    @property
    def basis_keys_normalized(self) -> List[str]:
        return [normalize_basis_key(key) for key in self.basis_keys]


@dataclass
class PredictOutcome:
    status_code: int
    body: Dict[str, Any]


# =============================================================================
# Input helpers
# =============================================================================

def normalize_basis_key(value: Any) -> str:
    """
    Workflow form of a basis key: trimmed, lower-case, dashes as spaces,
    whitespace collapsed.

    >>> normalize_basis_key(" Middle-East ")
    'middle east'
    """
    text = str(value if value is not None else "").strip().lower()
    text = _DASHES.sub(" ", text)
    return _WHITESPACE.sub(" ", text)


def basis_label_from_key(value: Any) -> str:
    """Display label of a basis key; unknown keys return their normalized form."""
    key = normalize_basis_key(value)
    return BASIS_LABELS.get(key, key)


def as_string_list(value: Any) -> List[str]:
    """A list of trimmed non-empty strings from a list or a single string."""
    if isinstance(value, list):
        items = [str(v if v is not None else "").strip() for v in value]
        return [item for item in items if item]
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    return []


def to_finite_number_or_null(value: Any) -> Optional[float]:
    """Strict number parse for base prices: numbers and fully numeric strings only."""
    if value is None or isinstance(value, bool):
        return None
    if is_number(value):
        return value if is_finite_number(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    return None


def safe_id_part(value: Any) -> str:
    """
    Make a string safe as a record id.

    >>> safe_id_part("Uid1__Sulphur__2026-11-03")
    'uid1__sulphur__2026-11-03'
    """
    text = str(value if value is not None else "").strip().lower()
    text = _WHITESPACE.sub("-", text)
    return _ID_UNSAFE.sub("_", text)


def is_iso_date(value: str) -> bool:
    return bool(_ISO_DATE.fullmatch(value))


def make_prediction_id(uid: str, commodity: str, future_date: str) -> str:
    return safe_id_part(f"{uid}__{commodity}__{future_date}")


def parse_predict_request(body: Any, max_basis: int = MAX_BASIS) -> PredictionRequest:
    """
    Validate a ``/predict`` body.

    Basis keys come from ``basisKeys``, else ``basisKey``, else ``basis``
    (string or list), limited to ``max_basis``. Client labels are used only
    when they match the keys one to one. ``basePrices`` (or a single
    ``basePrice``) is aligned to the basis count, padding with None.

    Raises:
        InvalidPredictionRequest: Missing commodity / basis / date, or a date
            that is not YYYY-MM-DD.
    """
    body = body if isinstance(body, dict) else {}

    commodity = str(body.get("commodity") or "").strip().lower()
    future_date = str(body.get("futureDate") or "").strip()

    keys = as_string_list(body.get("basisKeys"))
    if not keys:
        fallback = body.get("basisKey")
        keys = as_string_list(fallback if fallback is not None else body.get("basis"))
    basis_keys = keys[:max_basis]

    client_labels = as_string_list(body.get("basisLabels"))
    if client_labels and len(client_labels) == len(basis_keys):
        basis_labels = client_labels
    else:
        basis_labels = [basis_label_from_key(key) for key in basis_keys]

    if not commodity or not future_date or not basis_keys:
        raise InvalidPredictionRequest(MISSING_FIELDS_ERROR)
    if not is_iso_date(future_date):
        raise InvalidPredictionRequest(BAD_DATE_ERROR)

    if isinstance(body.get("basePrices"), list):
        base_prices = [to_finite_number_or_null(v) for v in body["basePrices"]]
    elif body.get("basePrice") is not None:
        base_prices = [to_finite_number_or_null(body["basePrice"])]
    else:
        base_prices = []

    base_prices = base_prices[: len(basis_keys)]
    base_prices += [None] * (len(basis_keys) - len(base_prices))

    return PredictionRequest(
        commodity=commodity,
        future_date=future_date,
        basis_keys=basis_keys,
        basis_labels=basis_labels,
        base_prices=base_prices,
    )


def build_workflow_payload(request: PredictionRequest, uid: str) -> Dict[str, Any]:
    """Body sent to the forecasting webhook (multi-basis fields plus legacy single-basis ones)."""
    normalized = request.basis_keys_normalized
    payload = {
        "commodity": request.commodity,
        "futureDate": request.future_date,
        "basisKeys": normalized,
        "basisLabels": request.basis_labels,
        "basePrices": request.base_prices,
        "uid": uid,
        "basisKey": normalized[0],
        "basis": request.basis_labels[0],
    }
    if request.base_prices[0] is not None:
        payload["basePrice"] = request.base_prices[0]
    return payload


def merge_prediction_id(data: Any, prediction_id: str) -> Dict[str, Any]:
    """Attach ``predictionId`` to the workflow reply; non-object replies go under ``data``."""
    if isinstance(data, dict):
        return {**data, "predictionId": prediction_id}
    if data is None:
        return {"predictionId": prediction_id}
    return {"data": data, "predictionId": prediction_id}


# =============================================================================
# Orchestration
# =============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def run_prediction(
    body: Any,
    user: AuthenticatedUser,
    conn: Connection,
    client: httpx.AsyncClient,
    settings: Settings,
) -> PredictOutcome:
    """
    Validate, call the forecasting workflow, persist and shape the reply.

    Returns:
        PredictOutcome with status 200 (workflow JSON + predictionId), 400
        (invalid input), 502 (workflow failure) or 500 (anything else).
    """
    started = time.monotonic()

    def runtime_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        request = parse_predict_request(body, settings.max_basis)
    except InvalidPredictionRequest as e:
        logger.warning(f"POST /predict rejected for {user.uid}: {e}")
        return PredictOutcome(400, {"ok": False, "error": str(e)})

    prediction_id: Optional[str] = None
    try:
        prediction_id = make_prediction_id(user.uid, request.commodity, request.future_date)

        webhook_url = settings.require("n8n_webhook_forecasting_url")
        token = settings.require("n8n_webhook_token")
        payload = build_workflow_payload(request, user.uid)

        data: Any = None
        failure: Optional[WorkflowError] = None
        try:
            data = await call_workflow_json(client, webhook_url, token, payload)
        except WorkflowError as e:
            failure = e

        await save_prediction(conn, prediction_id, {
            "uid": user.uid,
            "email": user.email,
            "runtimeMs": runtime_ms(),
            "commodity": request.commodity,
            "futureDate": request.future_date,
            "basisKeys": request.basis_keys,
            "basisKeysNormalized": request.basis_keys_normalized,
            "basisLabels": request.basis_labels,
            "basePrices": request.base_prices,
            "request": body,
            "workflowPayload": payload,
            "status": (PredictionStatus.ERROR if failure else PredictionStatus.SUCCESS).value,
            "workflowHttpStatus": failure.status_code if failure else 200,
            "outputs": None if failure else data,
            "error": {"message": str(failure), "details": failure.details} if failure else None,
        }, _utcnow())

        if failure:
            logger.warning(f"Prediction {prediction_id} failed upstream: {failure}")
            return PredictOutcome(502, {
                "ok": False,
                "error": str(failure),
                "details": failure.details,
                "predictionId": prediction_id,
            })

        logger.info(f"Prediction {prediction_id} completed in {runtime_ms()} ms")
        return PredictOutcome(200, merge_prediction_id(data, prediction_id))

    except Exception as e:
        message = str(e) or "Unknown server error"
        logger.error(f"Prediction {prediction_id or '(no id)'} failed: {message}", exc_info=True)
        await _record_failure(conn, prediction_id, user, body, message, runtime_ms())
        return PredictOutcome(500, {"ok": False, "error": message})


async def _record_failure(
    conn: Connection,
    prediction_id: Optional[str],
    user: AuthenticatedUser,
    body: Any,
    message: str,
    runtime_ms: int,
) -> None:
    """Best-effort error record; a failing write is logged, never raised."""
    fields = {
        "uid": user.uid,
        "email": user.email,
        "runtimeMs": runtime_ms,
        "status": PredictionStatus.ERROR.value,
        "error": {"message": message},
        "request": body,
    }
    try:
        if prediction_id:
            await save_prediction(conn, prediction_id, fields, _utcnow())
        else:
            await insert_prediction(conn, fields, _utcnow())
    except Exception:
        logger.error("Could not record prediction failure", exc_info=True)
