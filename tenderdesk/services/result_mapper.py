"""
Result Mapper

Reduces Canonical Payloads to display records and shapes whole workflow
responses (single or multi-basis) into a ForecastView for the prediction
screen. Also hosts the small display helpers shared by the screen and the
terminal client.
"""

from typing import Any, Dict, List, Optional

from tenderdesk.models.enums import JustificationTab, RiskLevel
from tenderdesk.models.schemas import ForecastView, MarketBias, MultiItem, PredictionResult
from tenderdesk.services.justification import build_justification
from tenderdesk.services.normalizer import (
    DEFAULTS,
    is_api_multi_response,
    normalize_payload,
    to_number_loose,
)


# Bias thresholds on the sentiment score
BULLISH_THRESHOLD = 0.2
BEARISH_THRESHOLD = -0.2


def map_payload_to_result(payload: Optional[Dict[str, Any]]) -> PredictionResult:
    """
    Map a Canonical Payload to a PredictionResult.

    The predicted price is parsed loosely (0 when unparseable), the currency
    is the tender unit, riskLevel is always Medium (no risk model exists
    upstream) and the justification is the drivers perspective.
    """
    data = payload if isinstance(payload, dict) else {}
    tender = data.get("tender") if isinstance(data.get("tender"), dict) else {}

    price = to_number_loose(tender.get("tenderPredictedPrice"))
    unit = tender.get("unit")
    notes = data.get("notes")

    return PredictionResult(
        tenderPredictedPrice=0 if price is None else price,
        currency=DEFAULTS.unit if unit is None else str(unit),
        riskLevel=RiskLevel.MEDIUM,
        notes=notes if isinstance(notes, list) else [],
        justification=build_justification(data, JustificationTab.DRIVERS),
    )


def build_multi_items(response: Dict[str, Any]) -> List[MultiItem]:
    """Normalize and map every ``{basisKey, basisLabel, data}`` entry of a multi-basis response."""
    items = []
    for entry in response.get("results") or []:
        entry = entry if isinstance(entry, dict) else {}
        bundle = normalize_payload(entry.get("data"))
        items.append(MultiItem(
            basisKey=str(entry.get("basisKey") or ""),
            basisLabel=str(entry.get("basisLabel") or ""),
            bundle=bundle,
            result=map_payload_to_result(bundle),
        ))
    return items


def shape_forecast_response(raw: Any) -> ForecastView:
    """
    Shape a ``/predict`` response for display.

    Multi-basis responses with at least one result activate their first item;
    anything else (including an empty ``results`` list) is treated as a
    single forecast. The cali tab is selected either way.
    """
    if is_api_multi_response(raw) and raw["results"]:
        items = build_multi_items(raw)
        return ForecastView(
            multi=items,
            activeIdx=0,
            bundle=items[0].bundle,
            result=items[0].result,
            justTab=JustificationTab.CALI,
        )

    bundle = normalize_payload(raw)
    return ForecastView(
        multi=[],
        activeIdx=0,
        bundle=bundle,
        result=map_payload_to_result(bundle),
        justTab=JustificationTab.CALI,
    )


def market_bias(score: Optional[float]) -> MarketBias:
    """Bullish at >= 0.2, Bearish at <= -0.2, Neutral otherwise (and when unknown)."""
    if score is None:
        return MarketBias(label="Neutral", color="orange")
    if score >= BULLISH_THRESHOLD:
        return MarketBias(label="Bullish", color="green")
    if score <= BEARISH_THRESHOLD:
        return MarketBias(label="Bearish", color="red")
    return MarketBias(label="Neutral", color="orange")


def format_unit(unit: Any) -> str:
    """
    >>> format_unit("USD/t")
    'USD/t • per ton'
    >>> format_unit("USD/bbl")
    'USD/bbl'
    """
    text = str(unit if unit is not None else "").strip()
    if not text:
        return ""
    if "/t" in text.lower():
        return f"{text} • per ton"
    return text
