"""
Justification Builder

Derives the factor / impact / confidence / comment rows shown in the
justification panel from a Canonical Payload. Three perspectives exist:

- drivers: one "Tender Action" row explaining the recommended action
- risk: one "Model Limits" row listing what the workflow did not provide
- evidence: market sentiment plus top events, falling back to notes

Any other tab name (including "cali") gets the evidence perspective.
``news.events`` is never read; only ``payload.evidence`` feeds event rows.

Pure and deterministic: the payload is only read.
"""

import math
from typing import Any, Dict, List, Optional, Union

from tenderdesk.models.enums import ConfidenceLabel, Impact, JustificationTab
from tenderdesk.models.schemas import JustificationRow
from tenderdesk.services.normalizer import (
    action_to_impact,
    is_finite_number,
    is_number,
    normalize_confidence,
)


# =============================================================================
# Row text
# =============================================================================

COMMENT_SEPARATOR = " • "
PLACEHOLDER = "—"

MAX_EVENT_ROWS = 6
MAX_NOTE_ROWS = 6

RISK_DISCLAIMER = "Risk is not explicitly returned by the workflow; using a default risk pill for now."
NO_EVIDENCE_COMMENT = "No evidence returned."

# (payload field, reason) in reporting order; caliBidTable is checked separately
RISK_FIELD_REASONS = [
    ("expectedRange", "Expected range missing"),
    ("expectedSellingPrice", "Expected selling price missing"),
    ("spotPricesText", "Spot prices text missing"),
]
CALI_TABLE_REASON = "Cali table missing"


def _is_truthy(value: Any) -> bool:
    """Presence test used for optional payload fields; empty containers count as present."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def format_number(value: Union[int, float]) -> str:
    """Render a number the way the dashboard prints it: 1.0 -> "1", 0.42 -> "0.42"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _direction_to_impact(direction: Any) -> Impact:
    if direction == "bullish":
        return Impact.UP
    if direction == "bearish":
        return Impact.DOWN
    return Impact.RISK


def _sentiment_to_impact(category: Any) -> Impact:
    if category == "Positive":
        return Impact.UP
    if category == "Negative":
        return Impact.DOWN
    return Impact.RISK


# =============================================================================
# Perspectives
# =============================================================================

def drivers_rows(payload: Optional[Dict[str, Any]]) -> List[JustificationRow]:
    tender = _as_dict(_as_dict(payload).get("tender"))
    signals = _as_dict(tender.get("signals"))

    action = tender.get("tenderAction")
    trend = signals.get("trend")
    sentiment_score = signals.get("sentimentScore")

    parts = [
        str(tender["rationale"]) if _is_truthy(tender.get("rationale")) else "",
        f"Signals: {trend}" if _is_truthy(trend) else "",
        f"Sentiment: {sentiment_score:.2f}" if is_finite_number(sentiment_score) else "",
    ]

    decision = tender.get("decisionConfidence")
    confidence = normalize_confidence(decision if decision is not None else tender.get("confidence"))

    return [
        JustificationRow(
            factor="Tender Action",
            impact=action_to_impact("PASS" if action is None else action),
            confidence=confidence,
            comment=COMMENT_SEPARATOR.join(part for part in parts if part),
        )
    ]


def risk_rows(payload: Optional[Dict[str, Any]]) -> List[JustificationRow]:
    data = _as_dict(payload)

    missing = [reason for field, reason in RISK_FIELD_REASONS if not _is_truthy(data.get(field))]
    if not isinstance(data.get("caliBidTable"), list):
        missing.append(CALI_TABLE_REASON)

    if missing:
        comment = f"Some fields are not provided by the workflow: {', '.join(missing)}."
    else:
        comment = RISK_DISCLAIMER

    return [
        JustificationRow(
            factor="Model Limits",
            impact=Impact.RISK,
            confidence=ConfidenceLabel.MEDIUM,
            comment=comment,
        )
    ]


def evidence_rows(payload: Optional[Dict[str, Any]]) -> List[JustificationRow]:
    """
    Sentiment rows followed by up to 6 event rows.

    Without events, up to 6 note rows replace everything (sentiment rows
    included); with neither, a single "No evidence returned." row.
    """
    data = _as_dict(payload)
    sentiment = _as_dict(_as_dict(data.get("news")).get("shortTermSentiment"))
    events = data.get("evidence") if isinstance(data.get("evidence"), list) else []
    notes = data.get("notes") if isinstance(data.get("notes"), list) else []

    rows: List[JustificationRow] = []

    category = sentiment.get("category")
    score = sentiment.get("score")
    if _is_truthy(category) or score is not None:
        score_text = f" ({format_number(score)})" if is_finite_number(score) else ""
        rows.append(JustificationRow(
            factor="Short-term sentiment",
            impact=_sentiment_to_impact(category),
            confidence=ConfidenceLabel.MEDIUM,
            comment=f"{PLACEHOLDER if category is None else category}{score_text}",
        ))

        if _is_truthy(sentiment.get("rationale")):
            rows.append(JustificationRow(
                factor="Sentiment rationale",
                impact=Impact.RISK,
                confidence=ConfidenceLabel.MEDIUM,
                comment=str(sentiment["rationale"]),
            ))

    if events:
        for index, raw_event in enumerate(events[:MAX_EVENT_ROWS]):
            event = _as_dict(raw_event)
            headline = event.get("headline")
            importance = event.get("importance_score")
            importance_text = f" (importance {format_number(importance)})" if is_finite_number(importance) else ""

            rows.append(JustificationRow(
                factor="Top market-moving events" if index == 0 else "Event",
                impact=_direction_to_impact(event.get("impact_direction")),
                confidence=ConfidenceLabel.MEDIUM,
                comment=f"{PLACEHOLDER if headline is None else headline}{importance_text}",
            ))
        return rows

    if notes:
        return [
            JustificationRow(
                factor="Evidence Notes" if index == 0 else "Note",
                impact=Impact.RISK,
                confidence=ConfidenceLabel.MEDIUM,
                comment=str(note),
            )
            for index, note in enumerate(notes[:MAX_NOTE_ROWS])
        ]

    return [
        JustificationRow(
            factor="Evidence",
            impact=Impact.RISK,
            confidence=ConfidenceLabel.LOW,
            comment=NO_EVIDENCE_COMMENT,
        )
    ]


def build_justification(
    payload: Optional[Dict[str, Any]],
    tab: Union[JustificationTab, str],
) -> List[JustificationRow]:
    """
    Build the justification rows for one tab.

    Args:
        payload: Canonical Payload, or None when no forecast is loaded.
        tab: "drivers", "risk", "evidence"; any other value renders evidence.

    Returns:
        List[JustificationRow]: Exactly one row for drivers and risk; one to
        eight rows for evidence.
    """
    tab_value = tab.value if isinstance(tab, JustificationTab) else str(tab)

    if tab_value == JustificationTab.DRIVERS.value:
        return drivers_rows(payload)
    if tab_value == JustificationTab.RISK.value:
        return risk_rows(payload)
    return evidence_rows(payload)
