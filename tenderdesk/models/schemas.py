"""
Pydantic request/response models for the Tender Desk service.

Field names follow the camelCase wire format used by the dashboard and the
workflow engine (``tenderPredictedPrice``, ``basePricesByBasis``, ``savedAt``)
so that models dump to the exact JSON the clients exchange.

The Canonical Payload itself stays a plain ``dict``: the workflow output is
open-ended and unknown keys must survive normalization untouched.

All models use Pydantic v2 syntax.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tenderdesk.models.enums import (
    ConfidenceLabel,
    Impact,
    JustificationTab,
    PredictionStatus,
    ReportSource,
    RiskLevel,
    ScreenStatus,
)


# =============================================================================
# Forecast display models
# =============================================================================

class JustificationRow(BaseModel):
    """One human-readable factor explaining a forecast."""

    factor: str
    impact: Impact
    confidence: ConfidenceLabel
    comment: str = ""


class PredictionResult(BaseModel):
    """
    Minimal summary of a Canonical Payload for simple display contexts.

    Derived on demand; never persisted independently of its payload.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tenderPredictedPrice": 410,
                "currency": "USD/t",
                "riskLevel": "Medium",
                "notes": [],
                "justification": [
                    {"factor": "Tender Action", "impact": "Up", "confidence": "Medium", "comment": ""}
                ],
            }
        }
    )

    tenderPredictedPrice: float = 0
    currency: str = "USD/t"
    riskLevel: RiskLevel = RiskLevel.MEDIUM
    notes: List[Any] = Field(default_factory=list)
    justification: List[JustificationRow] = Field(default_factory=list)


class MultiItem(BaseModel):
    """Normalized result for one basis of a multi-basis forecast."""

    basisKey: str = ""
    basisLabel: str = ""
    bundle: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[PredictionResult] = None


class ForecastView(BaseModel):
    """
    Screen-ready shape of one forecast response.

    ``multi`` is empty for single-basis responses; otherwise ``bundle`` and
    ``result`` mirror ``multi[activeIdx]``.
    """

    multi: List[MultiItem] = Field(default_factory=list)
    activeIdx: int = 0
    bundle: Optional[Dict[str, Any]] = None
    result: Optional[PredictionResult] = None
    justTab: JustificationTab = JustificationTab.CALI


class MarketBias(BaseModel):
    label: str
    color: str


# =============================================================================
# Session cache
# =============================================================================

class SavedSession(BaseModel):
    """
    Snapshot of the prediction screen stored in the session cache.

    Every field but ``savedAt`` has a default so that entries written by
    older clients still restore; an entry without ``savedAt`` is a cache miss.
    """

    model_config = ConfigDict(extra="ignore")

    savedAt: Optional[str] = None
    commodity: str = ""
    basis: List[str] = Field(default_factory=list)
    futureDate: str = ""
    status: ScreenStatus = ScreenStatus.IDLE
    justTab: JustificationTab = JustificationTab.CALI
    activeIdx: int = 0
    multi: List[MultiItem] = Field(default_factory=list)
    result: Optional[PredictionResult] = None
    bundle: Optional[Dict[str, Any]] = None
    basePricesByBasis: Dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Request bodies
# =============================================================================

class SessionLoginRequest(BaseModel):
    idToken: Optional[str] = None


class PredictionViewRequest(BaseModel):
    """Raw workflow response to shape, plus the justification tab to render."""

    data: Any = None
    tab: JustificationTab = JustificationTab.DRIVERS


class UploadInitRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    commodity: str = "sulphur"
    filename: str = ""
    contentType: str = "application/octet-stream"
    region: Optional[str] = None


class UploadCompleteRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    objectName: str = ""


class UploadDeleteRequest(BaseModel):
    """Either ``objectName`` or ``objectNames``; the list wins when both are sent."""

    objectName: Optional[Any] = None
    objectNames: Optional[List[Any]] = None


class PricesGenerateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    commodity: str = ""
    sourceObjectName: str = ""
    region: str = ""
    futureDate: str = ""


# =============================================================================
# Persistence and listings
# =============================================================================

class PredictionRecord(BaseModel):
    """A stored prediction as returned by the history endpoint."""

    id: str
    uid: str
    email: Optional[str] = None
    commodity: Optional[str] = None
    futureDate: Optional[str] = None
    basisKeys: List[str] = Field(default_factory=list)
    basisKeysNormalized: List[str] = Field(default_factory=list)
    basisLabels: List[str] = Field(default_factory=list)
    basePrices: List[Optional[float]] = Field(default_factory=list)
    status: PredictionStatus
    workflowHttpStatus: Optional[int] = None
    outputs: Any = None
    error: Optional[Dict[str, Any]] = None
    runtimeMs: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class ReportListItem(BaseModel):
    """A source document in the bucket and whether its clean JSON exists."""

    id: str
    createdAt: str
    commodity: str
    region: str
    fileName: str
    source: ReportSource
    active: bool
    objectName: str
    cleanObjectName: str
    hasClean: bool
    generatedBy: str = "system"
