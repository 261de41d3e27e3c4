"""
Data models for the Tender Desk service.

Submodules:
    enums: str-valued enumerations shared by schemas and services
    schemas: Pydantic models in the camelCase wire format
    options: Commodity and basis reference options
"""

from tenderdesk.models.enums import (
    ConfidenceLabel,
    Impact,
    JustificationTab,
    PredictionStatus,
    ReportSource,
    RiskLevel,
    ScreenStatus,
    UploadKind,
)
from tenderdesk.models.schemas import (
    ForecastView,
    JustificationRow,
    MarketBias,
    MultiItem,
    PredictionRecord,
    PredictionResult,
    ReportListItem,
    SavedSession,
)

__all__ = [
    'ConfidenceLabel',
    'Impact',
    'JustificationTab',
    'PredictionStatus',
    'ReportSource',
    'RiskLevel',
    'ScreenStatus',
    'UploadKind',
    'ForecastView',
    'JustificationRow',
    'MarketBias',
    'MultiItem',
    'PredictionRecord',
    'PredictionResult',
    'ReportListItem',
    'SavedSession',
]
