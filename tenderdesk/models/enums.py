"""
Enumeration definitions for the Tender Desk service.

All enums inherit from both ``str`` and ``Enum`` so they serialize as plain
strings in pydantic models and JSON responses, and compare equal to the raw
strings found in workflow payloads.
"""

from enum import Enum


class Impact(str, Enum):
    """
    Direction a justification factor pushes the decision.

    - Up: supports bidding (price expected to rise)
    - Down: supports offering (price expected to fall)
    - Risk: neutral or uncertain
    """
    UP = "Up"
    DOWN = "Down"
    RISK = "Risk"


class ConfidenceLabel(str, Enum):
    """Discrete confidence label shown next to a decision or factor."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class RiskLevel(str, Enum):
    """
    Risk pill shown on a result.

    No risk model exists upstream; results always carry MEDIUM.
    """
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ScreenStatus(str, Enum):
    """Lifecycle of the prediction screen."""
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class JustificationTab(str, Enum):
    """
    Tabs of the justification panel.

    DRIVERS, RISK and EVIDENCE are perspectives of the justification
    builder. CALI shows the raw cali bid table and is the default tab after a
    run; asking the builder for it yields the evidence perspective.
    """
    DRIVERS = "drivers"
    RISK = "risk"
    EVIDENCE = "evidence"
    CALI = "cali"


class PredictionStatus(str, Enum):
    """Outcome stored on a prediction record."""
    SUCCESS = "success"
    ERROR = "error"


class ReportSource(str, Enum):
    """Top-level object store folder a report was listed from."""
    INCOMING = "incoming"
    ARCHIVE = "archive"


class UploadKind(str, Enum):
    """
    Category of an uploaded source file, derived from its content type.

    - DOC: PDF reports, turned into clean JSON by the price workflow
    - RDATA: CSV / Excel price series
    - GENERAL: anything else accepted by the uploader
    """
    DOC = "doc"
    RDATA = "rdata"
    GENERAL = "general"
