"""
Business logic for the Tender Desk service.

Submodules:
    normalizer: Raw workflow JSON -> Canonical Payload
    justification: Factor rows for the drivers / risk / evidence tabs
    result_mapper: Canonical Payload -> PredictionResult / ForecastView
    session_cache: TTL cache of the last forecast per (commodity, basis set)
    prediction_session: Prediction screen controller over the session cache
    orchestrator: POST /predict validation, workflow call and persistence
    prediction_store: Prediction records and history
    reports: Report listing and reading in object storage
    uploads: Upload lifecycle and price generation
"""

from tenderdesk.services.justification import build_justification
from tenderdesk.services.normalizer import DEFAULTS, NormalizerDefaults, normalize_payload
from tenderdesk.services.result_mapper import map_payload_to_result, shape_forecast_response

__all__ = [
    'DEFAULTS',
    'NormalizerDefaults',
    'build_justification',
    'map_payload_to_result',
    'normalize_payload',
    'shape_forecast_response',
]
