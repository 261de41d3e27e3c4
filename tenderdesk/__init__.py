"""
Tender Desk: commodity tender price forecasting service.

Packages:
    core: Settings, database pool, auth, object storage, webhook client
    models: Enumerations, pydantic schemas and reference options
    services: Payload normalization, justification, result mapping,
        session cache and request orchestration
    api: FastAPI routers
    sql: Parameterized SQL for the prediction records
"""

__version__ = "1.0.0"
