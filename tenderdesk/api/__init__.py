"""
API routers for the Tender Desk service.

Routers:
    predict: POST /predict, POST /prediction/view
    history: GET /predictions, DELETE /predictions/{id}
    session: POST /session/login, POST /session/logout
    reports: GET /report/list, GET /report/read, GET /files/signedread
    uploads: /upload/init, /upload/put, /upload/complete, /upload/delete,
        /upload/list, /upload/readurl
    workflows: POST /prices/generate, POST /workflow/test-text
"""

from fastapi import APIRouter

from tenderdesk.api.history import router as history_router
from tenderdesk.api.predict import router as predict_router
from tenderdesk.api.reports import router as reports_router
from tenderdesk.api.session import router as session_router
from tenderdesk.api.uploads import router as uploads_router
from tenderdesk.api.workflows import router as workflows_router

api_router = APIRouter()

api_router.include_router(predict_router, tags=["predict"])
api_router.include_router(history_router, prefix="/predictions", tags=["history"])
api_router.include_router(session_router, prefix="/session", tags=["session"])
api_router.include_router(reports_router, tags=["reports"])
api_router.include_router(uploads_router, prefix="/upload", tags=["uploads"])
api_router.include_router(workflows_router, tags=["workflows"])
