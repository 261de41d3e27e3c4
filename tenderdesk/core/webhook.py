"""
HTTP client helpers for the external workflow engine (n8n webhooks).

Every webhook receives the shared token twice: as the ``token`` query
parameter and as the ``x-n8n-token`` header. Calls are attempted exactly once.

The httpx.AsyncClient is owned by the caller (a FastAPI dependency in the
service, a context manager in the terminal client), which keeps these helpers
free of global state and lets tests pass a client on an httpx.MockTransport.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx


logger = logging.getLogger(__name__)


TOKEN_HEADER: str = "x-n8n-token"


class WorkflowError(Exception):
    """
    Raised when a workflow webhook answers with a non-2xx status or a body
    that is not JSON.

    Attributes:
        status_code: Upstream HTTP status (502 for unreadable bodies).
        details: Upstream response text, for the caller to surface.
    """

    def __init__(self, status_code: int, details: str = ""):
        self.status_code = status_code
        self.details = details
        super().__init__(f"Workflow webhook failed ({status_code})")


def build_webhook_url(url: str, token: str) -> str:
    """Return ``url`` with ``token`` set as a query parameter (replacing any existing one)."""
    return str(httpx.URL(url).copy_set_param("token", token))


def webhook_headers(token: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers[TOKEN_HEADER] = token
    return headers


async def post_to_workflow(
    client: httpx.AsyncClient,
    url: str,
    token: str,
    payload: Dict[str, Any],
) -> httpx.Response:
    """
    POST ``payload`` as JSON to a tokenized workflow webhook.

    Transport errors (connection refused, DNS, ...) propagate as httpx.HTTPError.
    """
    return await client.post(
        build_webhook_url(url, token),
        json=payload,
        headers=webhook_headers(token),
    )


async def call_workflow_json(
    client: httpx.AsyncClient,
    url: str,
    token: str,
    payload: Dict[str, Any],
) -> Any:
    """
    Call a workflow webhook and decode its JSON reply.

    Returns:
        The decoded JSON value, or None for an empty body.

    Raises:
        WorkflowError: Non-2xx status (with the upstream body as details) or
            a body that is not valid JSON (status 502).
        httpx.HTTPError: Transport failures.
    """
    response = await post_to_workflow(client, url, token, payload)
    text = response.text

    if not response.is_success:
        logger.warning(f"Workflow webhook returned {response.status_code}")
        raise WorkflowError(response.status_code, text)

    if not text:
        return None

    try:
        return json.loads(text)
    except ValueError:
        raise WorkflowError(502, "Workflow returned non-JSON response")
