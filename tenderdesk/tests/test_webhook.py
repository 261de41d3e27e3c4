"""
Tests for the workflow webhook helpers.
"""

import httpx
import pytest

from tenderdesk.core.webhook import (
    TOKEN_HEADER,
    WorkflowError,
    build_webhook_url,
    call_workflow_json,
    webhook_headers,
)


class TestWebhookRequest:

    def test_token_is_added_as_query_parameter(self) -> None:
        url = build_webhook_url('https://n8n.test/webhook/forecast', 'abc')
        assert httpx.URL(url).params['token'] == 'abc'

    def test_existing_token_is_replaced(self) -> None:
        url = build_webhook_url('https://n8n.test/webhook/forecast?token=old&x=1', 'new')
        params = httpx.URL(url).params

        assert params.get_list('token') == ['new']
        assert params['x'] == '1'

    def test_headers(self) -> None:
        assert webhook_headers('abc')[TOKEN_HEADER] == 'abc'
        assert TOKEN_HEADER not in webhook_headers(None)

    def test_workflow_error_message(self) -> None:
        error = WorkflowError(503, 'maintenance')
        assert str(error) == 'Workflow webhook failed (503)'
        assert error.details == 'maintenance'


@pytest.mark.asyncio
class TestCallWorkflowJson:

    async def test_decodes_json(self, make_http_client) -> None:
        async with make_http_client(lambda request: httpx.Response(200, json=[{'output': '{}'}])) as client:
            data = await call_workflow_json(client, 'https://n8n.test/w', 't', {'a': 1})

        assert data == [{'output': '{}'}]

    async def test_empty_body_is_none(self, make_http_client) -> None:
        async with make_http_client(lambda request: httpx.Response(204)) as client:
            assert await call_workflow_json(client, 'https://n8n.test/w', 't', {}) is None

    async def test_non_2xx_raises_with_details(self, make_http_client) -> None:
        async with make_http_client(lambda request: httpx.Response(422, text='bad basis')) as client:
            with pytest.raises(WorkflowError) as exc_info:
                await call_workflow_json(client, 'https://n8n.test/w', 't', {})

        assert exc_info.value.status_code == 422
        assert exc_info.value.details == 'bad basis'

    async def test_invalid_json_is_502(self, make_http_client) -> None:
        async with make_http_client(lambda request: httpx.Response(200, text='Accepted')) as client:
            with pytest.raises(WorkflowError) as exc_info:
                await call_workflow_json(client, 'https://n8n.test/w', 't', {})

        assert exc_info.value.status_code == 502
