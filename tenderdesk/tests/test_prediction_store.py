"""
Tests for the prediction record store: the createdAt-preserving upsert,
deletion ownership checks, history filtering and KPIs.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from tenderdesk.models.enums import PredictionStatus
from tenderdesk.models.schemas import PredictionRecord
from tenderdesk.services.prediction_store import (
    PredictionNotFoundError,
    PredictionOwnershipError,
    delete_prediction,
    filter_predictions,
    insert_prediction,
    list_predictions,
    record_from_row,
    save_prediction,
    summarize_predictions,
)
from tenderdesk.sql.prediction_queries import (
    DELETE_PREDICTION,
    LIST_PREDICTIONS_FOR_USER,
    get_upsert_prediction_query,
)


def make_record(**overrides) -> PredictionRecord:
    data = {
        'id': 'uid1__sulphur__2026-11-03',
        'uid': 'uid1',
        'commodity': 'sulphur',
        'futureDate': '2026-11-03',
        'basisKeys': ['middle-east'],
        'basisLabels': ['Middle East'],
        'status': PredictionStatus.SUCCESS,
        'runtimeMs': 1200,
    }
    data.update(overrides)
    return PredictionRecord(**data)


def make_row(created_at: datetime) -> dict:
    return {
        'id': 'uid1__urea__2026-11-03',
        'uid': 'uid1',
        'email': 'trader@example.com',
        'commodity': 'urea',
        'future_date': '2026-11-03',
        'basis_keys': json.dumps(['us-gulf']),
        'basis_keys_normalized': json.dumps(['us gulf']),
        'basis_labels': json.dumps(['US Gulf']),
        'base_prices': json.dumps([None]),
        'status': 'error',
        'workflow_http_status': 500,
        'outputs': None,
        'error': json.dumps({'message': 'Workflow webhook failed (500)'}),
        'runtime_ms': 800,
        'created_at': created_at,
        'updated_at': created_at,
    }


# =============================================================================
# Writes
# =============================================================================

@pytest.mark.asyncio
class TestSavePrediction:

    async def test_first_write_uses_now_as_created_at(self, mock_conn, fixed_now) -> None:
        created_at = await save_prediction(mock_conn, 'p1', {'uid': 'u', 'status': 'success'}, fixed_now)

        assert created_at == fixed_now
        query, prediction_id, created, *values = mock_conn.execute.call_args.args
        assert query == get_upsert_prediction_query(['updated_at', 'uid', 'status'])
        assert (prediction_id, created) == ('p1', fixed_now)
        assert values == [fixed_now, 'u', 'success']

    async def test_overwrite_keeps_existing_created_at(self, mock_conn, fixed_now) -> None:
        original = fixed_now - timedelta(days=3)
        mock_conn.fetchval.return_value = original

        created_at = await save_prediction(mock_conn, 'p1', {'status': 'error'}, fixed_now)

        assert created_at == original
        assert mock_conn.execute.call_args.args[2] == original

    async def test_json_fields_are_encoded(self, mock_conn, fixed_now) -> None:
        await save_prediction(mock_conn, 'p1', {'outputs': {'tender': {}}, 'error': None}, fixed_now)

        *_, outputs, error = mock_conn.execute.call_args.args
        assert outputs == '{"tender": {}}'
        assert error is None

    async def test_unknown_fields_are_rejected(self, mock_conn, fixed_now) -> None:
        with pytest.raises(ValueError, match='Unknown prediction field'):
            await save_prediction(mock_conn, 'p1', {'bogus': 1}, fixed_now)
        mock_conn.execute.assert_not_awaited()

    async def test_insert_prediction_generates_id(self, mock_conn, fixed_now) -> None:
        prediction_id = await insert_prediction(mock_conn, {'status': 'error'}, fixed_now)

        assert len(prediction_id) == 32
        assert mock_conn.execute.call_args.args[1] == prediction_id


@pytest.mark.asyncio
class TestDeletePrediction:

    async def test_deletes_own_record(self, mock_conn) -> None:
        mock_conn.fetchval.return_value = 'uid1'

        await delete_prediction(mock_conn, 'p1', 'uid1')

        mock_conn.execute.assert_awaited_once_with(DELETE_PREDICTION, 'p1')

    async def test_missing_record(self, mock_conn) -> None:
        with pytest.raises(PredictionNotFoundError):
            await delete_prediction(mock_conn, 'p1', 'uid1')

    async def test_other_users_record(self, mock_conn) -> None:
        mock_conn.fetchval.return_value = 'someone-else'

        with pytest.raises(PredictionOwnershipError):
            await delete_prediction(mock_conn, 'p1', 'uid1')
        mock_conn.execute.assert_not_awaited()


# =============================================================================
# History
# =============================================================================

@pytest.mark.asyncio
class TestListPredictions:

    async def test_rows_are_decoded(self, mock_conn, fixed_now) -> None:
        mock_conn.fetch.return_value = [make_row(fixed_now)]

        [record] = await list_predictions(mock_conn, 'uid1')

        mock_conn.fetch.assert_awaited_once_with(LIST_PREDICTIONS_FOR_USER, 'uid1', 100)
        assert record.basisLabels == ['US Gulf']
        assert record.basePrices == [None]
        assert record.status == PredictionStatus.ERROR
        assert record.error == {'message': 'Workflow webhook failed (500)'}
        assert record.createdAt == fixed_now


class TestFilterAndSummarize:

    def test_record_from_row_accepts_decoded_json(self) -> None:
        row = make_row(datetime(2026, 1, 1, tzinfo=timezone.utc))
        row['basis_keys'] = ['us-gulf']
        assert record_from_row(row).basisKeys == ['us-gulf']

    def test_status_filter(self) -> None:
        records = [make_record(), make_record(id='b', status=PredictionStatus.ERROR)]

        assert [r.id for r in filter_predictions(records, status='error')] == ['b']
        assert len(filter_predictions(records, status='all')) == 2
        assert len(filter_predictions(records)) == 2

    def test_text_filter_matches_labels_and_keys(self) -> None:
        records = [
            make_record(),
            make_record(id='b', commodity='urea', basisKeys=['us-gulf'], basisLabels=['US Gulf']),
        ]

        assert [r.id for r in filter_predictions(records, query='gulf')] == ['b']
        assert [r.id for r in filter_predictions(records, query=' MIDDLE ')] == ['uid1__sulphur__2026-11-03']
        assert filter_predictions(records, query='vancouver') == []

    def test_summary(self) -> None:
        records = [
            make_record(),
            make_record(id='b', runtimeMs=800),
            make_record(id='c', commodity='urea', status=PredictionStatus.ERROR, runtimeMs=None),
        ]

        assert summarize_predictions(records) == {
            'total': 3,
            'success': 2,
            'error': 1,
            'rate': 67,
            'topCommodity': 'sulphur',
            'topCount': 2,
            'avgRuntimeMs': 1000,
        }

    def test_summary_of_nothing(self) -> None:
        summary = summarize_predictions([])
        assert summary['rate'] == 0
        assert summary['topCommodity'] == '—'
        assert summary['avgRuntimeMs'] == 0
