"""
Tests for the session cache: key derivation, entry primitives, expiry and
the JSON file store used by the terminal client.
"""

import json
from datetime import timedelta

import pytest

from tenderdesk.models.enums import JustificationTab, ScreenStatus
from tenderdesk.models.schemas import MultiItem, PredictionResult, SavedSession
from tenderdesk.services.session_cache import (
    LS_BASE_PRICE,
    LS_BASIS,
    LS_COMMODITY,
    PRINT_PREFIX,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    clear_prediction_storage,
    get_entry,
    is_expired,
    make_storage_key,
    persist_session,
    restore_session,
    set_entry,
    should_persist,
)


@pytest.fixture
def saved_session() -> SavedSession:
    return SavedSession(
        commodity='sulphur',
        basis=['us-gulf', 'middle-east'],
        futureDate='2026-11-03',
        status=ScreenStatus.SUCCESS,
        justTab=JustificationTab.RISK,
        activeIdx=1,
        multi=[
            MultiItem(basisKey='middle east', basisLabel='Middle East', bundle={'tender': {'unit': 'USD/t'}},
                      result=PredictionResult(tenderPredictedPrice=410)),
            MultiItem(basisKey='us gulf', basisLabel='US Gulf', bundle={'tender': {}},
                      result=PredictionResult(tenderPredictedPrice=398.5)),
        ],
        basePricesByBasis={'middle-east': '405', 'us-gulf': ''},
    )


class TestStorageKey:

    @pytest.mark.contract
    def test_invariant_under_basis_permutation(self) -> None:
        assert make_storage_key('sulphur', ['a', 'b']) == make_storage_key('sulphur', ['b', 'a'])

    def test_layout(self) -> None:
        key = make_storage_key('Sulphur', ['us-gulf', 'Middle-East'])
        assert key == 'prediction:lastResult:v2:sulphur::middle-east|us-gulf'

    def test_does_not_reorder_caller_list(self) -> None:
        basis = ['b', 'a']
        make_storage_key('urea', basis)
        assert basis == ['b', 'a']

    def test_empty_basis(self) -> None:
        assert make_storage_key('urea', []) == 'prediction:lastResult:v2:urea::'


class TestEntryPrimitives:

    def test_round_trip_within_max_age(self, kv_store, saved_session, fixed_now) -> None:
        key = make_storage_key(saved_session.commodity, saved_session.basis)
        set_entry(kv_store, key, saved_session, fixed_now)

        restored = restore_session(
            kv_store, 'sulphur', ['middle-east', 'us-gulf'], fixed_now + timedelta(hours=23, minutes=59),
        )

        assert restored is not None
        assert restored.futureDate == saved_session.futureDate
        assert restored.basePricesByBasis == saved_session.basePricesByBasis
        assert restored.multi == saved_session.multi
        assert restored.savedAt == fixed_now.isoformat()

    def test_expired_entry_is_removed(self, kv_store, saved_session, fixed_now) -> None:
        key = make_storage_key(saved_session.commodity, saved_session.basis)
        set_entry(kv_store, key, saved_session, fixed_now)

        restored = restore_session(kv_store, 'sulphur', saved_session.basis, fixed_now + timedelta(hours=24, seconds=1))

        assert restored is None
        assert kv_store.get_item(key) is None

    def test_exactly_max_age_is_not_expired(self, saved_session, fixed_now) -> None:
        entry = saved_session.model_copy(update={'savedAt': fixed_now.isoformat()})
        assert is_expired(entry, fixed_now + timedelta(hours=24)) is False

    def test_unparseable_saved_at_is_expired(self, saved_session, fixed_now) -> None:
        entry = saved_session.model_copy(update={'savedAt': 'yesterday'})
        assert is_expired(entry, fixed_now) is True

    def test_zulu_timestamps_are_accepted(self, saved_session, fixed_now) -> None:
        entry = saved_session.model_copy(update={'savedAt': '2026-10-19T11:00:00.000Z'})
        assert is_expired(entry, fixed_now) is False

    @pytest.mark.parametrize('stored', [
        '{not json',
        '[]',
        json.dumps({'commodity': 'sulphur'}),
        json.dumps({'savedAt': '2026-10-19T11:00:00Z', 'activeIdx': 'first'}),
    ])
    def test_corrupt_entries_are_misses(self, stored) -> None:
        store = InMemoryKeyValueStore({'k': stored})
        assert get_entry(store, 'k') is None

    def test_missing_key_is_a_miss(self, kv_store, fixed_now) -> None:
        assert restore_session(kv_store, 'sulphur', ['iran'], fixed_now) is None


class TestWriteContract:

    def test_should_persist_requires_success(self, saved_session) -> None:
        assert should_persist(saved_session) is True
        assert should_persist(saved_session.model_copy(update={'status': ScreenStatus.ERROR})) is False

    def test_should_persist_requires_something_to_show(self) -> None:
        empty = SavedSession(commodity='sulphur', basis=['iran'], status=ScreenStatus.SUCCESS)
        assert should_persist(empty) is False
        assert should_persist(empty.model_copy(update={'bundle': {'tender': {}}})) is True

    def test_persist_writes_under_own_key(self, kv_store, saved_session, fixed_now) -> None:
        snapshot = persist_session(kv_store, saved_session, fixed_now)

        key = make_storage_key('sulphur', ['middle-east', 'us-gulf'])
        assert snapshot.savedAt == fixed_now.isoformat()
        assert json.loads(kv_store.get_item(key))['savedAt'] == fixed_now.isoformat()

    def test_persist_skips_idle_screens(self, kv_store, fixed_now) -> None:
        assert persist_session(kv_store, SavedSession(commodity='urea'), fixed_now) is None
        assert kv_store.keys() == []


class TestClearPredictionStorage:

    def test_removes_forecasts_prints_and_selections(self, kv_store) -> None:
        kv_store.set_item(make_storage_key('sulphur', ['iran']), '{}')
        kv_store.set_item(f'{PRINT_PREFIX}abc', '{}')
        kv_store.set_item(LS_BASIS, '["iran"]')
        kv_store.set_item(LS_BASE_PRICE, '{}')
        kv_store.set_item(LS_COMMODITY, 'sulphur')
        kv_store.set_item('unrelated', 'x')

        removed = clear_prediction_storage(kv_store)

        assert len(removed) == 4
        assert sorted(kv_store.keys()) == [LS_COMMODITY, 'unrelated']


class TestJsonFileKeyValueStore:

    def test_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / 'cache' / 'session.json'
        JsonFileKeyValueStore(path).set_item('a', '1')

        reopened = JsonFileKeyValueStore(path)
        assert reopened.get_item('a') == '1'
        assert reopened.keys() == ['a']

        reopened.remove_item('a')
        assert JsonFileKeyValueStore(path).get_item('a') is None

    def test_corrupt_file_behaves_as_empty(self, tmp_path) -> None:
        path = tmp_path / 'session.json'
        path.write_text('{broken', encoding='utf-8')

        store = JsonFileKeyValueStore(path)
        assert store.get_item('a') is None

        store.set_item('a', '1')
        assert json.loads(path.read_text(encoding='utf-8')) == {'a': '1'}

    def test_round_trip_through_file(self, tmp_path, saved_session, fixed_now) -> None:
        store = JsonFileKeyValueStore(tmp_path / 'session.json')
        persist_session(store, saved_session, fixed_now)

        restored = restore_session(store, 'sulphur', ['us-gulf', 'middle-east'], fixed_now + timedelta(hours=1))
        assert restored.multi == saved_session.multi
