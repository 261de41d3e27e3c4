"""
Tests for the result mapper and forecast view shaping.
"""

import pytest

from tenderdesk.models.enums import Impact, JustificationTab, RiskLevel
from tenderdesk.services.normalizer import normalize_payload
from tenderdesk.services.result_mapper import (
    build_multi_items,
    format_unit,
    map_payload_to_result,
    market_bias,
    shape_forecast_response,
)


class TestMapPayloadToResult:

    def test_maps_canonical_payload(self, canonical_payload) -> None:
        result = map_payload_to_result(normalize_payload(canonical_payload))

        assert result.tenderPredictedPrice == 412.5
        assert result.currency == 'USD/t'
        assert result.riskLevel == RiskLevel.MEDIUM
        assert result.notes == ['note one']
        assert len(result.justification) == 1
        assert result.justification[0].factor == 'Tender Action'
        assert result.justification[0].impact == Impact.UP

    @pytest.mark.parametrize('price, expected', [
        ('≈ 398.25 USD', 398.25),
        ('n/a', 0),
        (None, 0),
        ('9' * 400 + '.5', 0),
        (10 ** 400, 0),
    ])
    def test_price_is_parsed_loosely(self, price, expected) -> None:
        result = map_payload_to_result({'tender': {'tenderPredictedPrice': price}})
        assert result.tenderPredictedPrice == expected

    def test_defaults_without_tender(self) -> None:
        result = map_payload_to_result(None)

        assert result.tenderPredictedPrice == 0
        assert result.currency == 'USD/t'
        assert result.notes == []

    def test_risk_level_is_always_medium(self) -> None:
        result = map_payload_to_result({'tender': {'riskLevel': 'High'}, 'riskLevel': 'High'})
        assert result.riskLevel == RiskLevel.MEDIUM

    def test_non_list_notes_are_dropped(self) -> None:
        assert map_payload_to_result({'tender': {}, 'notes': 'text'}).notes == []

    def test_custom_unit(self) -> None:
        assert map_payload_to_result({'tender': {'unit': 'USD/bbl'}}).currency == 'USD/bbl'


class TestShapeForecastResponse:

    def test_single_response(self, encoded_envelope) -> None:
        view = shape_forecast_response(encoded_envelope)

        assert view.multi == []
        assert view.activeIdx == 0
        assert view.bundle['tender']['tenderAction'] == 'BUY BID'
        assert view.result.tenderPredictedPrice == 412.5
        assert view.justTab == JustificationTab.CALI

    def test_multi_response_activates_first_item(self, multi_response) -> None:
        view = shape_forecast_response(multi_response)

        assert [item.basisLabel for item in view.multi] == ['Middle East', 'US Gulf']
        assert view.bundle == view.multi[0].bundle
        assert view.result == view.multi[0].result
        assert view.multi[1].result.tenderPredictedPrice == 410
        assert view.multi[1].bundle['tender']['tenderAction'] == 'BID'

    def test_empty_results_fall_back_to_single(self) -> None:
        view = shape_forecast_response({'results': []})

        assert view.multi == []
        assert view.bundle['tender']['tenderAction'] == 'PASS'

    def test_multi_items_tolerate_malformed_entries(self) -> None:
        items = build_multi_items({'results': [None, {'basisKey': 'iran'}]})

        assert [item.basisKey for item in items] == ['', 'iran']
        assert all(isinstance(item.bundle['tender'], dict) for item in items)


class TestDisplayHelpers:

    @pytest.mark.parametrize('score, label', [
        (0.2, 'Bullish'),
        (0.5, 'Bullish'),
        (0.19, 'Neutral'),
        (-0.19, 'Neutral'),
        (-0.2, 'Bearish'),
        (None, 'Neutral'),
    ])
    def test_market_bias(self, score, label) -> None:
        assert market_bias(score).label == label

    def test_format_unit(self) -> None:
        assert format_unit('USD/t') == 'USD/t • per ton'
        assert format_unit('USD/bbl') == 'USD/bbl'
        assert format_unit(None) == ''
