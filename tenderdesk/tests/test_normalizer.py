"""
Tests for the workflow payload normalizer.

Test Classes:
- TestLooseHelpers: number / confidence / action parsing
- TestAlignmentLabel: exact alignment score thresholds
- TestDiscriminatorSteps: each envelope step in isolation
- TestNormalizePayload: the whole pipeline, totality and idempotence
"""

import copy
import json
import math

import pytest

from tenderdesk.models.enums import ConfidenceLabel, Impact
from tenderdesk.services.normalizer import (
    DEFAULTS,
    NormalizerDefaults,
    PayloadShape,
    action_to_impact,
    classify_payload,
    decode_output_envelope,
    derive_decision_confidence,
    is_api_multi_response,
    is_finite_number,
    is_number,
    label_from_alignment_score,
    normalize_confidence,
    normalize_payload,
    promote_output_object,
    safe_json_parse,
    synthesize_tender,
    to_number_loose,
    unwrap_list,
)


# =============================================================================
# Test Class: TestLooseHelpers
# =============================================================================

class TestLooseHelpers:

    @pytest.mark.parametrize('value, expected', [
        (410, 410),
        (410.5, 410.5),
        ('410', 410),
        ('USD 412.75/t', 412.75),
        ('-3.5 spread', -3.5),
        ('no digits', None),
        (None, None),
        (float('nan'), None),
        (float('inf'), None),
        ([410], None),
    ])
    def test_to_number_loose(self, value, expected) -> None:
        assert to_number_loose(value) == expected

    @pytest.mark.parametrize('value', [
        '9' * 400 + '.5',
        '1' * 400,
        '7' * 5000,
        10 ** 400,
    ])
    def test_to_number_loose_rejects_numbers_too_large_for_a_float(self, value) -> None:
        assert to_number_loose(value) is None

    def test_huge_integers_are_not_finite(self) -> None:
        assert is_finite_number(10 ** 400) is False
        assert is_finite_number(-(10 ** 400)) is False
        assert is_finite_number(10 ** 300) is True

    def test_to_number_loose_keeps_integers_integral(self) -> None:
        assert isinstance(to_number_loose('410'), int)

    def test_booleans_are_not_numbers(self) -> None:
        assert is_number(True) is False
        assert to_number_loose(True) is None

    @pytest.mark.parametrize('value, expected', [
        ('high', ConfidenceLabel.HIGH),
        (' HIGH ', ConfidenceLabel.HIGH),
        ('Low', ConfidenceLabel.LOW),
        ('medium', ConfidenceLabel.MEDIUM),
        ('very high', ConfidenceLabel.MEDIUM),
        (None, ConfidenceLabel.MEDIUM),
        (0.9, ConfidenceLabel.MEDIUM),
    ])
    def test_normalize_confidence(self, value, expected) -> None:
        assert normalize_confidence(value) == expected

    @pytest.mark.parametrize('action, expected', [
        ('BUY BID', Impact.UP),
        ('BID', Impact.UP),
        (' bid ', Impact.UP),
        ('SELL OFFER', Impact.DOWN),
        ('OFFER', Impact.DOWN),
        ('PASS', Impact.RISK),
        ('HOLD', Impact.RISK),
        ('BUY', Impact.RISK),
        ('', Impact.RISK),
        (None, Impact.RISK),
    ])
    def test_action_to_impact_mapping_is_exact(self, action, expected) -> None:
        assert action_to_impact(action) == expected

    def test_safe_json_parse_treats_garbage_as_none(self) -> None:
        assert safe_json_parse(None) is None
        assert safe_json_parse('') is None
        assert safe_json_parse('{not json') is None
        assert safe_json_parse('{"a": 1}') == {'a': 1}

    def test_is_api_multi_response(self) -> None:
        assert is_api_multi_response({'results': []}) is True
        assert is_api_multi_response({'results': {}}) is False
        assert is_api_multi_response([{'results': []}]) is False


# =============================================================================
# Test Class: TestAlignmentLabel
# =============================================================================

@pytest.mark.contract
class TestAlignmentLabel:

    @pytest.mark.parametrize('score, expected', [
        (0.0, ConfidenceLabel.LOW),
        (0.2, ConfidenceLabel.LOW),
        (0.3499, ConfidenceLabel.LOW),
        (0.35, ConfidenceLabel.MEDIUM),
        (0.42, ConfidenceLabel.MEDIUM),
        (0.5999, ConfidenceLabel.MEDIUM),
        (0.6, ConfidenceLabel.HIGH),
        (1.0, ConfidenceLabel.HIGH),
        (1, ConfidenceLabel.HIGH),
    ])
    def test_thresholds(self, score, expected) -> None:
        assert label_from_alignment_score(score) == expected

    def test_whole_unit_interval(self) -> None:
        """Every score in [0, 1] in steps of 0.01 lands in the expected band."""
        for step in range(101):
            score = step / 100
            label = label_from_alignment_score(score)
            if score < 0.35:
                assert label == ConfidenceLabel.LOW
            elif score < 0.6:
                assert label == ConfidenceLabel.MEDIUM
            else:
                assert label == ConfidenceLabel.HIGH

    @pytest.mark.parametrize('score', [None, 'high', float('nan'), math.inf, 10 ** 400])
    def test_non_finite_scores_are_low(self, score) -> None:
        assert label_from_alignment_score(score) == ConfidenceLabel.LOW


# =============================================================================
# Test Class: TestDiscriminatorSteps
# =============================================================================

class TestDiscriminatorSteps:

    def test_classify_payload(self, canonical_payload, flat_payload) -> None:
        assert classify_payload([]) == PayloadShape.LIST_WRAPPED
        assert classify_payload(None) == PayloadShape.EMPTY
        assert classify_payload({}) == PayloadShape.EMPTY
        assert classify_payload({'output': '{}'}) == PayloadShape.ENCODED_ENVELOPE
        assert classify_payload({'output': {'tenderAction': 'BID'}}) == PayloadShape.OBJECT_ENVELOPE
        assert classify_payload(canonical_payload) == PayloadShape.CANONICAL
        assert classify_payload(flat_payload) == PayloadShape.FLAT_TENDER

    def test_unwrap_list(self) -> None:
        assert unwrap_list([{'a': 1}, {'b': 2}]) == {'a': 1}
        assert unwrap_list([]) is None
        assert unwrap_list({'a': 1}) == {'a': 1}

    def test_decode_output_envelope(self, canonical_payload) -> None:
        envelope = {'output': json.dumps(canonical_payload)}
        assert decode_output_envelope(envelope) == canonical_payload

    def test_decode_output_envelope_leaves_bad_strings(self) -> None:
        envelope = {'output': 'not json at all'}
        assert decode_output_envelope(envelope) is envelope

    def test_decode_output_envelope_leaves_non_object_json(self) -> None:
        envelope = {'output': '"just a string"'}
        assert decode_output_envelope(envelope) is envelope

    def test_promote_output_object_requires_forecast_marker(self) -> None:
        inner = {'caliBidTable': []}
        assert promote_output_object({'output': inner}) is inner

        not_forecast = {'output': {'message': 'hello'}}
        assert promote_output_object(not_forecast) is not_forecast

    def test_synthesize_tender_from_root_fields(self, flat_payload) -> None:
        result = synthesize_tender(flat_payload)

        assert result['tender'] == {
            'tenderAction': 'BID',
            'tenderPredictedPrice': 410,
            'unit': 'USD/t',
            'confidence': 'Medium',
            'rationale': '',
        }
        # root fields are kept alongside the synthesized tender
        assert result['tenderAction'] == 'BID'

    def test_synthesize_tender_uses_custom_defaults(self) -> None:
        defaults = NormalizerDefaults(tender_action='HOLD', unit='EUR/t')
        tender = synthesize_tender({}, defaults)['tender']

        assert tender['tenderAction'] == 'HOLD'
        assert tender['unit'] == 'EUR/t'

    def test_synthesize_tender_keeps_existing_tender(self, canonical_payload) -> None:
        assert synthesize_tender(canonical_payload) is canonical_payload

    def test_derive_decision_confidence_keeps_existing_value(self) -> None:
        payload = {'tender': {'decisionConfidence': 'Low', 'signals': {'alignmentScore': 0.9}}}
        assert derive_decision_confidence(payload) is payload


# =============================================================================
# Test Class: TestNormalizePayload
# =============================================================================

class TestNormalizePayload:

    def test_flat_example(self, flat_payload) -> None:
        payload = normalize_payload(flat_payload)
        assert payload['tender']['tenderAction'] == 'BID'
        assert payload['tender']['tenderPredictedPrice'] == 410

    def test_alignment_example(self) -> None:
        payload = normalize_payload({'tender': {'signals': {'alignmentScore': 0.42}}})
        assert payload['tender']['decisionConfidence'] == 'Medium'

    def test_encoded_list_envelope(self, encoded_envelope, canonical_payload) -> None:
        payload = normalize_payload(encoded_envelope)

        assert payload['tender']['tenderAction'] == 'BUY BID'
        assert payload['tender']['decisionConfidence'] == 'High'
        assert payload['caliBidTable'] == canonical_payload['caliBidTable']

    def test_object_envelope(self, canonical_payload) -> None:
        payload = normalize_payload({'output': canonical_payload, 'executionId': 'x'})
        assert payload['tender']['tenderPredictedPrice'] == 412.5
        assert 'executionId' not in payload

    @pytest.mark.parametrize('raw', [
        None,
        {},
        [],
        [None],
        'plain string',
        42,
        {'output': json.dumps(json.dumps({'tenderAction': 'BID'}))},
        {'output': '{broken'},
        {'tender': 'not an object'},
        {'tenderAction': 'OFFER'},
    ])
    def test_total_for_malformed_input(self, raw) -> None:
        payload = normalize_payload(raw)
        assert isinstance(payload['tender'], dict)

    def test_oversized_alignment_score_from_json(self) -> None:
        raw = json.loads('{"tender": {"signals": {"alignmentScore": 1' + '0' * 400 + '}}}')
        payload = normalize_payload(raw)

        assert 'decisionConfidence' not in payload['tender']

    def test_empty_input_gets_default_tender(self) -> None:
        tender = normalize_payload(None)['tender']
        assert tender['tenderAction'] == DEFAULTS.tender_action
        assert tender['unit'] == DEFAULTS.unit
        assert tender['confidence'] == DEFAULTS.confidence

    def test_unknown_keys_survive(self, canonical_payload) -> None:
        canonical_payload['customField'] = {'x': 1}
        assert normalize_payload(canonical_payload)['customField'] == {'x': 1}

    def test_input_is_not_mutated(self, canonical_payload) -> None:
        original = copy.deepcopy(canonical_payload)
        payload = normalize_payload(canonical_payload)
        payload['tender']['tenderAction'] = 'PASS'

        assert canonical_payload == original

    @pytest.mark.parametrize('score', [0.0, 0.2, 0.35, 0.42, 0.6, 0.99])
    def test_idempotent(self, score) -> None:
        once = normalize_payload({'tender': {'signals': {'alignmentScore': score}}})
        twice = normalize_payload(once)

        assert twice == once
        assert twice['tender']['decisionConfidence'] == label_from_alignment_score(score).value

    def test_idempotent_for_flat_shapes(self, flat_payload, encoded_envelope) -> None:
        for raw in (flat_payload, encoded_envelope, None):
            once = normalize_payload(raw)
            assert normalize_payload(once) == once
