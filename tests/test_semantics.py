"""Tests for movalsp.semantics: domain rules over plan steps."""
from __future__ import annotations

from movalsp.semantics import FindingKind, Severity, analyze_semantics

from conftest import VALID_ENVELOPE, envelope_text


def _kinds(findings):
    return [f.kind for f in findings]


class TestPlanShape:
    def test_valid_envelope(self):
        result = analyze_semantics(VALID_ENVELOPE)
        assert result.valid
        assert result.findings == []

    def test_missing_steps_is_single_fatal_error(self):
        result = analyze_semantics('{"plan": {}}')
        assert not result.valid
        assert _kinds(result.errors) == [FindingKind.MISSING_REQUIRED_FIELD]
        assert result.errors[0].path == ('plan',)
        assert result.warnings == []

    def test_steps_not_an_array(self):
        result = analyze_semantics('{"plan": {"steps": {}}}')
        assert len(result.errors) == 1
        assert result.errors[0].path == ('plan', 'steps')

    def test_unparseable_text(self):
        result = analyze_semantics('{')
        assert not result.valid
        assert _kinds(result.errors) == [FindingKind.INVALID_CONTEXT]
        assert result.errors[0].path == ()


class TestStepRules:
    def test_type_mismatch(self):
        result = analyze_semantics(envelope_text([{'verb': 'http_fetch', 'noun': 'condition',
                                                   'data': {'url': 'x'}}]))
        mismatches = [f for f in result.errors if f.kind == FindingKind.TYPE_MISMATCH]
        assert len(mismatches) == 1
        assert mismatches[0].path == ('plan', 'steps', 0, 'noun')
        assert 'item, batch' in mismatches[0].suggestion

    def test_missing_verb_suppresses_other_checks(self):
        result = analyze_semantics(envelope_text([{'noun': 'nonsense', 'data': {'weird': 1}}]))
        assert len(result.findings) == 1
        finding = result.errors[0]
        assert finding.kind == FindingKind.MISSING_REQUIRED_FIELD
        assert finding.path == ('plan', 'steps', 0)
        assert 'http_fetch' in finding.suggestion

    def test_blank_noun_counts_as_missing(self):
        result = analyze_semantics(envelope_text([{'verb': 'set', 'noun': ''}]))
        assert [f.message for f in result.findings] == ['Step must have a noun']

    def test_non_object_step(self):
        result = analyze_semantics(envelope_text(['log']))
        assert _kinds(result.errors) == [FindingKind.MISSING_REQUIRED_FIELD]

    def test_unknown_verb(self):
        result = analyze_semantics(envelope_text([{'verb': 'teleport', 'noun': 'item'}]))
        assert _kinds(result.errors) == [FindingKind.UNKNOWN_VERB]
        assert result.errors[0].path == ('plan', 'steps', 0, 'verb')
        assert 'http_fetch' in result.errors[0].suggestion

    def test_unexpected_data_field_is_warning(self):
        result = analyze_semantics(envelope_text([
            {'verb': 'set', 'noun': 'variable', 'data': {'name': 'a', 'colour': 'red', '_note': 1}},
        ]))
        assert result.valid
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.kind == FindingKind.INVALID_CONTEXT
        assert warning.severity == Severity.WARNING
        assert warning.path == ('plan', 'steps', 0, 'data', 'colour')

    def test_http_fetch_without_url(self):
        result = analyze_semantics(envelope_text([{'verb': 'http_fetch', 'noun': 'batch',
                                                   'data': {'count': 1}}]))
        assert result.valid
        assert [w.path for w in result.warnings] == [('plan', 'steps', 0, 'data')]

    def test_http_fetch_endpoint_is_enough(self):
        result = analyze_semantics(envelope_text([{'verb': 'http_fetch', 'noun': 'batch',
                                                   'data': {'_endpoint': 1, 'endpoint': '/x'}}]))
        assert not any('url or endpoint' in w.message for w in result.warnings)

    def test_transform_without_data(self):
        result = analyze_semantics(envelope_text([{'verb': 'transform', 'noun': 'item'}]))
        assert result.valid
        assert len(result.warnings) == 1
        assert result.warnings[0].path == ('plan', 'steps', 0)
        assert 'template' in result.warnings[0].message

    def test_steps_are_analyzed_independently(self):
        result = analyze_semantics(envelope_text([
            {'noun': 'item'},
            {'verb': 'teleport', 'noun': 'item'},
            {'verb': 'set', 'noun': 'variable'},
        ]))
        assert [f.path[2] for f in result.errors] == [0, 1]

    def test_false_and_zero_count_as_present(self):
        result = analyze_semantics(envelope_text([
            {'verb': False, 'noun': 'item'},
            {'verb': 'log', 'noun': 0},
        ]))
        assert _kinds(result.errors) == [FindingKind.UNKNOWN_VERB, FindingKind.TYPE_MISMATCH]
