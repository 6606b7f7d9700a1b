"""Tests for movalsp.cli: the ``movalsp`` and ``mova`` entry points."""
from __future__ import annotations

import json

import pytest

from movalsp.cli import _build_parser, _parse_variables, mova, snippet

from conftest import VALID_ENVELOPE, envelope_text


def _run(argv, capsys) -> tuple[int, str, str]:
    with pytest.raises(SystemExit) as exc:
        mova(argv)
    out, err = capsys.readouterr()
    return exc.value.code, out, err


class TestServerParser:
    def test_defaults(self):
        args = _build_parser().parse_args([])
        assert args.tcp is None and not args.stdio
        assert args.log_level == 'WARNING'

    def test_tcp(self):
        assert _build_parser().parse_args(['--tcp', '2087']).tcp == 2087

    def test_stdio_and_tcp_are_exclusive(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(['--stdio', '--tcp', '1'])


class TestValidate:
    def test_valid_file(self, tmp_path, capsys):
        path = tmp_path / 'ok.json'
        path.write_text(VALID_ENVELOPE, encoding='utf-8')
        code, out, _ = _run(['validate', str(path)], capsys)
        assert code == 0
        assert 'is valid' in out

    def test_errors_are_one_based(self, tmp_path, capsys):
        path = tmp_path / 'bad.json'
        path.write_text('{\n  "plan": {"steps": [{"verb": "teleport", "noun": "item"}]}\n}', encoding='utf-8')
        code, out, _ = _run(['validate', str(path)], capsys)
        assert code == 1
        assert f'{path}:2:31: error: Unknown verb: "teleport"' in out
        assert f'{path}:1:1: error:' in out

    def test_json_output(self, tmp_path, capsys):
        path = tmp_path / 'warn.json'
        path.write_text(envelope_text([{'verb': 'transform', 'noun': 'item'}]), encoding='utf-8')
        code, out, _ = _run(['validate', str(path), '--output', 'json'], capsys)
        report = json.loads(out)
        assert code == 0
        assert report['ok'] is True
        assert [d['severity'] for d in report['diagnostics']] == ['warning']

    def test_custom_schema(self, tmp_path, capsys):
        schema = tmp_path / 'schema.json'
        schema.write_text('{"type": "object", "required": ["owner"]}', encoding='utf-8')
        path = tmp_path / 'e.json'
        path.write_text(VALID_ENVELOPE, encoding='utf-8')
        code, out, _ = _run(['validate', str(path), '--schema', str(schema)], capsys)
        assert code == 1
        assert "'owner' is a required property" in out

    def test_missing_file(self, tmp_path, capsys):
        code, _, err = _run(['validate', str(tmp_path / 'nope.json')], capsys)
        assert code == 1
        assert err.startswith('Error:')


class TestRun:
    def test_success(self, tmp_path, capsys):
        path = tmp_path / 'e.json'
        path.write_text(VALID_ENVELOPE, encoding='utf-8')
        code, out, _ = _run(['run', str(path), '--var', 'limit=5', '--var', 'env=dev'], capsys)
        report = json.loads(out)
        assert code == 0
        assert report['steps'][0]['output']['variables'] == {'limit': 5, 'env': 'dev'}

    def test_failure(self, tmp_path, capsys):
        path = tmp_path / 'e.json'
        path.write_text(envelope_text([{'verb': 'set'}]), encoding='utf-8')
        code, out, _ = _run(['run', str(path)], capsys)
        assert code == 1
        assert json.loads(out)['success'] is False

    def test_bad_variable(self):
        with pytest.raises(ValueError):
            _parse_variables(['novalue'])


class TestSnippet:
    def test_snippet_is_a_clean_envelope(self, validator):
        from movalsp.handlers import diagnose
        text = json.dumps(snippet('event', timestamp=1))
        assert diagnose(text, validator) == []

    def test_snippet_id(self):
        assert snippet('http', timestamp=42)['metadata']['id'] == 'http-42'

    def test_command(self, capsys):
        code, out, _ = _run(['snippet', 'misc'], capsys)
        assert code == 0
        assert json.loads(out)['plan']['steps'][0]['verb'] == 'log'
