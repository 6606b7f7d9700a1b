"""Tests for movalsp.server: handlers driven directly, without a client."""
from __future__ import annotations

import asyncio
import json
import logging

import pytest
from lsprotocol import types as lsp

from conftest import VALID_ENVELOPE, envelope_text

URI = 'file:///tmp/envelope.json'


@pytest.fixture
def srv(monkeypatch):
    import movalsp.server as srv
    from movalsp.settings import ServerSettings, SettingsResolver
    from movalsp.validator import SchemaValidator

    published: dict[str, list[lsp.Diagnostic]] = {}

    def record(params: lsp.PublishDiagnosticsParams):
        published[params.uri] = params.diagnostics

    monkeypatch.setattr(srv, '_docs', {})
    monkeypatch.setattr(srv, '_pending_tasks', {})
    monkeypatch.setattr(srv, '_resolver', SettingsResolver())
    monkeypatch.setattr(srv, '_settings', ServerSettings())
    monkeypatch.setattr(srv, '_validator', SchemaValidator())
    monkeypatch.setattr(srv.server, 'text_document_publish_diagnostics', record)
    monkeypatch.setattr(srv, '_show_error', lambda message: None)
    monkeypatch.setattr(srv, 'published', published, raising=False)
    return srv


def _open(srv, text: str, uri: str = URI) -> None:
    srv.did_open(lsp.DidOpenTextDocumentParams(text_document=lsp.TextDocumentItem(
        uri=uri, language_id='json', version=1, text=text,
    )))


async def _drain(srv) -> None:
    while srv._pending_tasks:
        await asyncio.gather(*list(srv._pending_tasks.values()), return_exceptions=True)


def _doc_id(uri: str = URI) -> lsp.TextDocumentIdentifier:
    return lsp.TextDocumentIdentifier(uri=uri)


class TestServerModule:
    def test_server_importable(self):
        from movalsp.server import server
        assert server is not None

    def test_docs_dict_initially_empty(self):
        from movalsp.server import _docs
        assert isinstance(_docs, dict)


class TestDiagnosticsPublishing:
    def test_open_publishes(self, srv):
        async def go():
            _open(srv, envelope_text([{'verb': 'teleport', 'noun': 'item'}]))
            await _drain(srv)

        asyncio.run(go())
        [diag] = srv.published[URI]
        assert diag.code == 'unknown-verb'

    def test_valid_document_publishes_empty_list(self, srv):
        async def go():
            _open(srv, VALID_ENVELOPE)
            await _drain(srv)

        asyncio.run(go())
        assert srv.published[URI] == []

    def test_change_supersedes_pending_update(self, srv):
        async def go():
            _open(srv, '{')
            srv.did_change(lsp.DidChangeTextDocumentParams(
                text_document=lsp.VersionedTextDocumentIdentifier(uri=URI, version=2),
                content_changes=[lsp.TextDocumentContentChangeWholeDocument(text=VALID_ENVELOPE)],
            ))
            await _drain(srv)

        srv._settings = srv.ServerSettings(debounce_delay=0.0)
        asyncio.run(go())
        assert srv.published[URI] == []

    def test_truncated_to_max_diagnostics(self, srv):
        srv._settings = srv.ServerSettings(max_diagnostics=2)
        steps = [{'verb': f'bad{i}', 'noun': 'item'} for i in range(5)]

        async def go():
            _open(srv, envelope_text(steps))
            await _drain(srv)

        asyncio.run(go())
        assert len(srv.published[URI]) == 2

    def test_broken_schema_still_publishes_semantic_findings(self, srv, tmp_path):
        from movalsp.validator import SchemaValidator
        srv._validator = SchemaValidator(schema_path=tmp_path / 'missing.json')

        async def go():
            _open(srv, envelope_text([{'verb': 'teleport', 'noun': 'item'}], extra_key=1))
            await _drain(srv)

        asyncio.run(go())
        assert [d.code for d in srv.published[URI]] == ['unknown-verb']

    def test_close_clears_diagnostics(self, srv):
        srv._docs[URI] = srv.parse_document(URI, '{')
        srv.did_close(lsp.DidCloseTextDocumentParams(text_document=_doc_id()))
        assert URI not in srv._docs
        assert srv.published[URI] == []


class TestConfiguration:
    def test_initialize_reads_options(self, srv, tmp_path):
        srv.on_initialize(lsp.InitializeParams(
            capabilities=lsp.ClientCapabilities(),
            root_uri=tmp_path.as_uri(),
            initialization_options={'mova': {'maxDiagnostics': 7}},
        ))
        assert srv._settings.max_diagnostics == 7
        assert srv._resolver.workspace_root == str(tmp_path)

    def test_schema_path_change_replaces_validator(self, srv, tmp_path):
        before = srv._validator
        srv.did_change_configuration(lsp.DidChangeConfigurationParams(
            settings={'mova': {'schemaPath': str(tmp_path / 's.json')}},
        ))
        assert srv._validator is not before
        assert srv._settings.schema_path == str(tmp_path / 's.json')

    def test_unrelated_change_keeps_validator(self, srv):
        before = srv._validator
        srv.did_change_configuration(lsp.DidChangeConfigurationParams(
            settings={'mova': {'maxDiagnostics': 1}},
        ))
        assert srv._validator is before
        assert srv._settings.max_diagnostics == 1

    def test_apply_log_level(self, srv):
        root = logging.getLogger()
        previous = root.level
        try:
            srv._apply_log_level('debug')
            assert root.level == logging.DEBUG
            srv._apply_log_level('no-such-level')
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)


class TestRequests:
    TEXT = envelope_text([{'verb': 'store', 'noun': 'item'}, {'verb': 'delete', 'noun': 'item'}])

    def _item_position(self) -> lsp.Position:
        line_no = next(i for i, line in enumerate(self.TEXT.split('\n')) if '"item"' in line)
        return lsp.Position(line=line_no, character=self.TEXT.split('\n')[line_no].index('item'))

    def test_unknown_document(self, srv):
        params = lsp.HoverParams(text_document=_doc_id(), position=lsp.Position(line=0, character=0))
        assert srv.hover(params) is None
        assert srv.document_symbol(lsp.DocumentSymbolParams(text_document=_doc_id())) == []

    def test_references_and_rename(self, srv):
        srv._docs[URI] = srv.parse_document(URI, self.TEXT)
        pos = self._item_position()
        refs = srv.references(lsp.ReferenceParams(
            text_document=_doc_id(), position=pos,
            context=lsp.ReferenceContext(include_declaration=True),
        ))
        assert len(refs) == 2 and all(r.uri == URI for r in refs)
        edit = srv.on_rename(lsp.RenameParams(text_document=_doc_id(), position=pos, new_name='batch'))
        assert len(edit.changes[URI]) == 2

    def test_completion(self, srv):
        srv._docs[URI] = srv.parse_document(URI, '{"plan": {"steps": [{"verb": "')
        result = srv.completion(lsp.CompletionParams(
            text_document=_doc_id(), position=lsp.Position(line=0, character=31),
        ))
        assert 'http_fetch' in [i.label for i in result.items]

    def test_workspace_symbol(self, srv):
        srv._docs[URI] = srv.parse_document(URI, self.TEXT)
        symbols = srv.workspace_symbol(lsp.WorkspaceSymbolParams(query='delete'))
        assert [s.name for s in symbols] == ['delete/item (Step 2)']

    def test_formatting(self, srv):
        srv._docs[URI] = srv.parse_document(URI, '{"a":1}')
        edits = srv.formatting(lsp.DocumentFormattingParams(
            text_document=_doc_id(),
            options=lsp.FormattingOptions(tab_size=2, insert_spaces=True),
        ))
        assert edits[0].new_text == '{\n  "a": 1\n}'


class TestRunPlanDry:
    def test_by_uri(self, srv):
        srv._docs[URI] = srv.parse_document(URI, envelope_text([{'verb': 'set', 'noun': 'variable'}]))
        report = srv.cmd_run_plan_dry(URI, {'x': 1})
        assert report['success'] is True
        assert report['steps'][0]['output']['variables'] == {'x': 1}
        json.dumps(report)

    def test_raw_text(self, srv):
        report = srv.cmd_run_plan_dry(envelope_text([{'verb': 'set'}]))
        assert report['success'] is False
        assert report['errors'] == ['Step 0: Missing verb or noun']
