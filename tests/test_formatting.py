"""Tests for movalsp.handlers.formatting."""
from __future__ import annotations

from lsprotocol import types as lsp

from movalsp.handlers.formatting import format_document, format_range, format_text


def _apply(text: str, edits: list[lsp.TextEdit]) -> str:
    # single-line-range or whole-document edits only
    lines = text.split('\n')
    for edit in reversed(edits):
        s, e = edit.range.start, edit.range.end
        head = '\n'.join(lines[:s.line] + [lines[s.line][:s.character]])
        tail = '\n'.join([lines[e.line][e.character:]] + lines[e.line + 1:])
        text = head + edit.new_text + tail
        lines = text.split('\n')
    return text


class TestFormatDocument:
    def test_reindents(self):
        text = '{"a":[1,2],"b":{"c":"é"}}'
        [edit] = format_document(text, lsp.FormattingOptions(tab_size=4, insert_spaces=True))
        assert edit.range.start == lsp.Position(line=0, character=0)
        assert edit.range.end == lsp.Position(line=0, character=len(text))
        assert edit.new_text.startswith('{\n    "a": [\n        1,')
        assert '"é"' in edit.new_text

    def test_tabs(self):
        out = format_text('{"a": 1}', lsp.FormattingOptions(tab_size=4, insert_spaces=False))
        assert out == '{\n\t"a": 1\n}'

    def test_keeps_trailing_newline(self):
        assert format_text('{"a":1}\n').endswith('}\n')

    def test_already_formatted(self):
        assert format_document('{\n  "a": 1\n}') == []

    def test_unparseable(self):
        assert format_document('{"a": ') == []


class TestFormatRange:
    TEXT = '{\n  "plan": {"steps": [\n    {"verb":"set","noun":"variable"}\n  ]}\n}'

    def test_formats_selected_value(self):
        rng = lsp.Range(start=lsp.Position(line=2, character=0), end=lsp.Position(line=2, character=5))
        [edit] = format_range(self.TEXT, rng)
        assert edit.range.start == lsp.Position(line=2, character=0)
        assert edit.new_text == '    {\n      "verb": "set",\n      "noun": "variable"\n    }'
        assert _apply(self.TEXT, [edit]).count('\n') == self.TEXT.count('\n') + 3

    def test_partial_value_gives_no_edits(self):
        rng = lsp.Range(start=lsp.Position(line=1, character=0), end=lsp.Position(line=2, character=0))
        assert format_range(self.TEXT, rng) == []

    def test_out_of_range(self):
        rng = lsp.Range(start=lsp.Position(line=9, character=0), end=lsp.Position(line=9, character=0))
        assert format_range(self.TEXT, rng) == []


class TestNumberTokens:
    def test_written_form_is_kept(self):
        out = format_text('{"a":1e5,"b":[-0.50,1E-3,10]}')
        assert out == '{\n  "a": 1e5,\n  "b": [\n    -0.50,\n    1E-3,\n    10\n  ]\n}'

    def test_range_keeps_written_form(self):
        text = '{\n  "x": {"n":2.0}\n}'
        rng = lsp.Range(start=lsp.Position(line=1, character=0), end=lsp.Position(line=1, character=3))
        assert format_range(text, rng) == []
        text = '{\n  {"n":2.0}\n}'
        [edit] = format_range(text, rng)
        assert edit.new_text == '  {\n    "n": 2.0\n  }'

    def test_empty_containers(self):
        assert format_text('{"a":{},"b":[ ]}') == '{\n  "a": {},\n  "b": []\n}'
