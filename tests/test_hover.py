"""Tests for movalsp.handlers.hover."""
from __future__ import annotations

from lsprotocol import types as lsp

from movalsp.document import parse_document
from movalsp.handlers.hover import get_hover

TEXT = '{"plan": {"steps": [{"verb": "publish", "noun": "message", "id": "publish"}]}}'


def _hover_at(text: str, needle: str, nth: int = 0):
    start = -1
    for _ in range(nth + 1):
        start = text.index(needle, start + 1)
    doc = parse_document('file:///h.json', text)
    return get_hover(doc, lsp.Position(line=0, character=start + 1))


class TestHover:
    def test_verb(self):
        h = _hover_at(TEXT, 'publish')
        assert h.contents.kind == lsp.MarkupKind.Markdown
        assert '### `publish`' in h.contents.value
        assert '- `event`' in h.contents.value
        assert 'plan.steps[0].verb' in h.contents.value

    def test_range_covers_word(self):
        h = _hover_at(TEXT, 'publish')
        start = TEXT.index('publish')
        assert (h.range.start.character, h.range.end.character) == (start, start + len('publish'))

    def test_noun(self):
        h = _hover_at(TEXT, 'message')
        assert '**Data fields**' in h.contents.value
        assert '`topic`' in h.contents.value
        assert 'Used with: `publish`' in h.contents.value

    def test_verb_word_outside_verb_property(self):
        assert _hover_at(TEXT, 'publish', nth=1) is None

    def test_keys_have_no_hover(self):
        assert _hover_at(TEXT, 'verb') is None

    def test_unknown_verb(self):
        assert _hover_at('{"verb": "teleport"}', 'teleport') is None

    def test_lexical_fallback_when_unparseable(self):
        h = _hover_at('{"verb": "reduce", ', 'reduce')
        assert '### `reduce`' in h.contents.value
