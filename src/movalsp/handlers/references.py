"""
Textual identifier index for references and rename.

This is deliberately *lexical*: an identifier is any maximal run of
``[A-Za-z0-9_-]`` and two runs with the same text are the same identifier,
whatever their position in the JSON structure (key, value, nested object).
Renaming ``item`` therefore renames every whole-word ``item`` in the file but
never the ``item`` inside ``items``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from movalsp.positions import utf16_len, utf16_to_index

DEFAULT_URI = 'file:///envelope.json'

_IDENT_RE = re.compile(r'[A-Za-z0-9_-]+')


@dataclass(frozen=True)
class IdentifierOccurrence:
    line: int
    start_char: int      # UTF-16 columns
    end_char: int
    text: str

    @property
    def range(self) -> lsp.Range:
        return lsp.Range(
            start=lsp.Position(line=self.line, character=self.start_char),
            end=lsp.Position(line=self.line, character=self.end_char),
        )


def _occurrence(line_no: int, line: str, start: int, end: int) -> IdentifierOccurrence:
    return IdentifierOccurrence(
        line=line_no,
        start_char=utf16_len(line[:start]),
        end_char=utf16_len(line[:end]),
        text=line[start:end],
    )


def identifier_at(text: str, position: lsp.Position) -> IdentifierOccurrence | None:
    """Return the identifier run touching *position*, or *None*.

    A cursor directly after the last character of a run still selects it.
    """
    lines = text.split('\n')
    if not 0 <= position.line < len(lines):
        return None
    line = lines[position.line]
    col = utf16_to_index(line, position.character)
    for m in _IDENT_RE.finditer(line):
        if m.start() <= col <= m.end():
            return _occurrence(position.line, line, m.start(), m.end())
        if m.start() > col:
            break
    return None


def find_occurrences(text: str, identifier: str) -> list[IdentifierOccurrence]:
    """Every whole-word occurrence of *identifier* in *text*, in document order."""
    found: list[IdentifierOccurrence] = []
    if not identifier:
        return found
    for line_no, line in enumerate(text.split('\n')):
        for m in _IDENT_RE.finditer(line):
            if m.group() == identifier:
                found.append(_occurrence(line_no, line, m.start(), m.end()))
    return found


def prepare_rename(text: str, position: lsp.Position) -> lsp.Range | None:
    occ = identifier_at(text, position)
    return occ.range if occ else None


def find_references(
    text: str, position: lsp.Position, uri: str = DEFAULT_URI
) -> list[lsp.Location]:
    """Locations of every occurrence of the identifier under *position*, including itself."""
    occ = identifier_at(text, position)
    if occ is None:
        return []
    return [lsp.Location(uri=uri, range=o.range) for o in find_occurrences(text, occ.text)]


def rename(
    text: str, position: lsp.Position, new_name: str, uri: str = DEFAULT_URI
) -> lsp.WorkspaceEdit:
    """Replace every occurrence :func:`find_references` would report with *new_name*."""
    occ = identifier_at(text, position)
    edits = [] if occ is None else [
        lsp.TextEdit(range=o.range, new_text=new_name)
        for o in find_occurrences(text, occ.text)
    ]
    return lsp.WorkspaceEdit(changes={uri: edits})
