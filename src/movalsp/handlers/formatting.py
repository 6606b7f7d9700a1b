"""Document and range formatting.

Layout follows :func:`json.dumps` with an indent; number tokens are copied
from the source as written so ``1e5`` stays ``1e5``.
"""
from __future__ import annotations

import json
import logging

from lsprotocol import types as lsp

from movalsp.document import JsonNode, ParsedDocument, parse_document
from movalsp.positions import offset_to_position, utf16_len

logger = logging.getLogger(__name__)


def _indent(options: lsp.FormattingOptions | None) -> int | str:
    if options is None:
        return 2
    return options.tab_size if options.insert_spaces else '\t'


def _render(node: JsonNode, source: str, unit: str, level: int) -> str:
    if node.type == 'number':
        return source[node.offset:node.end]
    if node.type not in ('object', 'array'):
        return json.dumps(node.value, ensure_ascii=False)
    opener, closer = ('{', '}') if node.type == 'object' else ('[', ']')
    if not node.children:
        return opener + closer
    if node.type == 'object':
        parts = [json.dumps(prop.key, ensure_ascii=False) + ': '
                 + _render(prop.value_node, source, unit, level + 1)
                 for prop in node.children]
    else:
        parts = [_render(child, source, unit, level + 1) for child in node.children]
    inner = unit * (level + 1)
    return (opener + '\n' + inner + (',\n' + inner).join(parts)
            + '\n' + unit * level + closer)


def _dumps(doc: ParsedDocument, options: lsp.FormattingOptions | None) -> str:
    indent = _indent(options)
    tree = doc.tree
    if tree is None:
        return json.dumps(doc.value, indent=indent, ensure_ascii=False)
    unit = ' ' * indent if isinstance(indent, int) else indent
    return _render(tree, doc.source, unit, 0)


def format_text(text: str, options: lsp.FormattingOptions | None = None) -> str | None:
    """Return *text* pretty-printed, or *None* when it is not valid JSON."""
    doc = parse_document('', text)
    if doc.error is not None:
        return None
    formatted = _dumps(doc, options)
    if text.endswith('\n'):
        formatted += '\n'
    return formatted


def format_document(text: str, options: lsp.FormattingOptions | None = None) -> list[lsp.TextEdit]:
    """A single whole-document edit, or no edits if nothing changes or the text does not parse."""
    formatted = format_text(text, options)
    if formatted is None or formatted == text:
        return []
    return [lsp.TextEdit(
        range=lsp.Range(start=lsp.Position(line=0, character=0),
                        end=offset_to_position(text, len(text))),
        new_text=formatted,
    )]


def format_range(
    text: str, rng: lsp.Range, options: lsp.FormattingOptions | None = None
) -> list[lsp.TextEdit]:
    """Re-indent the whole lines covered by *rng*.

    The selected lines must hold one complete JSON value on their own;
    anything else yields no edits.  The result keeps the first line's
    leading indentation.
    """
    lines = text.split('\n')
    start = rng.start.line
    end = min(rng.end.line, len(lines) - 1)
    if not 0 <= start <= end:
        return []

    selected = '\n'.join(lines[start:end + 1])
    doc = parse_document('', selected)
    if doc.error is not None:
        logger.debug('range %d-%d is not a JSON value: %s', start, end, doc.error.message)
        return []

    lead = selected[:len(selected) - len(selected.lstrip())]
    lead = lead.split('\n')[-1]
    body = _dumps(doc, options)
    formatted = '\n'.join(lead + line for line in body.split('\n'))
    if formatted == selected:
        return []
    return [lsp.TextEdit(
        range=lsp.Range(
            start=lsp.Position(line=start, character=0),
            end=lsp.Position(line=end, character=utf16_len(lines[end].rstrip('\r'))),
        ),
        new_text=formatted,
    )]
