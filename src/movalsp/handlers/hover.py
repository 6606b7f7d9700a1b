"""
Hover handler.

When the cursor rests on a known verb or noun, return Markdown describing it:
the verb's description and the nouns it accepts, or the noun's usual ``data``
fields and the verbs that take it.  Inside a parseable document the hovered
string must be the value of a ``verb`` or ``noun`` property; otherwise any
whole-word occurrence of a vocabulary entry qualifies.
"""
from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from movalsp.handlers.references import identifier_at
from movalsp.positions import find_node_at_offset, format_path, node_path, position_to_offset
from movalsp.semantics import NOUN_FIELDS, VERB_DESCRIPTIONS, VERB_NOUNS

if TYPE_CHECKING:
    from movalsp.document import ParsedDocument


@lru_cache(maxsize=64)
def _verb_markdown(verb: str) -> str | None:
    if verb not in VERB_NOUNS:
        return None
    lines = [f'### `{verb}`']
    description = VERB_DESCRIPTIONS.get(verb)
    if description:
        lines += ['', description]
    lines += ['', '**Nouns**', '']
    lines += [f'- `{noun}`' for noun in VERB_NOUNS[verb]]
    return '\n'.join(lines)


@lru_cache(maxsize=64)
def _noun_markdown(noun: str) -> str | None:
    verbs = [verb for verb, nouns in VERB_NOUNS.items() if noun in nouns]
    if not verbs and noun not in NOUN_FIELDS:
        return None
    lines = [f'### `{noun}`']
    fields = NOUN_FIELDS.get(noun)
    if fields:
        lines += ['', '**Data fields**', '']
        lines += [f'- `{name}`' for name in fields]
    if verbs:
        lines += ['', 'Used with: ' + ', '.join(f'`{v}`' for v in verbs)]
    return '\n'.join(lines)


def _structural_role(doc: ParsedDocument, position: lsp.Position) -> tuple[str | None, str]:
    """Return ``(role, path)`` of the string value under the cursor.

    *role* is ``'verb'`` or ``'noun'`` when the string is the value of such a
    property, ``None`` for any other string.
    """
    node = find_node_at_offset(doc.tree, position_to_offset(doc.source, position))
    if node is None or node.type != 'string' or node.parent is None:
        return None, ''
    prop = node.parent
    if prop.type != 'property' or node is not prop.value_node:
        return None, ''
    role = prop.key if prop.key in ('verb', 'noun') else None
    return role, format_path(node_path(node))


def get_hover(doc: ParsedDocument, position: lsp.Position) -> lsp.Hover | None:
    """Return LSP hover content for *position* in *doc*, or *None*."""
    occ = identifier_at(doc.source, position)
    if occ is None:
        return None
    word = occ.text

    path = ''
    if doc.tree is not None:
        role, path = _structural_role(doc, position)
        if role is None:
            return None
        md = _verb_markdown(word) if role == 'verb' else _noun_markdown(word)
    else:
        md = _verb_markdown(word) or _noun_markdown(word)

    if md is None:
        return None
    if path:
        md += f'\n\n*{path}*'
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=md),
        range=occ.range,
    )
