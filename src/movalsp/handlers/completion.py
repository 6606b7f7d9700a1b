"""
Completion handler.

Provides four kinds of completion items:

1. **Verbs** after ``"verb":`` inside a step.
2. **Nouns** after ``"noun":``, restricted to the nouns the step's verb
   accepts when the verb is known.
3. **Data fields** as keys inside a step's ``"data"`` object, taken from the
   fields usual for the step's noun.
4. **Property keys** elsewhere: step keys inside a step object, envelope keys
   at the top level.

Documents are usually invalid JSON while being typed, so context is recovered
lexically from the text before the cursor rather than from the parse tree.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from movalsp.positions import position_to_offset
from movalsp.semantics import (
    NOUN_FIELDS,
    VERB_DESCRIPTIONS,
    VERB_NOUNS,
    all_nouns,
    fields_for,
    known_verb,
)

if TYPE_CHECKING:
    from movalsp.document import ParsedDocument

# ---------------------------------------------------------------------------
# Static item tables
# ---------------------------------------------------------------------------
_ENVELOPE_KEYS = {
    '$schema': 'JSON Schema reference',
    'envelope': 'Envelope notation version ("3.4.1")',
    'metadata': 'Envelope id, version and description',
    'plan': 'Execution plan',
    'globalCatalogs': 'Named catalogs shared by every step',
}
_STEP_KEYS = {
    'id': 'Step identifier',
    'description': 'What the step does',
    'verb': 'Action verb',
    'noun': 'Object the verb acts on',
    'data': 'Verb parameters',
}

_VERB_ITEMS = [
    lsp.CompletionItem(
        label=verb,
        kind=lsp.CompletionItemKind.Function,
        detail=VERB_DESCRIPTIONS.get(verb),
        insert_text=verb,
    )
    for verb in VERB_NOUNS
]


def _key_items(keys: dict[str, str]) -> list[lsp.CompletionItem]:
    return [
        lsp.CompletionItem(label=key, kind=lsp.CompletionItemKind.Property,
                           detail=detail, insert_text=key)
        for key, detail in keys.items()
    ]


def _noun_items(nouns: list[str]) -> list[lsp.CompletionItem]:
    return [
        lsp.CompletionItem(
            label=noun,
            kind=lsp.CompletionItemKind.Class,
            detail='fields: ' + ', '.join(NOUN_FIELDS.get(noun, [])) if noun in NOUN_FIELDS else None,
            insert_text=noun,
        )
        for noun in nouns
    ]


def _field_items(noun: str) -> list[lsp.CompletionItem]:
    return [
        lsp.CompletionItem(label=name, kind=lsp.CompletionItemKind.Field,
                           detail=f'{noun} field', insert_text=name)
        for name in fields_for(noun)
    ]


# ---------------------------------------------------------------------------
# Lexical context recovery
# ---------------------------------------------------------------------------

# The value of a "verb"/"noun" key being typed: `"verb": "htt|`
_VALUE_RE = re.compile(r'"(verb|noun)"\s*:\s*"?([A-Za-z0-9_-]*)$')
_DATA_OPEN_RE = re.compile(r'"data"\s*:\s*$')
_STEPS_OPEN_RE = re.compile(r'"steps"\s*:\s*$')


def _open_containers(text: str, end: int) -> list[int]:
    """Offsets of the ``{`` and ``[`` still unclosed at *end*, outermost first.

    Brackets inside string literals are ignored.
    """
    stack: list[int] = []
    in_string = False
    escaped = False
    for i in range(end):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in '{[':
            stack.append(i)
        elif ch in '}]' and stack:
            stack.pop()
    return stack


def _object_text(text: str, start: int) -> str:
    """The text of the object opening at *start*, up to its closing brace or EOF."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def _step_value(text: str, step_start: int, key: str) -> str | None:
    """Value of a top-level string property *key* of the step object at *step_start*."""
    body = _object_text(text, step_start)
    # Only the step's own keys: blank out nested containers first.
    flat = []
    depth = 0
    for ch in body[1:]:
        if ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
        elif depth == 0:
            flat.append(ch)
    m = re.search(rf'"{key}"\s*:\s*"([^"]*)"', ''.join(flat))
    return m.group(1) if m else None


def _is_step(text: str, stack: list[int], index: int) -> bool:
    """True when ``stack[index]`` is an object directly inside a ``"steps"`` array."""
    if index < 1 or text[stack[index]] != '{' or text[stack[index - 1]] != '[':
        return False
    return bool(_STEPS_OPEN_RE.search(text[:stack[index - 1]]))


def _in_key_position(before: str) -> bool:
    """True when the cursor is where an object key would go."""
    stripped = before.rstrip()
    if stripped.endswith('"'):
        stripped = stripped[:-1]
    else:
        m = re.search(r'"[A-Za-z0-9_$-]*$', stripped)
        if m:
            stripped = stripped[:m.start()]
    return stripped.rstrip().endswith(('{', ','))


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def get_completions(doc: ParsedDocument, position: lsp.Position) -> list[lsp.CompletionItem]:
    """Return completion items for *position* in *doc*."""
    text = doc.source
    offset = position_to_offset(text, position)
    before = text[:offset]
    stack = _open_containers(text, offset)

    m = _VALUE_RE.search(before)
    if m:
        if m.group(1) == 'verb':
            return list(_VERB_ITEMS)
        if stack and _is_step(text, stack, len(stack) - 1):
            verb = _step_value(text, stack[-1], 'verb')
            if known_verb(verb):
                return _noun_items(VERB_NOUNS[verb])
        return _noun_items(all_nouns())

    if not stack or text[stack[-1]] != '{' or not _in_key_position(before):
        return []

    depth = len(stack) - 1
    if depth == 0:
        return _key_items(_ENVELOPE_KEYS)
    if _is_step(text, stack, depth):
        return _key_items(_STEP_KEYS)
    if depth >= 1 and _DATA_OPEN_RE.search(text[:stack[depth]]) and _is_step(text, stack, depth - 1):
        noun = _step_value(text, stack[depth - 1], 'noun')
        return _field_items(noun) if noun else []
    return []
