"""
Quick fixes for vocabulary diagnostics.

``unknown-verb`` diagnostics offer the closest known verbs; ``type-mismatch``
diagnostics offer the nouns the step's verb accepts, closest first.  Each fix
replaces the offending string value in place.
"""
from __future__ import annotations

import difflib
import json
from typing import Any, Sequence

from lsprotocol import types as lsp

from movalsp.document import ParsedDocument
from movalsp.handlers.diagnostics import SOURCE_SEMANTIC
from movalsp.positions import find_node_at_location, node_to_range
from movalsp.semantics import VERB_NOUNS, FindingKind, nouns_for

MAX_FIXES = 3


def _value_at(value: Any, path: Sequence[str | int]) -> Any:
    for seg in path:
        if isinstance(seg, str) and isinstance(value, dict):
            value = value.get(seg)
        elif isinstance(seg, int) and isinstance(value, list) and 0 <= seg < len(value):
            value = value[seg]
        else:
            return None
    return value


def _diagnostic_path(diag: lsp.Diagnostic) -> list[str | int] | None:
    data = diag.data
    path = data.get('path') if isinstance(data, dict) else None
    return list(path) if isinstance(path, list) else None


def closest(word: str, candidates: Sequence[str], *, keep_all: bool = False) -> list[str]:
    """Candidates ranked by similarity to *word*.

    With *keep_all*, candidates that are not close at all are appended in
    their original order; otherwise only close matches are returned.
    """
    ranked = difflib.get_close_matches(word, candidates, n=MAX_FIXES, cutoff=0.5)
    if keep_all:
        ranked += [c for c in candidates if c not in ranked]
    return ranked


def _replacement_action(doc: ParsedDocument, diag: lsp.Diagnostic, path: list,
                        title: str, new_value: str, preferred: bool) -> lsp.CodeAction | None:
    node = find_node_at_location(doc.tree, path)
    if node is None:
        return None
    return lsp.CodeAction(
        title=title,
        kind=lsp.CodeActionKind.QuickFix,
        diagnostics=[diag],
        is_preferred=preferred,
        edit=lsp.WorkspaceEdit(changes={doc.uri: [
            lsp.TextEdit(range=node_to_range(node, doc.source), new_text=json.dumps(new_value)),
        ]}),
    )


def _fixes_for(doc: ParsedDocument, diag: lsp.Diagnostic) -> list[lsp.CodeAction]:
    path = _diagnostic_path(diag)
    if path is None:
        return []
    current = _value_at(doc.value, path)
    if not isinstance(current, str):
        return []

    if diag.code == FindingKind.UNKNOWN_VERB.value:
        choices = closest(current, list(VERB_NOUNS))
        label = 'verb'
    elif diag.code == FindingKind.TYPE_MISMATCH.value:
        verb = _value_at(doc.value, path[:-1] + ['verb'])
        choices = closest(current, nouns_for(verb), keep_all=True)[:MAX_FIXES]
        label = 'noun'
    else:
        return []

    actions = []
    for i, choice in enumerate(choices):
        action = _replacement_action(doc, diag, path, f'Change {label} to "{choice}"', choice, i == 0)
        if action is not None:
            actions.append(action)
    return actions


def get_code_actions(doc: ParsedDocument, diagnostics: Sequence[lsp.Diagnostic]) -> list[lsp.CodeAction]:
    """Quick fixes for the semantic diagnostics in *diagnostics* (typically the request context)."""
    if doc.tree is None:
        return []
    actions: list[lsp.CodeAction] = []
    for diag in diagnostics:
        if diag.source == SOURCE_SEMANTIC:
            actions.extend(_fixes_for(doc, diag))
    return actions
