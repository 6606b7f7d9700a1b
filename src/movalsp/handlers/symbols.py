"""
Document outline and workspace symbol search.

Both are read-only projections of the position tree: the envelope root, its
``metadata``, ``plan`` (with one entry per step) and ``globalCatalogs``
sections.  Text that does not parse yields no symbols.
"""
from __future__ import annotations

import logging
from typing import Mapping

from lsprotocol import types as lsp

from movalsp.document import JsonNode, ParsedDocument, parse_document
from movalsp.model import plan_steps
from movalsp.positions import find_node_at_location, node_to_range, offsets_to_range

logger = logging.getLogger(__name__)


def _property(obj: JsonNode | None, key: str) -> JsonNode | None:
    if obj is None or obj.type != 'object':
        return None
    found = None
    for prop in obj.children:
        if prop.key == key:
            found = prop
    return found


def _section_symbol(prop: JsonNode, text: str, kind: lsp.SymbolKind,
                    children: list[lsp.DocumentSymbol] | None = None) -> lsp.DocumentSymbol:
    return lsp.DocumentSymbol(
        name=prop.key,
        kind=kind,
        range=node_to_range(prop, text),
        selection_range=node_to_range(prop.children[0], text),
        children=children,
    )


def step_name(index: int, step) -> str:
    verb = step.get('verb') if isinstance(step, dict) else None
    return f'Step {index + 1}: {verb if isinstance(verb, str) and verb else "unknown"}'


def _step_symbols(steps_node: JsonNode, steps: list, text: str) -> list[lsp.DocumentSymbol]:
    symbols = []
    for index, (node, step) in enumerate(zip(steps_node.children, steps)):
        verb_node = find_node_at_location(node, ['verb'])
        noun = step.get('noun') if isinstance(step, dict) else None
        symbols.append(lsp.DocumentSymbol(
            name=step_name(index, step),
            kind=lsp.SymbolKind.Method,
            detail=noun if isinstance(noun, str) else None,
            range=node_to_range(node, text),
            selection_range=node_to_range(verb_node or node, text),
        ))
    return symbols


def document_symbols(doc: ParsedDocument) -> list[lsp.DocumentSymbol]:
    tree = doc.tree
    if tree is None or tree.type != 'object' or not isinstance(doc.value, dict):
        return []
    text = doc.source
    children: list[lsp.DocumentSymbol] = []

    metadata = _property(tree, 'metadata')
    if metadata is not None:
        children.append(_section_symbol(metadata, text, lsp.SymbolKind.Object))

    plan = _property(tree, 'plan')
    if plan is not None:
        plan_children: list[lsp.DocumentSymbol] = []
        steps_node = find_node_at_location(tree, ['plan', 'steps'])
        steps = plan_steps(doc.value)
        if steps_node is not None and steps is not None:
            plan_children = _step_symbols(steps_node, steps, text)
        children.append(_section_symbol(plan, text, lsp.SymbolKind.Object, plan_children))

    catalogs = _property(tree, 'globalCatalogs')
    if catalogs is not None:
        catalog_children = [
            _section_symbol(prop, text, lsp.SymbolKind.Namespace)
            for prop in (catalogs.value_node.children if catalogs.value_node.type == 'object' else [])
        ]
        children.append(_section_symbol(catalogs, text, lsp.SymbolKind.Object, catalog_children))

    root = lsp.DocumentSymbol(
        name='Envelope',
        kind=lsp.SymbolKind.Object,
        range=node_to_range(tree, text),
        selection_range=offsets_to_range(text, tree.offset, tree.offset + 1),
        children=children,
    )
    return [root]


def get_document_symbols(text: str, uri: str = '') -> list[lsp.DocumentSymbol]:
    return document_symbols(parse_document(uri, text))


def get_workspace_symbols(query: str, documents: Mapping[str, str]) -> list[lsp.SymbolInformation]:
    """Case-insensitive substring search over envelope ids and step verbs/nouns.

    *documents* maps URI to current text; documents that do not parse are skipped.
    """
    needle = query.lower()
    symbols: list[lsp.SymbolInformation] = []
    for uri, text in documents.items():
        doc = parse_document(uri, text)
        if doc.tree is None or not isinstance(doc.value, dict):
            continue

        metadata = doc.value.get('metadata')
        env_id = metadata.get('id') if isinstance(metadata, dict) else None
        if isinstance(env_id, str) and needle in env_id.lower():
            node = find_node_at_location(doc.tree, ['metadata', 'id'])
            symbols.append(lsp.SymbolInformation(
                name=f'Envelope: {env_id}',
                kind=lsp.SymbolKind.Object,
                location=lsp.Location(uri=uri, range=node_to_range(node, text)),
            ))

        steps = plan_steps(doc.value)
        if steps is None:
            continue
        for index, step in enumerate(steps):
            verb = step.get('verb') if isinstance(step, dict) else None
            noun = step.get('noun') if isinstance(step, dict) else None
            verb = verb if isinstance(verb, str) else ''
            noun = noun if isinstance(noun, str) else ''
            if needle not in verb.lower() and needle not in noun.lower():
                continue
            node = find_node_at_location(doc.tree, ['plan', 'steps', index])
            symbols.append(lsp.SymbolInformation(
                name=f'{verb or "unknown"}/{noun or "unknown"} (Step {index + 1})',
                kind=lsp.SymbolKind.Method,
                location=lsp.Location(uri=uri, range=node_to_range(node, text)),
                container_name=env_id if isinstance(env_id, str) else None,
            ))
    logger.debug('workspace symbols for %r: %d matches', query, len(symbols))
    return symbols
