"""
Offset / position conversion and structural-path lookup.

Validators report *structural* paths into the decoded value (``plan`` →
``steps`` → ``1`` → ``verb``).  JSON allows arbitrary whitespace and member
order, so the only reliable way back to the text is to walk the position tree
of the same document with the same path.

LSP positions are 0-based lines and UTF-16 code-unit columns.  ``\\r\\n`` and
``\\n`` both end a line; a lone ``\\r`` does not.
"""
from __future__ import annotations

from typing import Sequence, Union

from lsprotocol import types as lsp

from movalsp.document import JsonNode

PathSegment = Union[str, int]


def fallback_range() -> lsp.Range:
    """Anchor for problems with no locatable node: the first character."""
    return lsp.Range(
        start=lsp.Position(line=0, character=0),
        end=lsp.Position(line=0, character=1),
    )


def utf16_len(s: str) -> int:
    return len(s.encode('utf-16-le', 'surrogatepass')) // 2


def utf16_to_index(line: str, character: int) -> int:
    """Convert a UTF-16 column on *line* into a Python string index (clamped)."""
    units = 0
    for idx, ch in enumerate(line):
        if units >= character:
            return idx
        units += 2 if ord(ch) > 0xFFFF else 1
    return len(line)


def offset_to_position(text: str, offset: int) -> lsp.Position:
    """Return the LSP position of string index *offset* in *text*."""
    offset = min(max(0, offset), len(text))
    line = text.count('\n', 0, offset)
    line_start = text.rfind('\n', 0, offset) + 1
    return lsp.Position(line=line, character=utf16_len(text[line_start:offset]))


def position_to_offset(text: str, position: lsp.Position) -> int:
    """Inverse of :func:`offset_to_position`; out-of-range positions are clamped."""
    line_start = 0
    for _ in range(max(0, position.line)):
        nl = text.find('\n', line_start)
        if nl == -1:
            break
        line_start = nl + 1
    line_end = text.find('\n', line_start)
    if line_end == -1:
        line_end = len(text)
    line = text[line_start:line_end]
    if line.endswith('\r'):
        line = line[:-1]
    return line_start + utf16_to_index(line, max(0, position.character))


def offsets_to_range(text: str, start: int, end: int) -> lsp.Range:
    return lsp.Range(
        start=offset_to_position(text, start),
        end=offset_to_position(text, end),
    )


def node_to_range(node: JsonNode, text: str) -> lsp.Range:
    return offsets_to_range(text, node.offset, node.end)


def format_path(path: Sequence[PathSegment]) -> str:
    """Human-readable form of *path*, e.g. ``plan.steps[1].verb``."""
    out = ''
    for seg in path:
        if isinstance(seg, int) and not isinstance(seg, bool):
            out += f'[{seg}]'
        else:
            out += f'.{seg}' if out else str(seg)
    return out or '<root>'


def find_node_at_location(root: JsonNode | None, path: Sequence[PathSegment]) -> JsonNode | None:
    """Descend *root* along *path*; return the located value node or *None*.

    When an object repeats a member name the last one wins, matching the
    value :func:`json.loads` produced.
    """
    node = root
    for seg in path:
        if node is None:
            return None
        if isinstance(seg, str):
            if node.type != 'object':
                return None
            match = None
            for prop in node.children:
                if prop.key == seg:
                    match = prop.value_node
            node = match
        elif isinstance(seg, int) and not isinstance(seg, bool):
            if node.type != 'array' or not 0 <= seg < len(node.children):
                return None
            node = node.children[seg]
        else:
            return None
    return node


def path_to_range(tree: JsonNode | None, path: Sequence[PathSegment], text: str) -> lsp.Range | None:
    """Range covering the node at *path*, or *None* when it cannot be resolved."""
    node = find_node_at_location(tree, path)
    if node is None:
        return None
    return node_to_range(node, text)


def find_node_at_offset(root: JsonNode | None, offset: int) -> JsonNode | None:
    """Innermost node whose span contains *offset* (end inclusive)."""
    if root is None or not root.offset <= offset <= root.end:
        return None
    node = root
    while True:
        for child in node.children:
            if child.offset <= offset <= child.end:
                node = child
                break
        else:
            return node


def node_path(node: JsonNode) -> list[PathSegment]:
    """Structural path from the root to *node* (keys of properties, array indices)."""
    path: list[PathSegment] = []
    current = node
    while current.parent is not None:
        parent = current.parent
        if parent.type == 'property':
            if current is parent.value_node:
                path.append(parent.key)
        elif parent.type == 'array':
            path.append(parent.children.index(current))
        current = parent
    path.reverse()
    return path
