"""
Per-request document parsing.

Each call into the analysis core receives the full document text and builds a
``ParsedDocument`` from scratch.  The Python value is produced by
:func:`json.loads` (strict JSON: ``NaN``/``Infinity`` are rejected); a parse
failure is stored on the document instead of being raised so callers can turn
it into a diagnostic.

The position tree is only needed when something has to be anchored to the
text, so it is built lazily on first access of :attr:`ParsedDocument.tree`.
Its shape follows the usual JSON editor convention: object nodes hold
``property`` children, each ``property`` holds ``[key, value]``.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

_WS_RE = re.compile(r'[ \t\r\n]*')
_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)
_NUMBER_RE = re.compile(r'-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?')
_LITERALS = {'true': 'boolean', 'false': 'boolean', 'null': 'null'}


class TreeError(ValueError):
    """Raised by :func:`parse_tree` when *text* is not well-formed JSON."""

    def __init__(self, message: str, offset: int):
        super().__init__(f'{message} at offset {offset}')
        self.offset = offset


@dataclass
class ParseError:
    line: int        # 1-based, as reported by the json module
    column: int      # 1-based
    offset: int
    message: str


@dataclass(eq=False)
class JsonNode:
    type: str                          # object, array, property, string, number, boolean, null
    offset: int
    length: int = 0
    children: list[JsonNode] = field(default_factory=list)
    parent: JsonNode | None = field(default=None, repr=False)
    value: Any = None                  # decoded value for string (incl. keys) and scalar nodes

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def key(self) -> str | None:
        """The member name when this node is a ``property``."""
        if self.type == 'property' and self.children:
            return self.children[0].value
        return None

    @property
    def value_node(self) -> JsonNode | None:
        """The value child when this node is a ``property``."""
        if self.type == 'property' and len(self.children) > 1:
            return self.children[1]
        return None


class _TreeBuilder:
    def __init__(self, text: str):
        self.text = text
        self.i = 0

    def _skip_ws(self) -> None:
        self.i = _WS_RE.match(self.text, self.i).end()

    def _expect(self, ch: str) -> None:
        if not self.text.startswith(ch, self.i):
            raise TreeError(f'Expected {ch!r}', self.i)
        self.i += 1

    def build(self) -> JsonNode:
        self._skip_ws()
        root = self._value(None)
        self._skip_ws()
        if self.i != len(self.text):
            raise TreeError('Trailing characters', self.i)
        return root

    def _value(self, parent: JsonNode | None) -> JsonNode:
        self._skip_ws()
        start = self.i
        ch = self.text[start:start + 1]
        if ch == '{':
            return self._object(parent)
        if ch == '[':
            return self._array(parent)
        if ch == '"':
            return self._string(parent)
        m = _NUMBER_RE.match(self.text, start)
        if m:
            self.i = m.end()
            return JsonNode('number', start, m.end() - start, parent=parent,
                            value=json.loads(m.group()))
        for word, kind in _LITERALS.items():
            if self.text.startswith(word, start):
                self.i = start + len(word)
                return JsonNode(kind, start, len(word), parent=parent,
                                value=json.loads(word))
        raise TreeError('Invalid value', start)

    def _string(self, parent: JsonNode | None) -> JsonNode:
        m = _STRING_RE.match(self.text, self.i)
        if m is None:
            raise TreeError('Unterminated string', self.i)
        self.i = m.end()
        return JsonNode('string', m.start(), m.end() - m.start(), parent=parent,
                        value=json.loads(m.group()))

    def _object(self, parent: JsonNode | None) -> JsonNode:
        node = JsonNode('object', self.i, parent=parent)
        self._expect('{')
        self._skip_ws()
        if not self.text.startswith('}', self.i):
            while True:
                self._skip_ws()
                if not self.text.startswith('"', self.i):
                    raise TreeError('Expected property name', self.i)
                prop = JsonNode('property', self.i, parent=node)
                prop.children.append(self._string(prop))
                self._skip_ws()
                self._expect(':')
                prop.children.append(self._value(prop))
                prop.length = self.i - prop.offset
                node.children.append(prop)
                self._skip_ws()
                if self.text.startswith('}', self.i):
                    break
                self._expect(',')
        self._expect('}')
        node.length = self.i - node.offset
        return node

    def _array(self, parent: JsonNode | None) -> JsonNode:
        node = JsonNode('array', self.i, parent=parent)
        self._expect('[')
        self._skip_ws()
        if not self.text.startswith(']', self.i):
            while True:
                node.children.append(self._value(node))
                self._skip_ws()
                if self.text.startswith(']', self.i):
                    break
                self._expect(',')
        self._expect(']')
        node.length = self.i - node.offset
        return node


def parse_tree(text: str) -> JsonNode:
    """Build the position tree for *text*; raises :class:`TreeError` on bad input."""
    return _TreeBuilder(text).build()


def _reject_constant(name: str):
    raise ValueError(f'{name} is not valid JSON')


@dataclass
class ParsedDocument:
    uri: str
    source: str
    value: Any = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @cached_property
    def tree(self) -> JsonNode | None:
        """Position tree of :attr:`source`, or *None* if the text did not parse."""
        if self.error is not None:
            return None
        try:
            return parse_tree(self.source)
        except (TreeError, RecursionError):
            return None


def parse_document(uri: str, source: str) -> ParsedDocument:
    """Parse *source* and return a :class:`ParsedDocument`.

    Never raises for malformed text: the failure is recorded in
    :attr:`ParsedDocument.error` and :attr:`ParsedDocument.value` stays *None*.
    """
    try:
        value = json.loads(source, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        return ParsedDocument(uri=uri, source=source, error=ParseError(
            line=e.lineno, column=e.colno, offset=e.pos, message=e.msg,
        ))
    except (ValueError, RecursionError) as e:
        return ParsedDocument(uri=uri, source=source, error=ParseError(
            line=1, column=1, offset=0, message=str(e) or type(e).__name__,
        ))
    return ParsedDocument(uri=uri, source=source, value=value)
