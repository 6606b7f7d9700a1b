"""
Semantic analysis of envelope plans.

The JSON Schema only checks shape.  This module applies the domain rules the
schema cannot express: which nouns a verb accepts, which ``data`` fields are
usual for a noun, and a few per-verb heuristics.  The vocabularies are closed,
hand-maintained tables.

Findings carry the structural path of the offending node.  When a field is
missing the path is that of the object lacking it, which is also how JSON
Schema reports ``required`` failures.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from movalsp.document import ParsedDocument, parse_document
from movalsp.model import HttpFetchData, Step, TransformData, is_blank, plan_steps

VERB_NOUNS: dict[str, list[str]] = {
    'http_fetch': ['item', 'batch'],
    'set': ['variable', 'context'],
    'assert': ['condition'],
    'emit_event': ['event'],
    'transform': ['item', 'batch'],
    'filter': ['item', 'batch'],
    'map': ['item', 'batch'],
    'reduce': ['batch'],
    'group': ['item', 'batch'],
    'sort': ['batch'],
    'limit': ['batch'],
    'skip': ['batch'],
    'fork': ['batch'],
    'merge': ['batch'],
    'loop': ['item'],
    'delay': ['step'],
    'log': ['item', 'event'],
    'validate': ['item', 'batch'],
    'store': ['item', 'batch'],
    'retrieve': ['item'],
    'delete': ['item'],
    'publish': ['event', 'message'],
}

NOUN_FIELDS: dict[str, list[str]] = {
    'item': ['id', 'type', 'data', 'metadata'],
    'batch': ['items', 'count', 'offset', 'limit'],
    'event': ['name', 'payload', 'timestamp'],
    'variable': ['name', 'value', 'type'],
    'context': ['scope', 'data'],
    'condition': ['expression', 'operator'],
    'message': ['topic', 'content'],
    'step': ['index', 'result'],
}

VERB_DESCRIPTIONS: dict[str, str] = {
    'http_fetch': 'Make an HTTP request',
    'set': 'Set a variable or context value',
    'assert': 'Assert a condition (fail if false)',
    'emit_event': 'Emit an event',
    'transform': 'Transform data through a template',
    'filter': 'Keep the entries matching a predicate',
    'map': 'Apply an expression to every entry',
    'reduce': 'Fold a batch into a single value',
    'group': 'Group entries by a key',
    'sort': 'Sort a batch',
    'limit': 'Keep the first N entries of a batch',
    'skip': 'Drop the first N entries of a batch',
    'fork': 'Split a batch into parallel branches',
    'merge': 'Merge parallel branches back into one batch',
    'loop': 'Repeat the following steps for an item',
    'delay': 'Pause before the next step',
    'log': 'Log a message',
    'validate': 'Validate data against a schema',
    'store': 'Persist data',
    'retrieve': 'Load previously stored data',
    'delete': 'Remove previously stored data',
    'publish': 'Publish an event or message to a topic',
}

EXAMPLE_VERBS = ('http_fetch', 'set', 'assert')


class FindingKind(str, enum.Enum):
    UNKNOWN_VERB = 'unknown-verb'
    UNKNOWN_NOUN = 'unknown-noun'
    INVALID_CONTEXT = 'invalid-context'
    MISSING_REQUIRED_FIELD = 'missing-required-field'
    TYPE_MISMATCH = 'type-mismatch'


class Severity(str, enum.Enum):
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'


@dataclass
class SemanticFinding:
    path: tuple[str | int, ...]
    kind: FindingKind
    message: str
    severity: Severity
    suggestion: str | None = None


@dataclass
class SemanticAnalysisResult:
    valid: bool = True
    errors: list[SemanticFinding] = field(default_factory=list)
    warnings: list[SemanticFinding] = field(default_factory=list)

    @property
    def findings(self) -> list[SemanticFinding]:
        return self.errors + self.warnings

    def error(self, path, kind, message, suggestion=None) -> None:
        self.errors.append(SemanticFinding(tuple(path), kind, message, Severity.ERROR, suggestion))

    def warning(self, path, kind, message, suggestion=None) -> None:
        self.warnings.append(SemanticFinding(tuple(path), kind, message, Severity.WARNING, suggestion))


def known_verb(verb: Any) -> bool:
    return isinstance(verb, str) and verb in VERB_NOUNS


def nouns_for(verb: Any) -> list[str]:
    return VERB_NOUNS.get(verb, []) if isinstance(verb, str) else []


def fields_for(noun: Any) -> list[str]:
    return NOUN_FIELDS.get(noun, []) if isinstance(noun, str) else []


def all_nouns() -> list[str]:
    return sorted({n for nouns in VERB_NOUNS.values() for n in nouns})


def _steps_anchor(envelope: Any) -> tuple[str, ...]:
    plan = envelope.get('plan') if isinstance(envelope, dict) else None
    if isinstance(plan, dict):
        return ('plan', 'steps') if 'steps' in plan else ('plan',)
    return ()


def analyze_envelope(envelope: Any) -> SemanticAnalysisResult:
    """Apply the plan rules to an already decoded envelope value."""
    result = SemanticAnalysisResult()
    steps = plan_steps(envelope)
    if steps is None:
        result.error(
            _steps_anchor(envelope), FindingKind.MISSING_REQUIRED_FIELD,
            'plan.steps is required and must be an array',
        )
        result.valid = False
        return result

    for index, raw in enumerate(steps):
        _analyze_step(Step.from_value(index, raw), result)

    result.valid = not result.errors
    return result


def _analyze_step(step: Step, result: SemanticAnalysisResult) -> None:
    base = ('plan', 'steps', step.index)

    if not step.has_verb:
        result.error(
            base, FindingKind.MISSING_REQUIRED_FIELD, 'Step must have a verb',
            'Add verb field to step (e.g., {})'.format(', '.join(f'"{v}"' for v in EXAMPLE_VERBS)),
        )
        return

    if not step.has_noun:
        result.error(
            base, FindingKind.MISSING_REQUIRED_FIELD, 'Step must have a noun',
            'Add noun field to step',
        )
        return

    if not known_verb(step.verb):
        result.error(
            base + ('verb',), FindingKind.UNKNOWN_VERB, f'Unknown verb: "{step.verb}"',
            'Valid verbs: ' + ', '.join(VERB_NOUNS),
        )

    valid_nouns = nouns_for(step.verb)
    if valid_nouns and step.noun not in valid_nouns:
        result.error(
            base + ('noun',), FindingKind.TYPE_MISMATCH,
            f'Noun "{step.noun}" is not valid for verb "{step.verb}"',
            f'Valid nouns for "{step.verb}": ' + ', '.join(valid_nouns),
        )

    if isinstance(step.data, dict):
        _analyze_data(step.data, base + ('data',), step.noun, result)

    data_anchor = base + ('data',) if isinstance(step.raw, dict) and 'data' in step.raw else base
    if step.verb == 'http_fetch':
        _check_http_fetch(step.data_fields, data_anchor, result)
    elif step.verb == 'transform':
        _check_transform(step.data_fields, data_anchor, result)


def _analyze_data(data: dict[str, Any], base: tuple, noun: Any, result: SemanticAnalysisResult) -> None:
    valid_fields = fields_for(noun)
    if not valid_fields:
        return
    for key in data:
        if key.startswith('_') or key in valid_fields:
            continue
        result.warning(
            base + (key,), FindingKind.INVALID_CONTEXT,
            f'Field "{key}" is not typical for noun "{noun}"',
            f'Known fields for "{noun}": ' + ', '.join(valid_fields),
        )


def _check_http_fetch(data: HttpFetchData, anchor: tuple, result: SemanticAnalysisResult) -> None:
    if is_blank(data.get('url')) and is_blank(data.get('endpoint')):
        result.warning(
            anchor, FindingKind.MISSING_REQUIRED_FIELD,
            'http_fetch step should have url or endpoint in data',
            'Add "url" or "endpoint" field to step.data',
        )


def _check_transform(data: TransformData, anchor: tuple, result: SemanticAnalysisResult) -> None:
    if is_blank(data.get('template')):
        result.warning(
            anchor, FindingKind.MISSING_REQUIRED_FIELD,
            'transform step should have a template in data',
            'Add "template" field to step.data',
        )


def analyze(document: ParsedDocument | str) -> SemanticAnalysisResult:
    """Analyze a parsed document or raw envelope text.

    Text that is not valid JSON yields a single ``invalid-context`` error at
    the root path; nothing is raised.
    """
    doc = parse_document('', document) if isinstance(document, str) else document
    if doc.error is not None:
        result = SemanticAnalysisResult(valid=False)
        result.error((), FindingKind.INVALID_CONTEXT,
                     f'Failed to parse envelope: {doc.error.message}')
        return result
    return analyze_envelope(doc.value)


def analyze_semantics(text: str) -> SemanticAnalysisResult:
    return analyze(text)
