"""Turn JSON parse failures, schema errors and semantic findings into LSP diagnostics."""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from lsprotocol import types as lsp

from movalsp.document import ParsedDocument, parse_document
from movalsp.positions import fallback_range, path_to_range
from movalsp.semantics import SemanticFinding, Severity, analyze

if TYPE_CHECKING:
    from movalsp.validator import SchemaErrorDescriptor, SchemaValidator

SOURCE_PARSER = 'json-parser'
SOURCE_SCHEMA = 'mova-schema'
SOURCE_SEMANTIC = 'mova-semantic'

_SEVERITY = {
    Severity.ERROR: lsp.DiagnosticSeverity.Error,
    Severity.WARNING: lsp.DiagnosticSeverity.Warning,
    Severity.INFO: lsp.DiagnosticSeverity.Information,
}


def _anchor(doc: ParsedDocument, path: Sequence[str | int]) -> lsp.Range:
    return path_to_range(doc.tree, path, doc.source) or fallback_range()


def parse_error_diagnostic(doc: ParsedDocument) -> lsp.Diagnostic:
    err = doc.error
    return lsp.Diagnostic(
        range=fallback_range(),
        message=f'JSON parse error: {err.message} (line {err.line} column {err.column})',
        severity=lsp.DiagnosticSeverity.Error,
        source=SOURCE_PARSER,
    )


def schema_diagnostics(
    doc: ParsedDocument, errors: Sequence[SchemaErrorDescriptor]
) -> list[lsp.Diagnostic]:
    """One diagnostic per schema error, anchored at the node its path names."""
    return [
        lsp.Diagnostic(
            range=_anchor(doc, err.path),
            message=f'{err.message} ({err.keyword})' if err.keyword else err.message,
            severity=lsp.DiagnosticSeverity.Error,
            source=SOURCE_SCHEMA,
            code=err.keyword,
            data={'path': list(err.path)},
        )
        for err in errors
    ]


def semantic_diagnostics(
    doc: ParsedDocument, findings: Sequence[SemanticFinding]
) -> list[lsp.Diagnostic]:
    diags: list[lsp.Diagnostic] = []
    for finding in findings:
        message = finding.message
        if finding.suggestion:
            message = f'{message}. {finding.suggestion}'
        diags.append(lsp.Diagnostic(
            range=_anchor(doc, finding.path),
            message=message,
            severity=_SEVERITY[finding.severity],
            source=SOURCE_SEMANTIC,
            code=finding.kind.value,
            data={'path': list(finding.path)},
        ))
    return diags


def get_diagnostics(doc: ParsedDocument, validator: SchemaValidator | None) -> list[lsp.Diagnostic]:
    """Return every diagnostic for *doc*, ordered by start line.

    A parse failure short-circuits: exactly one diagnostic is returned and
    neither the schema nor the semantic rules run.  Without a *validator*
    only the semantic rules are applied.
    """
    if doc.error is not None:
        return [parse_error_diagnostic(doc)]

    diags: list[lsp.Diagnostic] = []
    if validator is not None:
        diags.extend(schema_diagnostics(doc, validator.validate(doc.value).errors))
    diags.extend(semantic_diagnostics(doc, analyze(doc).findings))
    # sorted() is stable: same-line diagnostics keep discovery order
    return sorted(diags, key=lambda d: d.range.start.line)


def diagnose(text: str, validator: SchemaValidator, uri: str = '') -> list[lsp.Diagnostic]:
    return get_diagnostics(parse_document(uri, text), validator)
