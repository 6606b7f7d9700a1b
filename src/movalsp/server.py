"""
movalsp Language Server.

Registers LSP capabilities and wires the envelope handlers.  All handler
functions are plain module-level callables so they can be exercised directly
in tests without a client connection.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path

from movalsp import __version__
from movalsp.document import ParsedDocument, parse_document
from movalsp.handlers import (
    find_references,
    format_document,
    format_range,
    get_code_actions,
    get_completions,
    get_diagnostics,
    get_hover,
    get_workspace_symbols,
    prepare_rename,
    rename,
)
from movalsp.handlers.symbols import document_symbols
from movalsp.settings import ServerSettings, SettingsResolver, client_settings
from movalsp.simulator import simulate
from movalsp.validator import MovaError, SchemaValidator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'movalsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

# Per-URI document store (populated on open/change).
_docs: dict[str, ParsedDocument] = {}

# Settings resolver and the settings currently in effect.
_resolver = SettingsResolver()
_settings = ServerSettings()

# The one schema validator; replaced when the schema path changes.
_validator = SchemaValidator()

# Debounce state: pending asyncio tasks for each URI.
_pending_tasks: dict[str, asyncio.Task] = {}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _apply_settings() -> bool:
    """Re-resolve settings; return True when the schema changed."""
    global _settings, _validator
    previous = _settings
    _settings = _resolver.resolve()
    _apply_log_level(_settings.log_level)
    if _settings.schema_path != previous.schema_path:
        logger.info('schema path changed to %s', _settings.schema_path or '<bundled>')
        _validator = SchemaValidator(schema_path=_settings.schema_path)
        return True
    return False


def _show_error(message: str) -> None:
    try:
        server.window_show_message(
            lsp.ShowMessageParams(type=lsp.MessageType.Error, message=message)
        )
    except Exception:
        logger.debug('cannot show message (no client): %s', message)


def _publish_diagnostics(uri: str, validator: SchemaValidator | None = None) -> None:
    doc = _docs.get(uri)
    if doc is None:
        return
    try:
        diags = get_diagnostics(doc, validator)
    except Exception:
        logger.warning('diagnostics failed for %s', uri, exc_info=True)
        return
    if len(diags) > _settings.max_diagnostics:
        logger.debug('truncating %d diagnostics to %d for %s',
                     len(diags), _settings.max_diagnostics, uri)
        diags = diags[:_settings.max_diagnostics]
    logger.debug('_publish_diagnostics: %s → %d diagnostics', uri, len(diags))
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diags)
    )


async def _ready_validator() -> SchemaValidator | None:
    """The initialized validator, or None if the schema cannot be compiled."""
    validator = _validator
    try:
        await validator.initialize()
    except MovaError as e:
        logger.error('schema unavailable: %s', e)
        _show_error(f'MOVA schema unavailable: {e}')
        return None
    return validator


async def _debounced_update(uri: str, delay: float = 0.3) -> None:
    """Wait *delay* seconds, then publish diagnostics for *uri*.

    Called via asyncio.ensure_future so it can be cancelled if the document
    changes again before the delay expires (debounce while typing).  The
    first run also waits for the schema to compile.
    """
    await asyncio.sleep(delay)
    logger.debug('_debounced_update: running for %s', uri)
    validator = await _ready_validator()
    _publish_diagnostics(uri, validator)


def _schedule_update(uri: str, delay: float | None = None) -> None:
    """Cancel any pending update for *uri* and schedule a new debounced one."""
    if delay is None:
        delay = _settings.debounce_delay
    existing = _pending_tasks.pop(uri, None)
    if existing is not None:
        existing.cancel()
    task = asyncio.ensure_future(_debounced_update(uri, delay))
    _pending_tasks[uri] = task

    def _forget(t: asyncio.Task) -> None:
        # a cancelled task finishes after its replacement is registered
        if _pending_tasks.get(uri) is t:
            del _pending_tasks[uri]

    task.add_done_callback(_forget)


def _revalidate_all() -> None:
    for uri in list(_docs):
        _schedule_update(uri, delay=0.0)


def _workspace_root(params: lsp.InitializeParams) -> str | None:
    if params.workspace_folders:
        return to_fs_path(params.workspace_folders[0].uri)
    if params.root_uri:
        return to_fs_path(params.root_uri)
    return params.root_path


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _resolver
    _resolver = SettingsResolver(workspace_root=_workspace_root(params))
    _resolver.set_client_settings(client_settings(params.initialization_options))
    _apply_settings()


@server.feature(lsp.INITIALIZED)
async def on_initialized(params: lsp.InitializedParams):
    """Compile the schema in the background as soon as the client is ready."""
    await _ready_validator()


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. user changes ``mova.schemaPath``)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict) and 'mova' in settings:
        _resolver.update_client_settings(client_settings(settings['mova']))
    if _apply_settings():
        _revalidate_all()


# ---------------------------------------------------------------------------
# Document sync
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _docs[td.uri] = parse_document(td.uri, td.text)
    _schedule_update(td.uri, delay=0.0)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    source = params.content_changes[-1].text
    _docs[uri] = parse_document(uri, source)
    # Debounce: wait for the user to pause typing before validating
    _schedule_update(uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    existing = _pending_tasks.pop(uri, None)
    if existing is not None:
        existing.cancel()
    _docs.pop(uri, None)
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=[])
    )


# ---------------------------------------------------------------------------
# Completion / hover
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=['"', ':']),
)
def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        items = get_completions(doc, params.position)
    except Exception:
        logger.warning('completion failed', exc_info=True)
        items = []
    return lsp.CompletionList(is_incomplete=False, items=items)


@server.feature(lsp.TEXT_DOCUMENT_HOVER)
def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        return get_hover(doc, params.position)
    except Exception:
        logger.warning('hover failed', exc_info=True)
        return None


# ---------------------------------------------------------------------------
# References / rename
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
def references(params: lsp.ReferenceParams) -> list[lsp.Location]:
    uri = params.text_document.uri
    doc = _docs.get(uri)
    if doc is None:
        return []
    try:
        return find_references(doc.source, params.position, uri)
    except Exception:
        logger.warning('references failed', exc_info=True)
        return []


@server.feature(lsp.TEXT_DOCUMENT_PREPARE_RENAME)
def on_prepare_rename(params: lsp.PrepareRenameParams) -> lsp.Range | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        return prepare_rename(doc.source, params.position)
    except Exception:
        logger.warning('prepareRename failed', exc_info=True)
        return None


@server.feature(lsp.TEXT_DOCUMENT_RENAME)
def on_rename(params: lsp.RenameParams) -> lsp.WorkspaceEdit | None:
    uri = params.text_document.uri
    doc = _docs.get(uri)
    if doc is None:
        return None
    try:
        return rename(doc.source, params.position, params.new_name, uri)
    except Exception:
        logger.warning('rename failed', exc_info=True)
        return None


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DOCUMENT_SYMBOL)
def document_symbol(params: lsp.DocumentSymbolParams) -> list[lsp.DocumentSymbol]:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return []
    try:
        return document_symbols(doc)
    except Exception:
        logger.warning('documentSymbol failed', exc_info=True)
        return []


@server.feature(lsp.WORKSPACE_SYMBOL)
def workspace_symbol(params: lsp.WorkspaceSymbolParams) -> list[lsp.SymbolInformation]:
    try:
        return get_workspace_symbols(params.query, {uri: d.source for uri, d in _docs.items()})
    except Exception:
        logger.warning('workspace/symbol failed', exc_info=True)
        return []


# ---------------------------------------------------------------------------
# Formatting / code actions
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_FORMATTING)
def formatting(params: lsp.DocumentFormattingParams) -> list[lsp.TextEdit]:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return []
    try:
        return format_document(doc.source, params.options)
    except Exception:
        logger.warning('formatting failed', exc_info=True)
        return []


@server.feature(lsp.TEXT_DOCUMENT_RANGE_FORMATTING)
def range_formatting(params: lsp.DocumentRangeFormattingParams) -> list[lsp.TextEdit]:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return []
    try:
        return format_range(doc.source, params.range, params.options)
    except Exception:
        logger.warning('rangeFormatting failed', exc_info=True)
        return []


@server.feature(
    lsp.TEXT_DOCUMENT_CODE_ACTION,
    lsp.CodeActionOptions(code_action_kinds=[lsp.CodeActionKind.QuickFix]),
)
def code_action(params: lsp.CodeActionParams) -> list[lsp.CodeAction]:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return []
    try:
        return get_code_actions(doc, params.context.diagnostics)
    except Exception:
        logger.warning('codeAction failed', exc_info=True)
        return []


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@server.command('mova.runPlanDry')
def cmd_run_plan_dry(target: str, variables: dict[str, Any] | None = None):
    """Dry-run the plan of an open document (by URI) or of raw envelope text.

    pygls unpacks ``workspace/executeCommand`` ``arguments`` as positional
    args: ``arguments: [uriOrText]`` or ``arguments: [uriOrText, variables]``.
    """
    if target is None:
        return None
    doc = _docs.get(target)
    text = doc.source if doc is not None else target
    report = simulate(text, variables if isinstance(variables, dict) else None)
    return report.to_dict()
