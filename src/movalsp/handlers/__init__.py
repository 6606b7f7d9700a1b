"""handlers/__init__.py: re-export handler functions for convenience."""
from .code_actions import get_code_actions
from .completion import get_completions
from .diagnostics import diagnose, get_diagnostics
from .formatting import format_document, format_range
from .hover import get_hover
from .references import find_references, prepare_rename, rename
from .symbols import get_document_symbols, get_workspace_symbols

__all__ = [
    'diagnose', 'find_references', 'format_document', 'format_range',
    'get_code_actions', 'get_completions', 'get_diagnostics',
    'get_document_symbols', 'get_hover', 'get_workspace_symbols',
    'prepare_rename', 'rename',
]
