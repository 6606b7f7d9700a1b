"""movalsp – MOVA envelope Language Server."""
try:
    from importlib.metadata import version, PackageNotFoundError
    try:
        __version__ = version('movalsp')
    except PackageNotFoundError:
        __version__ = '0.0.0.dev0'
except ImportError:
    __version__ = '0.0.0.dev0'

from movalsp.handlers import (  # noqa: E402
    diagnose,
    find_references,
    get_document_symbols,
    get_workspace_symbols,
    prepare_rename,
    rename,
)
from movalsp.semantics import analyze_semantics  # noqa: E402
from movalsp.simulator import simulate  # noqa: E402
from movalsp.validator import initialize_validator, validate_value  # noqa: E402

__all__ = [
    '__version__',
    'analyze_semantics', 'diagnose', 'find_references', 'get_document_symbols',
    'get_workspace_symbols', 'initialize_validator', 'prepare_rename', 'rename',
    'simulate', 'validate_value',
]
