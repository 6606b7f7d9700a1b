"""
Settings resolution for movalsp.

Each setting is taken from the first source that defines it:

1. Client configuration supplied via ``initializationOptions`` or the ``mova``
   section of ``workspace/didChangeConfiguration`` (camelCase keys).
2. A ``.movalsp.toml`` project config file in the workspace root
   (snake_case keys).
3. Built-in defaults.

The project file is re-read on every :meth:`SettingsResolver.resolve` so edits
to it take effect without restarting the server.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

PROJECT_CONFIG = '.movalsp.toml'

# camelCase client key -> ServerSettings attribute
_CLIENT_KEYS = {
    'schemaPath': 'schema_path',
    'maxDiagnostics': 'max_diagnostics',
    'logLevel': 'log_level',
    'debounceDelay': 'debounce_delay',
}


@dataclass(frozen=True)
class ServerSettings:
    schema_path: str | None = None
    max_diagnostics: int = 200
    log_level: str | None = None
    debounce_delay: float = 0.3


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw config value for attribute *name*; raise ValueError if unusable."""
    if value is None:
        return None
    if name == 'max_diagnostics':
        number = int(value)
        if number < 0:
            raise ValueError('maxDiagnostics must be non-negative')
        return number
    if name == 'debounce_delay':
        return max(0.0, float(value))
    return str(value)


def _collect(raw: Mapping[str, Any], key_map: Mapping[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, attr in key_map.items():
        if key not in raw:
            continue
        try:
            out[attr] = _coerce(attr, raw[key])
        except (TypeError, ValueError):
            logger.warning('ignoring invalid setting %s=%r', key, raw[key])
    return out


def _read_project_config(workspace_root: str | None) -> dict[str, Any]:
    """Parse ``.movalsp.toml`` in *workspace_root*; empty dict if absent or invalid."""
    if not workspace_root:
        return {}
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib

    config_path = Path(workspace_root) / PROJECT_CONFIG
    if not config_path.exists():
        return {}

    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning('cannot read %s', config_path, exc_info=True)
        return {}
    values = _collect(data, {f.name: f.name for f in fields(ServerSettings)})
    schema_path = values.get('schema_path')
    if schema_path and not Path(schema_path).is_absolute():
        values['schema_path'] = str(Path(workspace_root) / schema_path)
    return values


def client_settings(options: Any) -> dict[str, Any]:
    """Extract the ``mova`` settings from initialization options or a config payload.

    Accepts either ``{"mova": {...}}`` or the bare section.  Some clients send
    typed objects rather than dicts; those are read through attribute access.
    """
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        options = {k: getattr(options, k) for k in (*_CLIENT_KEYS, 'mova') if hasattr(options, k)}
    section = options.get('mova', options)
    if not isinstance(section, Mapping):
        return {}
    return _collect(section, _CLIENT_KEYS)


class SettingsResolver:
    """Merges client, project-file and default settings for one workspace."""

    def __init__(self, workspace_root: str | None = None):
        self._workspace_root = workspace_root
        self._client: dict[str, Any] = {}

    @property
    def workspace_root(self) -> str | None:
        return self._workspace_root

    def set_client_settings(self, values: Mapping[str, Any]) -> None:
        """Replace the client-supplied layer (``None`` values clear a key)."""
        self._client = {k: v for k, v in values.items() if v is not None}

    def update_client_settings(self, values: Mapping[str, Any]) -> None:
        merged = dict(self._client)
        merged.update(values)
        self.set_client_settings(merged)

    def resolve(self) -> ServerSettings:
        settings = ServerSettings()
        project = _read_project_config(self._workspace_root)
        settings = replace(settings, **{k: v for k, v in project.items() if v is not None})
        return replace(settings, **self._client)
