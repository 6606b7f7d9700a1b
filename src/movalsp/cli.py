"""
movalsp – MOVA envelope Language Server and tooling CLI entry points.

Usage
-----
    movalsp               # stdio mode (default, for use with editors)
    movalsp --stdio       # explicit stdio mode
    movalsp --tcp 2087    # listen on TCP port (useful for debugging)

    mova validate envelope.json [--output text|json] [--schema PATH]
    mova run envelope.json [--var KEY=VALUE ...]
    mova snippet TYPE
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

_SEVERITY_NAMES = {1: 'error', 2: 'warning', 3: 'info', 4: 'hint'}


def _add_log_level(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        '--log-level',
        metavar='LEVEL',
        default='WARNING',
        choices=_LOG_LEVELS,
        help='Logging level written to stderr (default: WARNING)',
    )


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# movalsp: the language server
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='movalsp',
        description='Language Server (LSP) for MOVA envelope JSON files.',
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument(
        '--stdio',
        action='store_true',
        default=False,
        help='Communicate over stdin/stdout (default when no flag given)',
    )
    mode.add_argument(
        '--tcp',
        metavar='PORT',
        type=int,
        default=None,
        help='Listen for connections on the given TCP port instead of stdio',
    )
    p.add_argument(
        '--version',
        action='store_true',
        default=False,
        help='Print the movalsp version and exit',
    )
    _add_log_level(p)
    return p


def movalsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``movalsp`` command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    from movalsp import __version__

    if args.version:
        print(f'movalsp {__version__}')
        sys.exit(0)

    from movalsp.server import server

    if args.tcp is not None:
        server.start_tcp('127.0.0.1', args.tcp)
    else:
        # Default (and --stdio): communicate via stdin/stdout
        server.start_io()


# ---------------------------------------------------------------------------
# mova: offline tooling
# ---------------------------------------------------------------------------

def _build_mova_parser() -> argparse.ArgumentParser:
    from movalsp import __version__

    p = argparse.ArgumentParser(prog='mova', description='MOVA envelope tools.')
    p.add_argument('--version', action='version', version=f'mova {__version__}')
    _add_log_level(p)
    sub = p.add_subparsers(dest='command', required=True)

    v = sub.add_parser('validate', help='Validate a MOVA envelope file')
    v.add_argument('file', type=Path)
    v.add_argument('--output', choices=['text', 'json'], default='text',
                   help='Output format (default: text)')
    v.add_argument('--schema', type=Path, default=None,
                   help='Validate against this JSON Schema instead of the bundled one')

    r = sub.add_parser('run', help='Dry-run the plan of a MOVA envelope file')
    r.add_argument('file', type=Path)
    r.add_argument('--var', dest='variables', action='append', default=[],
                   metavar='KEY=VALUE', help='Variable passed to every step (repeatable)')

    s = sub.add_parser('snippet', help='Print a starter envelope')
    s.add_argument('type', help='Workflow category, e.g. http, transform, event')
    return p


def _parse_variables(pairs: list[str]) -> dict[str, object]:
    """``KEY=VALUE`` pairs; values that parse as JSON are decoded, others stay strings."""
    out: dict[str, object] = {}
    for pair in pairs:
        key, sep, raw = pair.partition('=')
        if not sep or not key:
            raise ValueError(f'expected KEY=VALUE, got {pair!r}')
        try:
            out[key] = json.loads(raw)
        except ValueError:
            out[key] = raw
    return out


def _diagnostic_dict(diag) -> dict:
    return {
        'line': diag.range.start.line + 1,
        'column': diag.range.start.character + 1,
        'severity': _SEVERITY_NAMES.get(int(diag.severity or 1), 'error'),
        'source': diag.source,
        'code': diag.code,
        'message': diag.message,
    }


def _cmd_validate(args) -> int:
    from movalsp.handlers import diagnose
    from movalsp.validator import SchemaValidator

    text = args.file.read_text(encoding='utf-8')
    validator = SchemaValidator(schema_path=args.schema)
    validator.compile()
    entries = [_diagnostic_dict(d) for d in diagnose(text, validator, args.file.as_uri())]
    ok = not any(e['severity'] == 'error' for e in entries)

    if args.output == 'json':
        print(json.dumps({'ok': ok, 'file': str(args.file), 'diagnostics': entries}, indent=2))
    else:
        for e in entries:
            print(f"{args.file}:{e['line']}:{e['column']}: {e['severity']}: {e['message']}")
        print(f'{args.file} is valid' if ok else f'{args.file} has validation errors')
    return 0 if ok else 1


def _cmd_run(args) -> int:
    from movalsp.simulator import simulate

    variables = _parse_variables(args.variables)
    report = simulate(args.file.read_text(encoding='utf-8'), variables)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.success else 1


_SNIPPET_STEPS = {
    'http': {'verb': 'http_fetch', 'noun': 'item',
             'data': {'url': 'https://example.com/api', 'method': 'GET'}},
    'transform': {'verb': 'transform', 'noun': 'item',
                  'data': {'template': '{{ input }}'}},
    'event': {'verb': 'emit_event', 'noun': 'event',
              'data': {'name': 'started', 'payload': {}}},
}


def snippet(kind: str, timestamp: int | None = None) -> dict:
    """A minimal valid envelope for workflow category *kind*."""
    stamp = int(time.time()) if timestamp is None else timestamp
    step = dict(_SNIPPET_STEPS.get(kind, {'verb': 'log', 'noun': 'item',
                                          'data': {'data': 'Hello from MOVA'}}))
    return {
        'envelope': '3.4.1',
        'metadata': {
            'id': f'{kind}-{stamp}',
            'version': '1.0.0',
            'title': f'Sample {kind} workflow',
            'tags': [kind],
        },
        'plan': {'steps': [{'id': 'step_1', **step}]},
    }


def mova(argv: list[str] | None = None) -> None:
    """Entry point for the ``mova`` command."""
    parser = _build_mova_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    from movalsp.validator import MovaError

    try:
        if args.command == 'validate':
            code = _cmd_validate(args)
        elif args.command == 'run':
            code = _cmd_run(args)
        else:
            print(json.dumps(snippet(args.type), indent=2))
            code = 0
    except (OSError, ValueError, MovaError) as e:
        print(f'Error: {e}', file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == '__main__':
    movalsp()
