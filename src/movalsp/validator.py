"""
Schema validation capability.

The envelope schema is compiled at most once per :class:`SchemaValidator`.
The server owns a single instance and passes it to the diagnostics pipeline;
tests build their own (or call :meth:`SchemaValidator.reset`).

Keyword evaluation is delegated to :mod:`jsonschema`.  This module only
turns its errors into :class:`SchemaErrorDescriptor` records carrying the
structural path, the failing keyword and the message.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = 'envelope.schema.json'


class MovaError(Exception):
    """Base class for infrastructure failures of the analysis core."""


class SchemaCompileError(MovaError):
    """The schema could not be loaded or is not a valid JSON Schema."""


class ValidatorNotInitializedError(MovaError):
    """:meth:`SchemaValidator.validate` was called before compilation."""


@dataclass(frozen=True)
class SchemaErrorDescriptor:
    path: tuple[str | int, ...]
    keyword: str
    message: str


@dataclass
class ValidationResult:
    ok: bool
    errors: list[SchemaErrorDescriptor] = field(default_factory=list)


def load_bundled_schema(name: str = DEFAULT_SCHEMA) -> dict:
    text = resources.files('movalsp.schemas').joinpath(name).read_text(encoding='utf-8')
    return json.loads(text)


def compile_schema(schema: Any) -> Validator:
    """Check *schema* against its metaschema and return a validator for it.

    The draft is taken from ``$schema``; 2020-12 is assumed when absent.
    """
    if not isinstance(schema, (dict, bool)):
        raise SchemaCompileError(
            f'schema must be a JSON object or boolean, not {type(schema).__name__}'
        )
    cls = validator_for(schema, default=Draft202012Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        raise SchemaCompileError(f'invalid schema: {e.message}') from e
    return cls(schema)


def validate_value(value: Any, compiled: Validator) -> ValidationResult:
    """Validate *value* with *compiled*, collecting every error (not just the first)."""
    errors = [
        SchemaErrorDescriptor(
            path=tuple(err.absolute_path),
            keyword=str(err.validator),
            message=err.message,
        )
        for err in compiled.iter_errors(value)
    ]
    return ValidationResult(ok=not errors, errors=errors)


class SchemaValidator:
    """Owns the compiled envelope schema.

    The schema comes from, in order: the *schema* argument, the file at
    *schema_path*, or the schema bundled with the package.

    :meth:`compile` is thread-safe and idempotent.  :meth:`initialize` is the
    async entry point used by the server: concurrent first callers share a
    single in-flight compilation and later callers return immediately.
    """

    def __init__(self, schema: Any = None, schema_path: str | Path | None = None):
        self._schema = schema
        self._schema_path = Path(schema_path) if schema_path else None
        self._compiled: Validator | None = None
        self._lock = threading.Lock()
        self._pending: asyncio.Future | None = None
        self.compile_count = 0

    @property
    def initialized(self) -> bool:
        return self._compiled is not None

    @property
    def compiled(self) -> Validator:
        if self._compiled is None:
            raise ValidatorNotInitializedError(
                'Validator not initialized. Call initialize() or compile() first.'
            )
        return self._compiled

    def load_schema(self) -> Any:
        if self._schema is not None:
            return self._schema
        if self._schema_path is not None:
            try:
                return json.loads(self._schema_path.read_text(encoding='utf-8'))
            except (OSError, ValueError) as e:
                raise SchemaCompileError(
                    f'cannot load schema from {self._schema_path}: {e}'
                ) from e
        return load_bundled_schema()

    def compile(self) -> Validator:
        if self._compiled is not None:
            return self._compiled
        with self._lock:
            if self._compiled is None:
                compiled = compile_schema(self.load_schema())
                self.compile_count += 1
                self._compiled = compiled
                logger.debug('compiled envelope schema (%s)', self._schema_path or 'bundled')
        return self._compiled

    async def initialize(self) -> None:
        if self._compiled is not None:
            return
        loop = asyncio.get_running_loop()
        pending = self._pending
        if pending is None or pending.get_loop() is not loop:
            pending = loop.run_in_executor(None, self.compile)
            self._pending = pending
        try:
            await asyncio.shield(pending)
        finally:
            if pending.done() and self._pending is pending:
                self._pending = None

    def validate(self, value: Any) -> ValidationResult:
        return validate_value(value, self.compiled)

    def reset(self, schema: Any = None, schema_path: str | Path | None = None) -> None:
        """Drop the compiled schema; the next :meth:`compile` starts over."""
        with self._lock:
            self._compiled = None
            self._pending = None
            if schema is not None or schema_path is not None:
                self._schema = schema
                self._schema_path = Path(schema_path) if schema_path else None


async def initialize_validator(validator: SchemaValidator) -> SchemaValidator:
    await validator.initialize()
    return validator
