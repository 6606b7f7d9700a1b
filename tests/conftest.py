"""Shared fixtures for the movalsp test suite."""
from __future__ import annotations

import json

import pytest

VALID_ENVELOPE = """\
{
  "envelope": "3.4.1",
  "metadata": {"id": "orders-sync", "version": "1.0.0"},
  "plan": {
    "steps": [
      {"verb": "set", "noun": "variable", "data": {"name": "limit", "value": 10}},
      {"verb": "emit_event", "noun": "event", "data": {"name": "started"}}
    ]
  }
}
"""


def envelope_text(steps, **extra) -> str:
    """Serialise an envelope around *steps* (indented, so keys land on separate lines)."""
    body = {'envelope': '3.4.1', 'metadata': {'id': 'test'}, 'plan': {'steps': steps}}
    body.update(extra)
    return json.dumps(body, indent=2)


@pytest.fixture
def validator():
    from movalsp.validator import SchemaValidator
    v = SchemaValidator()
    v.compile()
    return v


@pytest.fixture
def valid_text() -> str:
    return VALID_ENVELOPE
