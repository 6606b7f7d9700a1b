"""
Plan step model shared by the semantic analyzer and the dry-run simulator.

``data`` payloads are loosely typed.  The verbs whose payload shape the
analyzer actually inspects get a ``TypedDict``; every other verb keeps an open
``dict[str, Any]``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, TypedDict, Union


class HttpFetchData(TypedDict, total=False):
    url: str
    endpoint: str
    method: str
    headers: dict[str, str]
    timeout: int


class TransformData(TypedDict, total=False):
    template: Any


StepData = Union[HttpFetchData, TransformData, dict[str, Any]]


def is_blank(value: Any) -> bool:
    """True for the values a step field counts as missing: absent, null, ``""``."""
    return value is None or value == ''


@dataclass
class Step:
    index: int
    verb: Any = None
    noun: Any = None
    data: Any = None
    raw: Any = None

    @classmethod
    def from_value(cls, index: int, raw: Any) -> Step:
        """Build a step from one decoded ``plan.steps`` element (any JSON value)."""
        if not isinstance(raw, Mapping):
            return cls(index=index, raw=raw)
        return cls(
            index=index,
            verb=raw.get('verb'),
            noun=raw.get('noun'),
            data=raw.get('data'),
            raw=raw,
        )

    @property
    def has_verb(self) -> bool:
        return not is_blank(self.verb)

    @property
    def has_noun(self) -> bool:
        return not is_blank(self.noun)

    @property
    def data_fields(self) -> dict[str, Any]:
        """``data`` when it is a JSON object, otherwise an empty mapping."""
        return self.data if isinstance(self.data, dict) else {}

    def label(self, field_name: str) -> str:
        """Display text for ``verb``/``noun``: ``'unknown'`` when missing, else the value as text."""
        value = getattr(self, field_name)
        if is_blank(value):
            return 'unknown'
        return value if isinstance(value, str) else json.dumps(value)


def plan_steps(envelope: Any) -> list[Any] | None:
    """Return ``envelope.plan.steps`` if it exists and is an array, else *None*."""
    if not isinstance(envelope, Mapping):
        return None
    plan = envelope.get('plan')
    if not isinstance(plan, Mapping):
        return None
    steps = plan.get('steps')
    return steps if isinstance(steps, list) else None
