"""
Dry-run plan simulator.

Replays ``plan.steps`` without performing any action: no network, disk or
process side effects.  Each step either records an error (missing verb or
noun) or produces a descriptive output object echoing its data and the
supplied variables.  Errors are accumulated; a bad step never stops the
remaining ones.

The clock is injectable so that tests get reproducible timestamps and
durations.
"""
from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from movalsp.document import parse_document
from movalsp.model import Step, plan_steps

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def monotonic(self) -> float: ...
    def now(self) -> datetime: ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class SimulatedStepResult:
    index: int
    verb: str
    noun: str
    status: str                        # success, error or skipped
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            'index': self.index,
            'verb': self.verb,
            'noun': self.noun,
            'status': self.status,
            'durationMillis': self.duration_ms,
        }
        if self.output is not None:
            out['output'] = self.output
        if self.error is not None:
            out['error'] = self.error
        return out


@dataclass
class SimulationReport:
    success: bool = True
    steps: list[SimulatedStepResult] = field(default_factory=list)
    total_duration_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.success = False
        self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            'success': self.success,
            'steps': [s.to_dict() for s in self.steps],
            'totalDurationMillis': self.total_duration_ms,
            'errors': list(self.errors),
        }


def _elapsed_ms(clock: Clock, start: float) -> float:
    return round((clock.monotonic() - start) * 1000.0, 3)


def simulate_step(step: Step, variables: Mapping[str, Any], clock: Clock) -> dict[str, Any]:
    """Descriptive output for one step; nothing is executed."""
    return {
        'verb': step.verb,
        'noun': step.noun,
        'executedAt': clock.now().isoformat(),
        'data': copy.deepcopy(step.data) if step.data is not None else {},
        'variables': copy.deepcopy(dict(variables)),
    }


def simulate(
    text: str,
    variables: Mapping[str, Any] | None = None,
    clock: Clock | None = None,
) -> SimulationReport:
    """Simulate the plan of the envelope in *text*.

    ``success`` is False when the envelope does not parse, has no
    ``plan.steps`` array, or any step fails.
    """
    clock = clock or SystemClock()
    variables = variables or {}
    started = clock.monotonic()
    report = SimulationReport()

    doc = parse_document('', text)
    if doc.error is not None:
        report.fail(f'Failed to parse envelope: {doc.error.message}')
        report.total_duration_ms = _elapsed_ms(clock, started)
        return report

    steps = plan_steps(doc.value)
    if steps is None:
        report.fail('No plan.steps found in envelope')
        report.total_duration_ms = _elapsed_ms(clock, started)
        return report

    for index, raw in enumerate(steps):
        step = Step.from_value(index, raw)
        step_start = clock.monotonic()
        if not step.has_verb or not step.has_noun:
            report.steps.append(SimulatedStepResult(
                index=index, verb=step.label('verb'), noun=step.label('noun'),
                status='error', error='Missing verb or noun',
                duration_ms=_elapsed_ms(clock, step_start),
            ))
            report.fail(f'Step {index}: Missing verb or noun')
            continue
        output = simulate_step(step, variables, clock)
        report.steps.append(SimulatedStepResult(
            index=index, verb=step.label('verb'), noun=step.label('noun'),
            status='success', output=output,
            duration_ms=_elapsed_ms(clock, step_start),
        ))

    report.total_duration_ms = _elapsed_ms(clock, started)
    logger.debug('simulated %d steps, success=%s', len(report.steps), report.success)
    return report


def validate_plan_structure(text: str) -> tuple[bool, list[str]]:
    """Pre-flight check run before a simulation or a real execution elsewhere."""
    doc = parse_document('', text)
    if doc.error is not None:
        return False, [f'Invalid JSON: {doc.error.message}']
    plan = doc.value.get('plan') if isinstance(doc.value, dict) else None
    if not isinstance(plan, dict):
        return False, ['Missing plan object']
    steps = plan.get('steps')
    if not isinstance(steps, list):
        return False, ['plan.steps must be an array']
    if not steps:
        return False, ['plan.steps is empty']

    errors: list[str] = []
    for index, raw in enumerate(steps):
        step = Step.from_value(index, raw)
        if not step.has_verb:
            errors.append(f'Step {index}: missing verb')
        if not step.has_noun:
            errors.append(f'Step {index}: missing noun')
    return not errors, errors
