"""Persisted run state.

A run state file records, per step id, how far that step got. It is
rewritten after every attempt so an interrupted run can resume from the
same frontier instead of starting over.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Dict

import structlog

from govdeploy.core.errors import ConfigurationError

logger = structlog.get_logger()

STATE_VERSION = 1


class StepStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class RunPhase(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    HALTED = "halted"


@dataclass
class StepRecord:
    status: StepStatus = StepStatus.PENDING
    output: Any = None
    last_error: str | None = None
    error_kind: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "output": self.output,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepRecord":
        return cls(
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            output=data.get("output"),
            last_error=data.get("last_error"),
            error_kind=data.get("error_kind"),
            attempts=int(data.get("attempts", 0)),
        )


@dataclass
class RunState:
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    plan_fingerprint: str | None = None
    phase: RunPhase = RunPhase.NOT_STARTED
    steps: Dict[str, StepRecord] = field(default_factory=dict)

    def record(self, step_id: str) -> StepRecord:
        """Return the record for a step, creating a pending one on first use."""
        if step_id not in self.steps:
            self.steps[step_id] = StepRecord()
        return self.steps[step_id]

    def status(self, step_id: str) -> StepStatus:
        record = self.steps.get(step_id)
        return record.status if record else StepStatus.PENDING

    def is_done(self, step_id: str) -> bool:
        return self.status(step_id) == StepStatus.DONE

    def output(self, step_id: str) -> Any:
        record = self.steps.get(step_id)
        return record.output if record else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "run_id": self.run_id,
            "plan_fingerprint": self.plan_fingerprint,
            "phase": self.phase.value,
            "steps": {step_id: rec.to_dict() for step_id, rec in self.steps.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunState":
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise ConfigurationError(f"Unsupported run state version {version}")
        return cls(
            run_id=data["run_id"],
            plan_fingerprint=data.get("plan_fingerprint"),
            phase=RunPhase(data.get("phase", RunPhase.NOT_STARTED.value)),
            steps={
                step_id: StepRecord.from_dict(rec)
                for step_id, rec in (data.get("steps") or {}).items()
            },
        )


def load_state(path: Path) -> RunState | None:
    """Read a run state file; ``None`` when there is nothing to resume."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Corrupt run state file {path}: {exc}") from exc
    return RunState.from_dict(data)


def save_state(state: RunState, path: Path) -> None:
    """Atomically rewrite the run state file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(state.to_dict(), indent=2, sort_keys=True) + "\n")
    os.replace(tmp_path, path)


class RunStateStore:
    """Single writer for a ``RunState``.

    Concurrent steps update their own records through ``update``; writes
    are serialized by a lock and flushed to disk before ``update`` returns.
    With ``path=None`` the state lives in memory only.
    """

    def __init__(self, state: RunState, path: Path | None = None) -> None:
        self.state = state
        self.path = path
        self._lock = asyncio.Lock()

    async def update(self, step_id: str, **changes: Any) -> StepRecord:
        async with self._lock:
            record = self.state.record(step_id)
            for name, value in changes.items():
                setattr(record, name, value)
            self._flush()
            return record

    async def begin_attempt(self, step_id: str) -> StepRecord:
        """Record a new attempt as ``running`` before the remote call is made."""
        async with self._lock:
            record = self.state.record(step_id)
            record.status = StepStatus.RUNNING
            record.attempts += 1
            self._flush()
            return record

    async def set_phase(self, phase: RunPhase) -> None:
        async with self._lock:
            self.state.phase = phase
            self._flush()

    def _flush(self) -> None:
        if self.path is not None:
            save_state(self.state, self.path)
