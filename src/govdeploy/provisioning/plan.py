"""Provisioning plan: steps, their dependencies and plan validation.

A step's inputs may reference the output of an earlier step through
``Ref``. Together with explicit ``after`` ordering constraints these
references form a DAG. ``Plan`` rejects any plan whose edges point forward
or whose administrative renouncement is not the final step.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from govdeploy.core.errors import PlanReferenceError
from govdeploy.ledger.base import ADMIN_ROLE, StepKind
from govdeploy.provisioning.state import RunState, StepStatus

# Parameters each step kind accepts, no more and no less.
PARAM_SCHEMAS: Dict[StepKind, frozenset[str]] = {
    StepKind.CREATE: frozenset({"contract", "args"}),
    StepKind.MINT: frozenset({"treasury", "token", "amount"}),
    StepKind.TRANSFER: frozenset({"treasury", "token", "to", "amount"}),
    StepKind.GRANT_ROLE: frozenset({"target", "role", "account"}),
    StepKind.REVOKE_ROLE: frozenset({"target", "role", "account"}),
    StepKind.RENOUNCE_ROLE: frozenset({"target", "role", "account"}),
    StepKind.TRANSFER_OWNERSHIP: frozenset({"target", "new_owner"}),
}


@dataclass(frozen=True)
class Ref:
    """Reference to the output of another step."""

    step_id: str

    def to_dict(self) -> dict[str, str]:
        return {"$ref": self.step_id}


def iter_refs(value: Any) -> Iterator[Ref]:
    """Yield every ``Ref`` inside a (possibly nested) parameter value."""
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def resolve(value: Any, outputs: Mapping[str, Any]) -> Any:
    """Replace every ``Ref`` in ``value`` with the referenced step output."""
    if isinstance(value, Ref):
        if value.step_id not in outputs:
            raise PlanReferenceError(
                f"Reference to '{value.step_id}' cannot be resolved: step is not done",
                {"ref": value.step_id},
            )
        return outputs[value.step_id]
    if isinstance(value, Mapping):
        return {key: resolve(item, outputs) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve(item, outputs) for item in value]
    return value


def _jsonable(value: Any) -> Any:
    if isinstance(value, Ref):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class Step:
    """A single provisioning step."""

    id: str
    kind: StepKind
    params: Mapping[str, Any] = field(hash=False)
    after: tuple[str, ...] = ()
    description: str = ""

    @property
    def refs(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(ref.step_id for ref in iter_refs(self.params)))

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Data and ordering dependencies, deduplicated, in first-seen order."""
        return tuple(dict.fromkeys((*self.after, *self.refs)))

    @property
    def is_admin_renouncement(self) -> bool:
        return (
            self.kind in (StepKind.REVOKE_ROLE, StepKind.RENOUNCE_ROLE)
            and self.params.get("role") == ADMIN_ROLE
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "params": _jsonable(dict(self.params)),
            "after": list(self.after),
            "description": self.description,
        }


class Plan:
    """An ordered, validated collection of steps."""

    def __init__(self, steps: Sequence[Step]) -> None:
        self._steps: List[Step] = list(steps)
        self._index: Dict[str, int] = {}
        self._validate()

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._index

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    def get(self, step_id: str) -> Step:
        try:
            return self._steps[self._index[step_id]]
        except KeyError:
            raise PlanReferenceError(f"Unknown step '{step_id}'") from None

    def position(self, step_id: str) -> int:
        return self._index[step_id]

    def ready(self, state: RunState, exclude: frozenset[str] = frozenset()) -> List[Step]:
        """Steps not yet done whose dependencies are all done, in declared order.

        ``running`` and ``failed`` steps are included so a resumed run can
        reconcile and retry them; steps in ``exclude`` (in flight) are not.
        """
        return [
            step
            for step in self._steps
            if step.id not in exclude
            and state.status(step.id) != StepStatus.DONE
            and all(state.is_done(dep) for dep in step.dependencies)
        ]

    def closure(self, step_id: str) -> set[str]:
        """All steps ``step_id`` transitively depends on."""
        seen: set[str] = set()
        stack = list(self.get(step_id).dependencies)
        while stack:
            dep = stack.pop()
            if dep in seen:
                continue
            seen.add(dep)
            stack.extend(self.get(dep).dependencies)
        return seen

    def is_complete(self, state: RunState) -> bool:
        return all(state.is_done(step.id) for step in self._steps)

    def to_dict(self) -> dict[str, Any]:
        return {"steps": [step.to_dict() for step in self._steps]}

    def fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _validate(self) -> None:
        for position, step in enumerate(self._steps):
            if not step.id:
                raise PlanReferenceError(f"Step at position {position} has no id")
            if step.id in self._index:
                raise PlanReferenceError(f"Duplicate step id '{step.id}'")
            self._check_schema(step)
            for dep in step.dependencies:
                if dep == step.id:
                    raise PlanReferenceError(
                        f"Step '{step.id}' depends on itself", {"step_id": step.id}
                    )
                if dep not in self._index:
                    raise PlanReferenceError(
                        f"Step '{step.id}' depends on '{dep}', which is not declared before it",
                        {"step_id": step.id, "ref": dep},
                    )
            self._index[step.id] = position

        for step in self._steps:
            if step.is_admin_renouncement:
                self._check_renouncement_is_last(step)

    @staticmethod
    def _check_schema(step: Step) -> None:
        expected = PARAM_SCHEMAS[step.kind]
        given = frozenset(step.params)
        if given != expected:
            missing = sorted(expected - given)
            unknown = sorted(given - expected)
            raise PlanReferenceError(
                f"Step '{step.id}' ({step.kind.value}) has invalid parameters",
                {"step_id": step.id, "missing": missing, "unknown": unknown},
            )

    def _check_renouncement_is_last(self, step: Step) -> None:
        if self._index[step.id] != len(self._steps) - 1:
            raise PlanReferenceError(
                f"Admin renouncement '{step.id}' must be the last step",
                {"step_id": step.id},
            )
        predecessors = self.closure(step.id)
        unordered = [
            other.id
            for other in self._steps
            if other.id != step.id and other.id not in predecessors
        ]
        if unordered:
            raise PlanReferenceError(
                f"Admin renouncement '{step.id}' must depend on every other step",
                {"step_id": step.id, "unordered": unordered},
            )
