"""
Segment status state machine.

    Queued --start--> Generating --succeed--> Completed
                          |
                          +--fail(reason)--> Failed --retry--> Generating

Every other (status, event) pair raises InvalidTransitionError.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from clipflow.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Queued:
    kind = "queued"


@dataclass(frozen=True)
class Generating:
    kind = "generating"


@dataclass(frozen=True)
class Completed:
    kind = "completed"


@dataclass(frozen=True)
class Failed:
    reason: str
    kind = "failed"


Status = Union[Queued, Generating, Completed, Failed]

QUEUED = Queued()
GENERATING = Generating()
COMPLETED = Completed()


@dataclass(frozen=True)
class Start:
    name = "start"


@dataclass(frozen=True)
class Succeed:
    name = "succeed"


@dataclass(frozen=True)
class Fail:
    reason: str
    name = "fail"


@dataclass(frozen=True)
class Retry:
    name = "retry"


Event = Union[Start, Succeed, Fail, Retry]


def transition(current: Status, event: Event) -> Status:
    if isinstance(current, Queued) and isinstance(event, Start):
        return GENERATING
    if isinstance(current, Generating) and isinstance(event, Succeed):
        return COMPLETED
    if isinstance(current, Generating) and isinstance(event, Fail):
        return Failed(event.reason)
    if isinstance(current, Failed) and isinstance(event, Retry):
        return GENERATING
    raise InvalidTransitionError(current.kind, event.name)


def is_terminal(status: Status) -> bool:
    return isinstance(status, (Completed, Failed))


def status_to_record(status: Status) -> Dict[str, Any]:
    return {"kind": status.kind, "reason": status.reason if isinstance(status, Failed) else None}


def status_from_record(kind: str, reason: Optional[str] = None) -> Status:
    if kind == "queued":
        return QUEUED
    if kind == "generating":
        return GENERATING
    if kind == "completed":
        return COMPLETED
    if kind == "failed":
        return Failed(reason or "Generation failed")
    raise ValueError(f"Unknown segment status: {kind!r}")
