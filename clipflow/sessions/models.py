from dataclasses import dataclass, field
from typing import List, Optional

from clipflow.orchestration.status import QUEUED, Status


@dataclass(frozen=True)
class Segment:
    index: int
    prompt: str
    status: Status = QUEUED


@dataclass(frozen=True)
class Session:
    session_id: int
    original_prompt: str
    segment_prompts: List[str]
    per_clip_duration: int
    created_at: float
    owner: Optional[str] = None
    segments: List[Segment] = field(default_factory=list)


@dataclass(frozen=True)
class SessionSummary:
    session_id: int
    original_prompt: str
    created_at: float
    segment_count: int
    owner: Optional[str] = None
