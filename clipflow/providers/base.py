from enum import Enum
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, field_validator

from clipflow.utils.endpoint import is_media_url
from clipflow.utils.reference_images import ReferenceImage


class ProviderKind(str, Enum):
    GROK = "grok"
    DEMO = "demo"


class ClipData(BaseModel):
    """A generated clip. A ClipData always has a playable URL."""

    url: str
    thumbnail_url: Optional[str] = None
    duration: float
    prompt: str

    @field_validator("url")
    @classmethod
    def _url_is_media(cls, value: str) -> str:
        if not is_media_url(value):
            raise ValueError("Clip URL is missing or invalid")
        return value

    @field_validator("duration")
    @classmethod
    def _duration_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Clip duration is missing or invalid")
        return value


@runtime_checkable
class VideoProvider(Protocol):
    kind: ProviderKind

    def is_configured(self) -> bool:
        ...

    async def derive_segments(
        self,
        prompt: str,
        clip_count: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> List[str]:
        ...

    async def generate_clip(
        self,
        prompt: str,
        duration: int,
        index: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> ClipData:
        ...


def split_prompt_into_scenes(prompt: str, clip_count: int) -> List[str]:
    """
    Spread the words of a prompt evenly over clip_count scene prompts.

    Scenes that run out of words continue the story instead of repeating it.
    """
    if clip_count < 1:
        raise ValueError("clip_count must be at least 1")
    words = prompt.split()
    per_scene = -(-len(words) // clip_count) if words else 0
    scenes = []
    for i in range(clip_count):
        chunk = words[i * per_scene:(i + 1) * per_scene] if per_scene else []
        if chunk:
            scenes.append(f"Scene {i + 1}: {' '.join(chunk)}")
        else:
            scenes.append(f"Scene {i + 1}: Continuation of the story")
    return scenes
