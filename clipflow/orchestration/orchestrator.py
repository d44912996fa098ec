"""
Session-scoped generation pipeline.

A run derives one prompt per segment, creates the session record, then walks
the segments strictly in index order with at most one provider call in
flight from the run itself. retry_segment() re-enters the same per-segment
attempt for one index. Both paths claim the index through the InFlightGuard
before their first await, so they never work on the same segment at once.

reset() does not cancel anything. Every attempt remembers the run epoch it
started under and drops its result if reset() (or a new run) moved the epoch
on in the meantime.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from pydantic import BaseModel

from clipflow.exceptions import (
    ConfigurationError,
    ResponseShapeError,
    SegmentDerivationError,
    SessionCreateError,
    error_type,
)
from clipflow.orchestration.guard import InFlightGuard, SegmentToken
from clipflow.orchestration.status import (
    Completed,
    Event,
    Fail,
    Failed,
    Generating,
    Retry,
    Start,
    Status,
    Succeed,
    is_terminal,
    transition,
)
from clipflow.providers.base import ClipData, VideoProvider
from clipflow.providers.reconciler import ProviderContext
from clipflow.sessions.models import Segment
from clipflow.sessions.store import SessionStore
from clipflow.utils.endpoint import is_media_url
from clipflow.utils.logging_setup import log_context, setup_logger
from clipflow.utils.reference_images import MAX_REFERENCE_IMAGES, ReferenceImage, ReferenceImageError, reference_note

logger = setup_logger(__name__)


class GenerationResponse(BaseModel):
    success: bool
    session_id: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass(frozen=True)
class VideoSessionState:
    session_id: Optional[int] = None
    segments: List[Segment] = field(default_factory=list)
    clips: List[Optional[ClipData]] = field(default_factory=list)
    is_generating: bool = False
    error: Optional[str] = None
    in_flight: frozenset = frozenset()


def failure_reason(exc: BaseException, reference_images: Sequence[ReferenceImage], fallback: str) -> str:
    """Plain-English reason for a failed attempt, naming attached reference images."""
    message = str(exc).strip() or fallback
    if reference_images and "reference image" not in message.lower():
        message = f"{message} {reference_note(len(reference_images))}"
    return message


class GenerationOrchestrator:
    def __init__(
        self,
        session_store: SessionStore,
        provider_context: ProviderContext,
        owner: Optional[str] = None,
    ):
        self.session_store = session_store
        self.provider_context = provider_context
        self.owner = owner

        self._guard = InFlightGuard()
        self._epoch = 0
        self._session_id: Optional[int] = None
        self._segments: List[Segment] = []
        self._clips: List[Optional[ClipData]] = []
        self._per_clip_duration: Optional[int] = None
        self._is_generating = False
        self._error: Optional[str] = None
        self._reference_images: List[ReferenceImage] = []
        self._run_images: List[ReferenceImage] = []
        self._run_task: Optional[asyncio.Task] = None
        self._retry_tasks: set = set()

    # --- state ---
    @property
    def state(self) -> VideoSessionState:
        return VideoSessionState(
            session_id=self._session_id,
            segments=list(self._segments),
            clips=list(self._clips),
            is_generating=self._is_generating,
            error=self._error,
            in_flight=self._guard.in_flight(),
        )

    @property
    def segments(self) -> List[Segment]:
        return list(self._segments)

    @property
    def is_generating(self) -> bool:
        return self._is_generating

    @property
    def reference_images(self) -> List[ReferenceImage]:
        return list(self._reference_images)

    def set_reference_images(self, images: Sequence[ReferenceImage]) -> None:
        if len(images) > MAX_REFERENCE_IMAGES:
            raise ReferenceImageError(f"At most {MAX_REFERENCE_IMAGES} reference images can be attached.")
        self._reference_images = list(images)

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def _refresh_generating(self) -> None:
        self._is_generating = bool(self._segments) and not all(is_terminal(s.status) for s in self._segments)

    # --- run ---
    def _fatal(self, exc: Exception, epoch: int, images: Sequence[ReferenceImage]) -> GenerationResponse:
        message = str(exc)
        if images:
            message = f"{message} {reference_note(len(images))}"
        if self._is_current(epoch):
            self._is_generating = False
            self._error = message
        logger.error(f"Generation run failed: {message}")
        return GenerationResponse(success=False, error=message, error_type=error_type(exc))

    async def start_generation(
        self,
        prompt: str,
        segment_count: int,
        per_clip_duration: int,
        reference_images: Optional[Sequence[ReferenceImage]] = None,
        wait: bool = True,
    ) -> GenerationResponse:
        """
        Start a run for prompt split into segment_count clips.

        reference_images, when given, replace the attached images before the
        run starts; a rejected call leaves them alone. The run keeps the images
        it started with for all of its segments and their retries.

        With wait=True the call returns once every segment has been attempted.
        With wait=False it returns right after the session is created and the
        segment loop continues as a background task.
        """
        if self._is_generating:
            return GenerationResponse(
                success=False,
                error="A generation run is already in progress. Wait for it to finish or reset first.",
                error_type="generation_in_progress",
            )

        if reference_images is not None:
            self.set_reference_images(reference_images)
        images = list(self._reference_images)

        provider = self.provider_context.active_provider()
        self._epoch += 1
        epoch = self._epoch

        if not provider.is_configured():
            return self._fatal(
                ConfigurationError(
                    "Grok AI is not configured. Please configure Grok settings (runtime configuration "
                    "or environment variables) before generating videos."
                ),
                epoch,
                images,
            )

        self._error = None
        self._is_generating = True

        with log_context(provider=provider.kind.value):
            try:
                prompts = await provider.derive_segments(prompt, segment_count, images or None)
                if len(prompts) != segment_count:
                    raise SegmentDerivationError(
                        f"Expected {segment_count} segment prompts but got {len(prompts)}."
                    )
            except SegmentDerivationError as exc:
                return self._fatal(exc, epoch, images)
            except Exception as exc:
                return self._fatal(
                    SegmentDerivationError(f"Failed to split the prompt into clips: {exc}"), epoch, images
                )

            try:
                session_id = await asyncio.to_thread(
                    self.session_store.create_session, prompt, prompts, per_clip_duration, self.owner
                )
            except Exception as exc:
                return self._fatal(
                    SessionCreateError(f"Failed to create the video session: {exc}"), epoch, images
                )

            if not self._is_current(epoch):
                logger.info(f"Session {session_id} created after reset; discarding")
                return GenerationResponse(
                    success=False,
                    session_id=session_id,
                    error="Generation was reset before it started.",
                    error_type="generation_reset",
                )

            self._session_id = session_id
            self._per_clip_duration = per_clip_duration
            self._segments = [Segment(index=i, prompt=p) for i, p in enumerate(prompts)]
            self._clips = [None] * len(prompts)
            self._run_images = images
            self._is_generating = True
            logger.info(f"Session {session_id}: generating {len(prompts)} clips of {per_clip_duration}s")

        if wait:
            await self._run_segments(epoch, provider, images)
        else:
            self._run_task = asyncio.get_running_loop().create_task(self._run_segments(epoch, provider, images))
        return GenerationResponse(success=True, session_id=session_id)

    async def _run_segments(self, epoch: int, provider: VideoProvider, images: List[ReferenceImage]) -> None:
        for index in range(len(self._segments)):
            if not self._is_current(epoch):
                logger.info("Run superseded; stopping segment loop")
                return
            segment = self._segments[index]
            if index in self._guard or isinstance(segment.status, (Generating, Completed)):
                continue
            token = self._guard.acquire(index)
            if token is None:
                continue
            await self._attempt(token, epoch, provider, self._per_clip_duration, images, fallback="Generation failed")

        if self._is_current(epoch):
            self._refresh_generating()

    async def wait_for_run(self) -> None:
        """Await the background segment loop started with wait=False, if any."""
        if self._run_task is not None:
            await self._run_task

    # --- per segment ---
    def _apply(self, index: int, event: Event) -> Status:
        segment = self._segments[index]
        status = transition(segment.status, event)
        self._segments[index] = replace(segment, status=status)
        return status

    async def _mirror(self, session_id: int, index: int, status: Status) -> None:
        try:
            await asyncio.to_thread(self.session_store.update_segment_status, session_id, index, status)
        except Exception as exc:
            logger.warning(f"Could not mirror segment {index} status '{status.kind}' to the session store: {exc}")

    async def _attempt(
        self,
        token: SegmentToken,
        epoch: int,
        provider: VideoProvider,
        duration: Optional[int],
        images: List[ReferenceImage],
        fallback: str,
    ) -> None:
        index = token.index
        session_id = self._session_id

        with token, log_context(session_id=session_id, segment=index, provider=provider.kind.value):
            segment = self._segments[index]
            event = Retry() if isinstance(segment.status, Failed) else Start()
            status = self._apply(index, event)
            await self._mirror(session_id, index, status)
            if not self._is_current(epoch):
                return

            if duration is None:
                duration = await self._session_duration(session_id)
                if not self._is_current(epoch):
                    return

            try:
                clip = await provider.generate_clip(segment.prompt, duration, index, images or None)
                if clip is None or not is_media_url(clip.url):
                    raise ResponseShapeError("Provider returned a clip without a playable URL.")
            except Exception as exc:
                if not self._is_current(epoch):
                    logger.info(f"Discarding failure for segment {index} from a reset run: {exc}")
                    return
                reason = failure_reason(exc, images, fallback)
                logger.warning(f"Segment {index} failed: {reason}")
                status = self._apply(index, Fail(reason))
            else:
                if not self._is_current(epoch):
                    logger.info(f"Discarding clip for segment {index} from a reset run")
                    return
                self._clips[index] = clip
                status = self._apply(index, Succeed())
                logger.info(f"Segment {index} completed: {clip.url}")

            await self._mirror(session_id, index, status)

    async def _session_duration(self, session_id: int) -> int:
        try:
            session = await asyncio.to_thread(self.session_store.get_session, session_id)
            return session.per_clip_duration
        except Exception as exc:
            logger.warning(f"Falling back to the in-memory clip duration: {exc}")
            return self._per_clip_duration

    def _claim_retry(self, index: int) -> Optional[SegmentToken]:
        if self._session_id is None or not 0 <= index < len(self._segments):
            return None
        segment = self._segments[index]
        if isinstance(segment.status, (Generating, Completed)):
            logger.info(f"Retry of segment {index} ignored: segment is {segment.status.kind}")
            return None
        token = self._guard.acquire(index)
        if token is None:
            logger.info(f"Retry of segment {index} ignored: already in flight")
        return token

    async def _run_retry(self, token: SegmentToken, epoch: int, provider: VideoProvider) -> None:
        try:
            await self._attempt(token, epoch, provider, None, self._run_images, fallback="Retry failed")
        finally:
            token.release()
            if self._is_current(epoch):
                self._refresh_generating()

    async def retry_segment(self, index: int) -> bool:
        """
        Re-run generation for one segment.

        A no-op (returning False) when there is no session, the index is out
        of range, the segment already has an attempt in flight, or it is
        Generating/Completed.
        """
        token = self._claim_retry(index)
        if token is None:
            return False
        self._is_generating = True
        await self._run_retry(token, self._epoch, self.provider_context.active_provider())
        return True

    def schedule_retry(self, index: int) -> Optional[asyncio.Task]:
        """Fire-and-forget retry; the index is claimed before this returns."""
        token = self._claim_retry(index)
        if token is None:
            return None
        self._is_generating = True
        task = asyncio.get_running_loop().create_task(
            self._run_retry(token, self._epoch, self.provider_context.active_provider())
        )
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)
        return task

    def reset(self) -> None:
        self._epoch += 1
        self._guard.clear()
        self._session_id = None
        self._segments = []
        self._clips = []
        self._per_clip_duration = None
        self._is_generating = False
        self._error = None
        self._reference_images = []
        self._run_images = []
        self._run_task = None
        logger.info("Generation state reset")
