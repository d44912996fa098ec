import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from clipflow.app import AppContext, build_app_context
from clipflow.exceptions import ProviderConfigValidationError, SessionNotFoundError
from clipflow.orchestration.status import Failed
from clipflow.providers.base import ClipData, ProviderKind
from clipflow.utils.duration import suggest_clip_count, validation_message
from clipflow.utils.reference_images import MAX_REFERENCE_IMAGES, ReferenceImage

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class ProviderState(BaseModel):
    active: ProviderKind
    grok_configured: bool
    config_source: Optional[str] = None
    endpoint: Optional[str] = None
    explicit_opt_in: bool


class SelectProviderRequest(BaseModel):
    provider: ProviderKind


class ProviderConfigRequest(BaseModel):
    endpoint: str
    api_key: str


class GenerationRequest(BaseModel):
    prompt: str
    clip_count: int = Field(ge=1)
    per_clip_duration: int
    reference_images: List[ReferenceImage] = Field(default_factory=list, max_length=MAX_REFERENCE_IMAGES)


class SegmentView(BaseModel):
    index: int
    prompt: str
    status: str
    reason: Optional[str] = None
    clip: Optional[ClipData] = None


class GenerationState(BaseModel):
    session_id: Optional[int] = None
    is_generating: bool
    error: Optional[str] = None
    progress: float
    label: str
    segments: List[SegmentView]


class SessionSummaryView(BaseModel):
    session_id: int
    owner: Optional[str] = None
    original_prompt: str
    created_at: float
    segment_count: int


def _ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def _provider_state(ctx: AppContext) -> ProviderState:
    config = ctx.config_store.load()
    return ProviderState(
        active=ctx.providers.active_kind,
        grok_configured=config is not None,
        config_source=ctx.config_store.config_source(),
        endpoint=config.endpoint if config else None,
        explicit_opt_in=ctx.reconciler.explicit_opt_in,
    )


def _generation_state(ctx: AppContext) -> GenerationState:
    state = ctx.orchestrator.state
    progress = ctx.progress.snapshot()
    segments = [
        SegmentView(
            index=seg.index,
            prompt=seg.prompt,
            status=seg.status.kind,
            reason=seg.status.reason if isinstance(seg.status, Failed) else None,
            clip=state.clips[seg.index] if seg.index < len(state.clips) else None,
        )
        for seg in state.segments
    ]
    return GenerationState(
        session_id=state.session_id,
        is_generating=state.is_generating,
        error=state.error,
        progress=round(progress.value, 2),
        label=progress.label,
        segments=segments,
    )


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "ctx", None) is None:
            app.state.ctx = build_app_context()
        app.state.ctx.progress.start()
        logger.info(f"clipflow API ready, active provider: {app.state.ctx.providers.active_kind.value}")
        try:
            yield
        finally:
            await app.state.ctx.progress.stop()

    app = FastAPI(title="clipflow API", version="0.1.0", lifespan=lifespan)
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return HealthResponse(status="healthy", timestamp=datetime.now().isoformat())

    @app.get("/provider")
    async def get_provider(request: Request) -> ProviderState:
        return _provider_state(_ctx(request))

    @app.put("/provider")
    async def select_provider(body: SelectProviderRequest, request: Request) -> ProviderState:
        ctx = _ctx(request)
        if not ctx.reconciler.select(body.provider):
            raise HTTPException(status_code=409, detail="Grok AI is not configured; configure it before selecting it.")
        return _provider_state(ctx)

    @app.put("/provider/config")
    async def save_provider_config(body: ProviderConfigRequest, request: Request) -> ProviderState:
        ctx = _ctx(request)
        try:
            ctx.config_store.save(body.endpoint, body.api_key)
        except ProviderConfigValidationError as e:
            raise HTTPException(status_code=422, detail={"kind": e.kind.value, "message": str(e), "detail": e.detail})
        return _provider_state(ctx)

    @app.delete("/provider/config")
    async def clear_provider_config(request: Request) -> ProviderState:
        ctx = _ctx(request)
        ctx.config_store.clear()
        return _provider_state(ctx)

    @app.post("/generation")
    async def start_generation(body: GenerationRequest, request: Request):
        ctx = _ctx(request)
        if not body.prompt.strip():
            raise HTTPException(status_code=422, detail="Please enter a video prompt")
        problem = validation_message(body.clip_count, body.per_clip_duration)
        if problem:
            raise HTTPException(
                status_code=422,
                detail={"message": problem, "suggested_clip_count": suggest_clip_count(body.per_clip_duration)},
            )

        result = await ctx.orchestrator.start_generation(
            body.prompt,
            body.clip_count,
            body.per_clip_duration,
            reference_images=body.reference_images,
            wait=False,
        )
        if not result.success:
            status = 409 if result.error_type in ("generation_in_progress", "configuration_error") else 502
            raise HTTPException(status_code=status, detail={"type": result.error_type, "message": result.error})
        return result

    @app.get("/generation")
    async def get_generation(request: Request) -> GenerationState:
        return _generation_state(_ctx(request))

    @app.post("/generation/segments/{index}/retry", status_code=202)
    async def retry_segment(index: int, request: Request):
        ctx = _ctx(request)
        state = ctx.orchestrator.state
        if state.session_id is None:
            raise HTTPException(status_code=404, detail="No active generation session")
        if not 0 <= index < len(state.segments):
            raise HTTPException(status_code=404, detail=f"Segment {index} does not exist")
        task = ctx.orchestrator.schedule_retry(index)
        return {"index": index, "scheduled": task is not None}

    @app.post("/generation/reset")
    async def reset_generation(request: Request) -> GenerationState:
        ctx = _ctx(request)
        ctx.orchestrator.reset()
        return _generation_state(ctx)

    @app.get("/sessions")
    async def list_sessions(owner: str, request: Request) -> List[SessionSummaryView]:
        rows = _ctx(request).session_store.get_user_sessions(owner)
        return [SessionSummaryView(**row.__dict__) for row in rows]

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: int, request: Request):
        try:
            session = _ctx(request).session_store.get_session(session_id)
        except SessionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {
            "session_id": session.session_id,
            "owner": session.owner,
            "original_prompt": session.original_prompt,
            "per_clip_duration": session.per_clip_duration,
            "created_at": session.created_at,
            "segments": [
                {
                    "index": s.index,
                    "prompt": s.prompt,
                    "status": s.status.kind,
                    "reason": s.status.reason if isinstance(s.status, Failed) else None,
                }
                for s in session.segments
            ],
        }

    return app


def main():
    import uvicorn
    uvicorn.run("clipflow.server:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
