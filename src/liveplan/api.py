"""
liveplan HTTP API: FastAPI surface over a viewing session.

This server provides:
- Opening a viewing session from the subscription and plan records
- Derived state, countdown and plan overview for the presentation layer
- Manual completion and player notification ingestion
- Recent log access for debugging
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import EngineConfig, get_config
from .errors import InvalidScheduleError
from .logs import recent_logs, setup_logging
from .metadata import fetch_duration
from .models import ContentUnit, Subscription, find_plan_subscription
from .player import PlayerChannel
from .progress_store import ProgressStore
from .session import PlanSession, validate_schedule
from .signals import CompletionSource
from .timers import TimerCoordinator

logger = logging.getLogger("liveplan.api")


# Pydantic Models
class OpenSessionRequest(BaseModel):
    subscriptions: List[dict] = Field(default_factory=list)
    units: List[dict]
    unit_id: Optional[str] = None


class SelectRequest(BaseModel):
    unit_id: str


class CompleteRequest(BaseModel):
    unit_id: Optional[str] = None
    source: CompletionSource = CompletionSource.MANUAL


class PlayerEventRequest(BaseModel):
    origin: str
    data: Any = None


class LogEntry(BaseModel):
    timestamp: str
    level: str
    logger: str
    message: str


class LogsResponse(BaseModel):
    logs: List[LogEntry]
    count: int


class Engine:
    """Process-wide engine objects; the session is replaced on every open."""

    def __init__(self, config: EngineConfig, scheduler, clock, duration_provider):
        self.config = config
        self.scheduler = scheduler
        self.clock = clock
        self.duration_provider = duration_provider
        self.store = ProgressStore(config.progress_path)
        self.timers = TimerCoordinator(scheduler)
        self.channel = PlayerChannel(config.trusted_origins)
        self.session: PlanSession | None = None

    def open(self, subscription: Subscription | None, units: list[ContentUnit]) -> PlanSession:
        if self.session is not None:
            self.session.teardown()
        self.session = PlanSession(
            self.config, subscription, units, self.store, self.timers, self.channel, clock=self.clock,
        )
        return self.session

    def close(self) -> None:
        if self.session is not None:
            self.session.teardown()
            self.session = None


def _content_unavailable(e: InvalidScheduleError) -> HTTPException:
    logger.warning("Invalid schedule: %s", e)
    return HTTPException(status_code=422, detail=f"content unavailable: {e}")


def create_app(
    config: EngineConfig | None = None,
    scheduler=None,
    clock: Callable[[], datetime] | None = None,
    duration_provider: Callable[[str], Optional[int]] | None = None,
) -> FastAPI:
    config = config or get_config()
    scheduler = scheduler or AsyncIOScheduler()
    if duration_provider is None:
        def duration_provider(media_ref: str) -> Optional[int]:
            return fetch_duration(media_ref, timeout=config.metadata_timeout_seconds)

    engine = Engine(config, scheduler, clock, duration_provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        scheduler.start()
        logger.info("Scheduler started (progress file: %s)", config.progress_path)
        yield
        engine.close()
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    app = FastAPI(
        title="liveplan",
        description="Time-gated unlock and live-simulation playback engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    def current_session() -> PlanSession:
        if engine.session is None:
            raise HTTPException(status_code=409, detail="No viewing session open")
        return engine.session

    async def resolve_duration(session: PlanSession, unit_id: str) -> None:
        if not session.needs_duration(unit_id):
            return
        media_ref = session.units[unit_id].media_ref
        seconds = await asyncio.to_thread(engine.duration_provider, media_ref)
        session.set_duration(unit_id, seconds)

    async def select_unit(session: PlanSession, unit_id: str) -> None:
        if unit_id not in session.units:
            raise HTTPException(status_code=404, detail=f"Unknown content unit: {unit_id}")
        await resolve_duration(session, unit_id)
        try:
            session.select(unit_id)
        except InvalidScheduleError as e:
            raise _content_unavailable(e)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "progress_degraded": engine.store.degraded,
        }

    @app.get("/api/logs/recent", response_model=LogsResponse)
    async def get_recent_logs(limit: int = 50):
        """Recent server logs from the circular buffer (max 100)."""
        logs = recent_logs(limit)
        return {"logs": logs, "count": len(logs)}

    @app.post("/api/session")
    async def open_session(request: OpenSessionRequest):
        """Open a viewing session for the plan subscription and its units.

        The whole schedule is validated before the current session is torn
        down, so a rejected request leaves it running.
        """
        try:
            subscriptions = [Subscription.from_dict(s) for s in request.subscriptions]
            units = [ContentUnit.from_dict(u) for u in request.units]
        except InvalidScheduleError as e:
            raise _content_unavailable(e)

        subscription = find_plan_subscription(
            subscriptions, config.plan_types, require_active=config.require_active_plan
        )
        if subscription is None:
            logger.info("No %s subscription; every unit stays locked", "/".join(config.plan_types))
        try:
            validate_schedule(subscription, units, config)
        except InvalidScheduleError as e:
            raise _content_unavailable(e)

        if request.unit_id is not None and request.unit_id not in {u.id for u in units}:
            raise HTTPException(status_code=404, detail=f"Unknown content unit: {request.unit_id}")

        session = engine.open(subscription, units)
        first_id = request.unit_id or (next(iter(session.units)) if session.units else None)
        if first_id is not None:
            await select_unit(session, first_id)

        try:
            plan = session.plan_overview()
        except InvalidScheduleError as e:
            raise _content_unavailable(e)
        return {
            "subscription": subscription.to_dict() if subscription else None,
            "plan": plan,
            "current": session.snapshot() if session.active_unit else None,
        }

    @app.delete("/api/session")
    async def close_session():
        """Tear down the viewing session, cancelling all timers."""
        engine.close()
        return {"closed": True}

    @app.post("/api/session/select")
    async def select(request: SelectRequest):
        session = current_session()
        await select_unit(session, request.unit_id)
        return session.snapshot()

    @app.get("/api/session/state")
    async def get_state():
        session = current_session()
        if session.active_unit is None:
            raise HTTPException(status_code=409, detail="No content unit selected")
        return session.snapshot()

    @app.get("/api/session/countdown")
    async def get_countdown():
        session = current_session()
        if session.active_unit is None:
            raise HTTPException(status_code=409, detail="No content unit selected")
        left = session.remaining_until_unlock()
        return {
            "unitId": session.active_unit.id,
            "remaining": left.to_dict() if left else None,
            "label": left.label() if left else None,
            "unlocked": left.is_zero if left else False,
        }

    @app.post("/api/session/complete")
    async def complete(request: CompleteRequest):
        """Skip/finish affordance; also usable for out-of-band completion signals."""
        session = current_session()
        unit_id = request.unit_id or (session.active_unit.id if session.active_unit else None)
        if unit_id is None:
            raise HTTPException(status_code=409, detail="No content unit selected")
        if unit_id not in session.units:
            raise HTTPException(status_code=404, detail=f"Unknown content unit: {unit_id}")
        wrote = session.mark_completed(request.source, unit_id=unit_id)
        return {
            "unitId": unit_id,
            "completed": True,
            "changed": wrote,
            "state": session.derive_state(unit_id=unit_id).value,
        }

    @app.get("/api/plan")
    async def get_plan():
        session = current_session()
        try:
            return {"plan": session.plan_overview()}
        except InvalidScheduleError as e:
            raise _content_unavailable(e)

    @app.post("/api/player/events")
    async def player_event(request: PlayerEventRequest):
        """Cross-frame player message relayed by the page."""
        event = engine.channel.dispatch(request.origin, request.data)
        return {"accepted": event is not None, "state": event.state if event else None}

    @app.get("/api/progress")
    async def get_progress():
        return {
            "degraded": engine.store.degraded,
            "progress": {uid: rec.to_json() for uid, rec in engine.store.all().items()},
        }

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {"name": "liveplan", "version": app.version, "docs": "/docs"}

    return app


if __name__ == "__main__":
    import uvicorn

    cfg = get_config()
    uvicorn.run(create_app(cfg), host=cfg.server_host, port=cfg.server_port)
