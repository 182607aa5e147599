"""
Local control API for a tracking session
Exposes the session state and lets a front end drive the tracker
"""

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from pydantic import BaseModel, Field
from typing import Callable, List, Optional, Tuple
import logging

from . import __version__
from .auth_client import AuthClient
from .config import settings
from .models import LocationSample, Notice, NoticeLevel, SentRecord, TrackerSnapshot, isoformat, utc_now
from .tracker import SessionTracker

logger = logging.getLogger(__name__)


class SessionView(BaseModel):
    session: TrackerSnapshot
    duration: str


class IntervalUpdate(BaseModel):
    seconds: int = Field(..., gt=0)


class HealthStatus(BaseModel):
    """Service health status"""
    status: str
    timestamp: str
    components: dict


def get_tracker(request: Request) -> SessionTracker:
    return request.app.state.tracker


def session_view(tracker: SessionTracker) -> SessionView:
    return SessionView(session=tracker.snapshot(), duration=tracker.session_duration())


def last_error(tracker: SessionTracker, default: str) -> str:
    for notice in reversed(tracker.notices):
        if notice.level != NoticeLevel.INFO:
            return notice.message
    return default


def create_app(tracker_factory: Callable[[], SessionTracker]) -> FastAPI:
    """Build the app; the tracker is created on startup and disposed on shutdown"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting control API...")
        app.state.tracker = tracker_factory()
        yield
        logger.info("Shutting down control API...")
        await app.state.tracker.dispose()

    app = FastAPI(
        title="Driver Tracker",
        description="Control API for the driver GPS tracking session",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_model=dict)
    async def root():
        return {
            "service": settings.SERVICE_NAME,
            "version": __version__,
            "status": "running"
        }

    @app.get("/health", response_model=HealthStatus)
    async def health_check(tracker: SessionTracker = Depends(get_tracker)):
        components = {
            "connection": tracker.connection.state.value,
            "tracking": "active" if tracker.is_tracking else "idle",
            "permission": tracker.permission.value,
        }
        status = "healthy" if tracker.is_connected else "degraded"
        return HealthStatus(status=status, timestamp=isoformat(utc_now()), components=components)

    @app.get("/session", response_model=SessionView)
    async def get_session(tracker: SessionTracker = Depends(get_tracker)):
        return session_view(tracker)

    @app.get("/history", response_model=List[SentRecord])
    async def get_history(limit: Optional[int] = Query(None, gt=0),
                          tracker: SessionTracker = Depends(get_tracker)):
        return tracker.history.records(limit)

    @app.delete("/history", response_model=SessionView)
    async def clear_history(confirm: bool = False, tracker: SessionTracker = Depends(get_tracker)):
        if not tracker.clear_history(confirmed=confirm):
            raise HTTPException(status_code=400, detail="Clearing the history requires confirm=true")
        return session_view(tracker)

    @app.get("/route", response_model=List[Tuple[float, float]])
    async def get_route(limit: int = Query(20, gt=0), tracker: SessionTracker = Depends(get_tracker)):
        return tracker.route_coordinates(limit)

    @app.get("/notices", response_model=List[Notice])
    async def get_notices(tracker: SessionTracker = Depends(get_tracker)):
        return list(tracker.notices)

    @app.post("/permissions", response_model=SessionView)
    async def request_permissions(tracker: SessionTracker = Depends(get_tracker)):
        await tracker.request_permissions()
        return session_view(tracker)

    @app.post("/location/refresh", response_model=LocationSample)
    async def refresh_location(tracker: SessionTracker = Depends(get_tracker)):
        sample = await tracker.refresh_location()
        if sample is None:
            raise HTTPException(status_code=409, detail=last_error(tracker, "Location unavailable"))
        return sample

    @app.post("/connect", response_model=SessionView)
    async def connect(tracker: SessionTracker = Depends(get_tracker)):
        await tracker.connect()
        if not tracker.is_connected:
            raise HTTPException(status_code=502, detail=tracker.connection_status)
        return session_view(tracker)

    @app.post("/disconnect", response_model=SessionView)
    async def disconnect(tracker: SessionTracker = Depends(get_tracker)):
        await tracker.disconnect()
        return session_view(tracker)

    @app.post("/logout", response_model=SessionView)
    async def logout(tracker: SessionTracker = Depends(get_tracker)):
        await tracker.disconnect()
        AuthClient(tracker.token_store, token_key=tracker.token_key).logout()
        return session_view(tracker)

    @app.post("/tracking/start", response_model=SessionView)
    async def start_tracking(tracker: SessionTracker = Depends(get_tracker)):
        if not await tracker.start():
            raise HTTPException(status_code=409, detail=last_error(tracker, "Tracking could not start"))
        return session_view(tracker)

    @app.post("/tracking/stop", response_model=SessionView)
    async def stop_tracking(tracker: SessionTracker = Depends(get_tracker)):
        tracker.stop()
        return session_view(tracker)

    @app.put("/tracking/interval", response_model=SessionView)
    async def set_interval(update: IntervalUpdate, tracker: SessionTracker = Depends(get_tracker)):
        tracker.set_interval(update.seconds)
        return session_view(tracker)

    @app.post("/locations/manual", response_model=SentRecord)
    async def send_manual(tracker: SessionTracker = Depends(get_tracker)):
        record = await tracker.send_manual()
        if record is None:
            raise HTTPException(status_code=409, detail=last_error(tracker, "Location was not sent"))
        return record

    @app.post("/locations/test", response_model=LocationSample)
    async def send_test_location(tracker: SessionTracker = Depends(get_tracker)):
        return await tracker.send_test_location()

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app
