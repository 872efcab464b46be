"""
robostream Service
==================

FastAPI entry point hosting one streaming role.

Modes (settings.mode):
    streamer     - capture from a camera (or test pattern) and send frames
    viewer       - receive and render one stream
    multi-viewer - follow active-streams broadcasts and view every stream

The HTTP surface is also the settings surface: it is the one writer of
the shared SettingsStore that the producer pipeline reads.

Endpoints:
    GET   /                          - Service information
    GET   /health                    - Liveness probe
    GET   /ready                     - Readiness (session registered?)
    GET   /ping                      - Latency probe target
    GET   /metrics                   - Session, pipeline and probe metrics
    GET   /settings                  - Current capture settings + errors
    PATCH /settings                  - Merge capture setting overrides
    POST  /settings/preset/{name}    - Apply low / medium / high preset
    GET   /streams                   - Streams this service is handling
    GET   /streams/{id}/snapshot     - Last drawn frame as JPEG
    POST  /streamer/retry            - Retry media acquisition
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from robostream.config import Settings, settings
from robostream.models.capture import PRESETS
from robostream.models.session import ConnectionState
from robostream.stream import (
    CameraSource,
    LatencyProbe,
    MediaAcquisitionError,
    MediaSource,
    MemoryRenderer,
    MultiViewer,
    SettingsStore,
    Streamer,
    TestPatternSource,
    Viewer,
)


logger = logging.getLogger(__name__)


Runtime = Union[Streamer, Viewer, MultiViewer]


# =============================================================================
# Global State
# =============================================================================

_settings_store: Optional[SettingsStore] = None
_renderer: Optional[MemoryRenderer] = None
_runtime: Optional[Runtime] = None
_probe: Optional[LatencyProbe] = None
_probe_task: Optional[asyncio.Task] = None
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_settings_store() -> Optional[SettingsStore]:
    return _settings_store

def get_runtime() -> Optional[Runtime]:
    return _runtime

def get_renderer() -> Optional[MemoryRenderer]:
    return _renderer


# =============================================================================
# Factories
# =============================================================================

def create_media_source(config: Settings) -> MediaSource:
    """Create the media source selected by config."""
    if config.capture.source == "test-pattern":
        logger.info("Using TestPatternSource")
        return TestPatternSource()
    
    logger.info(f"Using CameraSource (index={config.capture.camera_index})")
    return CameraSource(
        config.capture.camera_index,
        width=config.capture.width,
        height=config.capture.height,
    )


async def create_runtime(
    config: Settings,
    settings_store: SettingsStore,
    renderer: MemoryRenderer,
) -> Runtime:
    """Build and start the runtime for the configured mode."""
    session_kwargs = config.session_kwargs()
    
    if config.mode == "streamer":
        streamer = Streamer(
            config.relay.url,
            config.stream_id,
            source=create_media_source(config),
            settings_store=settings_store,
            **session_kwargs,
        )
        try:
            await streamer.start()
        except MediaAcquisitionError as e:
            # Surfaced through /metrics and /settings; retried via /streamer/retry
            logger.error(f"Streaming unavailable: {e.user_message}")
        return streamer
    
    if config.mode == "viewer":
        viewer = Viewer(
            config.relay.url,
            config.stream_id,
            renderer=renderer,
            refresh_hz=config.display.refresh_hz,
            **session_kwargs,
        )
        viewer.start()
        return viewer
    
    multi = MultiViewer(
        config.relay.url,
        renderer=renderer,
        refresh_hz=config.display.refresh_hz,
        stall_timeout=config.display.stall_timeout_seconds,
        **session_kwargs,
    )
    multi.start()
    return multi


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _settings_store, _renderer, _runtime
    global _probe, _probe_task, _startup_time
    
    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(f"Mode: {settings.mode}, relay: {settings.relay.url}")
    
    _settings_store = SettingsStore(settings.capture.to_capture_settings())
    _renderer = MemoryRenderer()
    _runtime = await create_runtime(settings, _settings_store, _renderer)
    
    if settings.probe.enabled:
        _probe = LatencyProbe(
            settings.probe.url,
            interval=settings.probe.interval_seconds,
            timeout=settings.probe.timeout_seconds,
        )
        _probe_task = _probe.start()
    
    yield
    
    # Shutdown
    logger.info("Shutting down gracefully...")
    
    if _probe is not None:
        await _probe.stop()
    if _probe_task is not None:
        try:
            await asyncio.wait_for(_probe_task, timeout=5.0)
        except asyncio.TimeoutError:
            _probe_task.cancel()
            try:
                await _probe_task
            except asyncio.CancelledError:
                pass
        _probe_task = None
    _probe = None
    
    if _runtime is not None:
        await _runtime.close()
        _runtime = None
    
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="robostream",
    description="Live camera frame streaming over a WebSocket relay",
    version=settings.service.version,
    lifespan=lifespan,
)


class SettingsUpdate(BaseModel):
    """Body of PATCH /settings. Omitted fields keep their value."""
    
    model_config = ConfigDict(extra="forbid")
    
    resolution: Optional[str] = Field(default=None, description="WIDTHxHEIGHT")
    frame_rate: Optional[int] = None
    quality: Optional[float] = None


def _settings_payload(store: SettingsStore) -> dict:
    current = store.settings
    return {
        "resolution": str(current.resolution),
        "frame_rate": current.frame_rate,
        "quality": current.quality,
        "revision": store.revision,
        "errors": store.errors,
        "presets": sorted(PRESETS),
    }


def _not_started() -> JSONResponse:
    return JSONResponse({"error": "Service not started"}, status_code=503)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "mode": settings.mode,
        "stream_id": settings.stream_id,
        "relay": settings.relay.url,
        "status": "running",
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe.
    
    Ready when the session is registered with the relay and, for a
    streamer, the producer pipeline is running.
    """
    runtime = get_runtime()
    if runtime is None:
        return _not_started()
    
    registered = runtime.state is ConnectionState.REGISTERED
    streaming = runtime.streaming if isinstance(runtime, Streamer) else True
    body = {
        "status": "ready" if registered and streaming else "not_ready",
        "state": runtime.state.value,
        "streaming": streaming,
    }
    return JSONResponse(body, status_code=200 if registered and streaming else 503)


@app.get("/ping")
async def ping() -> JSONResponse:
    """Latency probe target."""
    return JSONResponse({"pong": True})


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    runtime = get_runtime()
    if runtime is None:
        return _not_started()
    
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "mode": settings.mode,
        "runtime": runtime.to_dict(),
        "network": _probe.to_dict() if _probe is not None else None,
    })


@app.get("/settings")
async def get_settings() -> JSONResponse:
    store = get_settings_store()
    if store is None:
        return _not_started()
    return JSONResponse(_settings_payload(store))


@app.patch("/settings")
async def patch_settings(update: SettingsUpdate) -> JSONResponse:
    """Merge overrides into the shared capture settings."""
    store = get_settings_store()
    if store is None:
        return _not_started()
    
    try:
        store.update_settings(**update.model_dump(exclude_none=True))
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=422)
    return JSONResponse(_settings_payload(store))


@app.post("/settings/preset/{name}")
async def apply_preset(name: str) -> JSONResponse:
    store = get_settings_store()
    if store is None:
        return _not_started()
    
    try:
        store.apply_preset(name)
    except KeyError:
        return JSONResponse({"error": f"Unknown preset: {name}"}, status_code=404)
    return JSONResponse(_settings_payload(store))


@app.get("/streams")
async def streams() -> JSONResponse:
    """Streams handled by this service with their metrics."""
    runtime = get_runtime()
    if runtime is None:
        return _not_started()
    
    if isinstance(runtime, MultiViewer):
        return JSONResponse({
            "streams": list(runtime.registry.snapshot),
            "metrics": {
                stream_id: snapshot.model_dump()
                for stream_id, snapshot in runtime.registry.metrics_snapshot().items()
            },
            "stalled": runtime.registry.stalled_streams(settings.display.stall_timeout_seconds),
        })
    if isinstance(runtime, Viewer):
        return JSONResponse({
            "streams": [runtime.stream_id],
            "metrics": {runtime.stream_id: runtime.metrics.model_dump()},
            "stalled": [],
        })
    return JSONResponse({"streams": [], "metrics": {}, "stalled": []})


@app.get("/streams/{stream_id}/snapshot")
async def stream_snapshot(stream_id: str) -> Response:
    """Last drawn frame of a stream, re-encoded as JPEG."""
    renderer = get_renderer()
    if renderer is None:
        return _not_started()
    
    jpeg = await asyncio.to_thread(renderer.snapshot_jpeg, stream_id)
    if jpeg is None:
        return JSONResponse({"error": f"No frame for stream {stream_id}"}, status_code=404)
    return Response(content=jpeg, media_type="image/jpeg")


@app.post("/streamer/retry")
async def streamer_retry() -> JSONResponse:
    """Explicit retry after a media acquisition failure."""
    runtime = get_runtime()
    if runtime is None:
        return _not_started()
    if not isinstance(runtime, Streamer):
        return JSONResponse({"error": "Not running in streamer mode"}, status_code=409)
    
    try:
        await runtime.retry()
    except MediaAcquisitionError as e:
        return JSONResponse(
            {"error": e.user_message, "kind": e.kind.value},
            status_code=503,
        )
    return JSONResponse({"status": "streaming", "stream_id": runtime.stream_id})


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "robostream.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
