import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from showclock.config import settings
from showclock.database import async_session, init_db
from showclock.engine.errors import EngineError, ParseError
from showclock.engine.scheduler_loop import SchedulerLoop
from showclock.ws.hub import WebSocketHub
from showclock.ws.notifier import Notifier

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    scheduler: SchedulerLoop = app.state.scheduler
    if settings.ENABLE_POLLING:
        await scheduler.start()
    yield
    await scheduler.stop()
    await app.state.hub.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Showclock", version="0.1.0", lifespan=lifespan)

    # The realtime handle is built once here and shared by every request.
    hub = WebSocketHub()
    notifier = Notifier(hub)
    app.state.hub = hub
    app.state.notifier = notifier
    app.state.session_factory = async_session
    app.state.scheduler = SchedulerLoop(
        async_session, notifier, interval=settings.POLL_INTERVAL_SECONDS
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(ParseError)
    async def parse_error_handler(request: Request, exc: ParseError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    # Routers
    from showclock.api.auth import router as auth_router
    from showclock.api.events import router as events_router
    from showclock.api.timers import router as timers_router
    from showclock.api.actions import router as actions_router

    app.include_router(auth_router)
    app.include_router(events_router)
    app.include_router(timers_router)
    app.include_router(actions_router)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "showclock"}

    @app.websocket("/ws/{event_id}")
    async def websocket_endpoint(websocket: WebSocket, event_id: str):
        from showclock.ws.hub import websocket_handler
        await websocket_handler(websocket, event_id)

    return app


app = create_app()


def run():
    import uvicorn
    uvicorn.run("showclock.main:app", host=settings.HOST, port=settings.PORT)
