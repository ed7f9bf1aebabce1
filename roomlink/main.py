from fastapi import Depends, FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware
from roomlink.routers import signaling
from roomlink.config import Settings, get_settings, settings
from roomlink.schemas import HealthStatus, IceConfig, IceServer
from roomlink.services.rooms import RoomRouter
import logging
import os

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Public fallback when no STUN/TURN server is configured
DEFAULT_STUN_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
]

app = FastAPI(title="roomlink signaling server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(signaling.router)


def build_ice_servers(cfg: Settings) -> list[IceServer]:
    ice_servers = []
    if cfg.STUN_URL:
        ice_servers.append(IceServer(urls=[cfg.STUN_URL]))
    if cfg.TURN_URL and cfg.TURN_USERNAME and cfg.TURN_PASSWORD:
        ice_servers.append(IceServer(
            urls=[cfg.TURN_URL],
            username=cfg.TURN_USERNAME,
            credential=cfg.TURN_PASSWORD,
        ))
    if not ice_servers:
        ice_servers.extend(IceServer(urls=url) for url in DEFAULT_STUN_SERVERS)
    return ice_servers


@app.get("/ice.json", response_model=IceConfig, response_model_exclude_none=True)
async def ice_config(cfg: Settings = Depends(get_settings)):
    """Expose ICE server config to clients.

    Environment variables (optional):
    - STUN_URL: e.g. stun:stun.l.google.com:19302
    - TURN_URL: e.g. turn:turn.example.com:3478
    - TURN_USERNAME
    - TURN_PASSWORD
    """
    return IceConfig(iceServers=build_ice_servers(cfg))


@app.get("/health", response_model=HealthStatus)
async def health_check(rooms: RoomRouter = Depends(signaling.get_room_router)):
    return HealthStatus(
        status="healthy",
        message="Signaling server is running",
        rooms=len(rooms.rooms),
        clients=len(rooms.clients),
    )


if os.path.isdir(settings.STATIC_DIR):
    app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")

    @app.get("/")
    async def read_root():
        return FileResponse(os.path.join(settings.STATIC_DIR, "index.html"))
else:
    logger.info(f"Static directory {settings.STATIC_DIR} not found; serving signaling only")


def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
