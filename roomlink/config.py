import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv


# Load .env once at import time (support running from any cwd)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


@dataclass(frozen=True)
class Settings:
    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    # Directory of the browser front-end; only mounted when it exists
    STATIC_DIR: str = os.getenv("STATIC_DIR", str(BASE_DIR / "public"))

    # STUN/TURN
    STUN_URL: str | None = os.getenv("STUN_URL")
    TURN_URL: str | None = os.getenv("TURN_URL")
    TURN_USERNAME: str | None = os.getenv("TURN_USERNAME")
    TURN_PASSWORD: str | None = os.getenv("TURN_PASSWORD")

    # Client defaults
    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")
    ICE_CONFIG_URL: str | None = os.getenv("ICE_CONFIG_URL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

# Convenient module-level alias
settings = get_settings()
