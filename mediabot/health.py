import logging
import platform
from datetime import datetime, timezone

import psutil
from fastapi import FastAPI

from mediabot.config import ENVIRONMENT, VERSION

logger = logging.getLogger("mediabot.health")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mb(value: int) -> str:
    return f"{round(value / 1024 / 1024)} MB"


def create_app(manager, environment=ENVIRONMENT) -> FastAPI:
    app = FastAPI(title="mediabot", version=VERSION)

    @app.get("/")
    def root():
        return {
            "status": "healthy",
            "timestamp": _timestamp(),
            "uptime": manager.uptime(),
            "bot_status": manager.bot_status,
            "commands_loaded": list(manager.commands),
            "cookie_status": "set" if manager.tiktok_cookie else "not_set",
        }

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "telegram-bot", "timestamp": _timestamp()}

    @app.get("/status")
    def status():
        memory = psutil.Process().memory_info()
        return {
            "bot": {
                "status": manager.bot_status,
                "uptime_seconds": int(manager.uptime()),
                "active_users": len(manager.user_states),
                "commands_available": list(manager.commands),
            },
            "system": {
                "memory_usage": {"rss": _mb(memory.rss), "vms": _mb(memory.vms)},
                "python_version": platform.python_version(),
                "platform": platform.system().lower(),
            },
            "features": {
                "tiktok_cookie": "enabled" if manager.tiktok_cookie else "disabled",
                "health_server": "enabled",
            },
        }

    if environment != "production":
        @app.get("/debug/cookie")
        def debug_cookie():
            cookie = manager.tiktok_cookie
            return {
                "cookie_set": bool(cookie),
                "cookie_length": len(cookie) if cookie else 0,
                "cookie_preview": cookie[:50] + "..." if cookie else None,
            }

    return app
