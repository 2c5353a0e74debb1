import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from .config import Settings, get_settings
from .db.session import database_status
from .logging_config import configure_logging
from .profile_routes import router as profile_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="LearnSync Profile Server", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(profile_router)

settings_snapshot = get_settings()
logger.info("Profile server starting; database configured: %s", bool(settings_snapshot.database_url))
logger.info("API token required: %s", bool(settings_snapshot.server_api_token))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "mode": "profile-sync"}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        details = database_status()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", **details}
