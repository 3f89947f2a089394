# config.py
import os
from typing import Dict, List

from pydantic import BaseModel, Field

# ---------- DEFAULTS (overridable from the environment) ----------
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3001"))
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

MAX_CSV_UPLOAD_BYTES = int(os.environ.get("MAX_CSV_UPLOAD_BYTES", str(10 * 1024 * 1024)))
MAX_JSON_BODY_BYTES = int(os.environ.get("MAX_JSON_BODY_BYTES", str(50 * 1024 * 1024)))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_JSON = os.environ.get("LOG_JSON", "false").lower() in ("1", "true", "yes")

# user id -> display name; the only two people allowed to use the tracker
ALLOWED_USERS: Dict[str, str] = {
    "matt": "Matt",
    "eileen": "Eileen",
}


class Settings(BaseModel):
    host: str = HOST
    port: int = PORT
    cors_origins: List[str] = Field(
        default_factory=lambda: [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]
    )
    max_csv_upload_bytes: int = MAX_CSV_UPLOAD_BYTES
    max_json_body_bytes: int = MAX_JSON_BODY_BYTES
    log_level: str = LOG_LEVEL
    log_json: bool = LOG_JSON
    allowed_users: Dict[str, str] = Field(default_factory=lambda: dict(ALLOWED_USERS))


def get_settings() -> Settings:
    return Settings()
