from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel
import os

# Khi chạy local từ apps/api, load infra/.env nếu có (để có DSPACE_URL, OCR_API_URL, CLAUDE_API_KEY)
# config.py -> core -> ingest_api -> api -> apps -> repo_root
_repo_root = Path(__file__).resolve().parent.parent.parent.parent.parent
_infra_env = _repo_root / "infra" / ".env"
if _infra_env.exists():
    load_dotenv(_infra_env)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _cors_origins() -> list[str]:
    """CORS_ORIGINS dạng 'http://a,http://b'; mặc định cho frontend chạy local."""
    raw = os.getenv("CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings(BaseModel):
    dspace_url: str = os.getenv("DSPACE_URL", "").strip().rstrip("/")
    ocr_api_url: str = os.getenv("OCR_API_URL", "http://localhost:8000").strip().rstrip("/")
    claude_api_key: str = os.getenv("CLAUDE_API_KEY", "")
    claude_model: str = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
    claude_api_url: str = os.getenv("CLAUDE_API_URL", "https://api.anthropic.com/v1/messages")
    jobs_watch_mode: str = os.getenv("JOBS_WATCH_MODE", "poll").strip().lower()
    http_timeout: float = _float_env("HTTP_TIMEOUT", 60.0)
    collections_page_size: int = int(_float_env("COLLECTIONS_PAGE_SIZE", 1000))
    jobs_poll_interval: float = _float_env("JOBS_POLL_INTERVAL", 5.0)
    jobs_stream_reconnect: float = _float_env("JOBS_STREAM_RECONNECT", 3.0)
    cors_origins: list[str] = _cors_origins()
    matching_config: str | None = os.getenv("INGEST_MATCHING_CONFIG", "").strip() or None
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_file: str | None = (
        os.getenv("LOG_FILE", "").strip()
        or str(_repo_root / "logs" / "ingest.log")
    )


settings = Settings()
