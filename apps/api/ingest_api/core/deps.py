"""Dependency cho route: settings, httpx client dùng chung, client DSpace/OCR/Claude, session DSpace."""
import httpx
from fastapi import Depends, Request

from ingest_api.core.config import Settings, settings
from ingest_core.clients.dspace import DSpaceClient, DSpaceSession
from ingest_core.clients.llm import ClaudeClient
from ingest_core.clients.ocr import OcrClient
from ingest_core.errors import ValidationError
from ingest_core.jobs import JobBoard
from ingest_core.matching.heuristic import MatchingRules

SESSION_COOKIE = "JSESSIONID"


def get_settings() -> Settings:
    return settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """AsyncClient tạo trong lifespan (app.state.http)."""
    return request.app.state.http


def get_job_board(request: Request) -> JobBoard:
    """JobBoard do JobWatcher trong lifespan cập nhật."""
    return request.app.state.job_board


def get_dspace_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    cfg: Settings = Depends(get_settings),
) -> DSpaceClient:
    return DSpaceClient(http, page_size=cfg.collections_page_size)


def get_ocr_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    cfg: Settings = Depends(get_settings),
) -> OcrClient:
    return OcrClient(http, cfg.ocr_api_url)


def get_claude_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    cfg: Settings = Depends(get_settings),
) -> ClaudeClient:
    return ClaudeClient(http, cfg.claude_api_key, model=cfg.claude_model, api_url=cfg.claude_api_url)


def get_matching_rules(cfg: Settings = Depends(get_settings)) -> MatchingRules:
    return MatchingRules.load(cfg.matching_config)


def get_session_cookie(request: Request) -> str | None:
    """Cookie DSpace do trình duyệt gửi kèm: 'JSESSIONID=...' hoặc None."""
    value = request.cookies.get(SESSION_COOKIE)
    return f"{SESSION_COOKIE}={value}" if value else None


def resolve_dspace_url(dspace_url: str | None, cfg: Settings) -> str:
    url = (dspace_url or cfg.dspace_url or "").strip().rstrip("/")
    if not url:
        raise ValidationError("Missing dspaceUrl")
    return url


def build_session(request: Request, dspace_url: str | None, cfg: Settings) -> DSpaceSession:
    return DSpaceSession(base_url=resolve_dspace_url(dspace_url, cfg), cookie=get_session_cookie(request))
