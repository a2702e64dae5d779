"""Luồng phía server: gợi ý + lưu collection cho nhiều job, đẩy nhiều job lên DSpace."""
from fastapi import APIRouter, Depends, Request

from ingest_api.core.config import Settings
from ingest_api.core.deps import (
    build_session,
    get_claude_client,
    get_dspace_client,
    get_matching_rules,
    get_ocr_client,
    get_settings,
)
from ingest_api.core.logging import get_logger
from ingest_api.schemas.ai import IngestPushRequest, IngestSuggestRequest
from ingest_api.services.ingest_service import push_jobs, suggest_for_jobs
from ingest_core.clients.dspace import DSpaceClient
from ingest_core.clients.llm import ClaudeClient
from ingest_core.clients.ocr import OcrClient
from ingest_core.directory import list_collections_with_context
from ingest_core.matching.heuristic import HeuristicSuggester, MatchingRules
from ingest_core.matching.llm import LlmSuggester

logger = get_logger("ingest_api.api.ingest")

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("/suggest")
async def suggest(
    request: Request,
    body: IngestSuggestRequest,
    cfg: Settings = Depends(get_settings),
    ocr: OcrClient = Depends(get_ocr_client),
    dspace: DSpaceClient = Depends(get_dspace_client),
    claude: ClaudeClient = Depends(get_claude_client),
    rules: MatchingRules = Depends(get_matching_rules),
):
    session = build_session(request, body.dspace_url, cfg)
    collections = await list_collections_with_context(dspace, session)
    suggester = LlmSuggester(claude) if body.engine == "llm" else HeuristicSuggester(rules)
    return await suggest_for_jobs(ocr, suggester, collections, body.job_ids)


@router.post("/push")
async def push(
    request: Request,
    body: IngestPushRequest,
    cfg: Settings = Depends(get_settings),
    ocr: OcrClient = Depends(get_ocr_client),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    session = build_session(request, body.dspace_url, cfg)
    summary = await push_jobs(ocr, dspace, session, body.job_ids)
    return {"success": summary.failed == 0, **summary.to_wire()}
