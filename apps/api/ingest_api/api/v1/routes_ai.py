"""Gợi ý collection bằng Claude: một tài liệu hoặc cả lô trong một lần gọi."""
from fastapi import APIRouter, Depends, HTTPException

from ingest_api.core.deps import get_claude_client
from ingest_api.core.logging import get_logger
from ingest_api.schemas.ai import SuggestBatchRequest, SuggestCollectionRequest
from ingest_core.clients.llm import ClaudeClient
from ingest_core.matching.llm import LlmSuggester

logger = get_logger("ingest_api.api.ai")

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/suggest-collection")
async def suggest_collection(
    body: SuggestCollectionRequest,
    claude: ClaudeClient = Depends(get_claude_client),
):
    if not body.metadata or not body.collections:
        raise HTTPException(400, "Missing required fields")
    suggestion = await LlmSuggester(claude).suggest_one(body.metadata, body.collections)
    return {"success": True, "suggestion": suggestion}


@router.post("/suggest-collection-batch")
async def suggest_collection_batch(
    body: SuggestBatchRequest,
    claude: ClaudeClient = Depends(get_claude_client),
):
    if not body.documents:
        raise HTTPException(400, "Missing required fields or invalid format")
    suggestions = await LlmSuggester(claude).suggest(body.documents, body.collections)
    logger.info("[AI] Đã phân tích %s tài liệu", len(body.documents))
    return {
        "success": True,
        "count": len(suggestions),
        "suggestions": [s.to_wire() for s in suggestions],
    }
