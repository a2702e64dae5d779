"""
Gợi ý collection bằng LLM: một lần gọi cho cả lô tài liệu (không gọi theo từng tài liệu).

Prompt nhúng toàn bộ collection (kèm community) và metadata từng tài liệu, yêu cầu phân biệt
collection trùng tên theo community/khoa, trả JSON thuần. Kết quả được bóc code fence rồi parse.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Sequence

from ingest_core.clients.llm import ClaudeClient
from ingest_core.domain.models import Collection, Document, MetadataField, Suggestion
from ingest_core.errors import ParseError
from ingest_core.matching.base import CollectionSuggester

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 80
_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Bỏ ```json ... ``` bao quanh payload (nếu có)."""
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_payload(text: str) -> dict:
    try:
        value = json.loads(strip_code_fences(text))
    except ValueError as e:
        logger.error("[AI] Không parse được phản hồi AI: %s", (text or "")[:300])
        raise ParseError("Failed to parse AI response", raw=text) from e
    if not isinstance(value, dict):
        raise ParseError("AI response is not a JSON object", raw=text)
    return value


def _collection_block(idx: int, c: Collection) -> str:
    return (
        f"{idx}. ID: {c.id or c.uuid}\n"
        f"   Name: {c.name}\n"
        f"   Community: {c.community_name or 'N/A'}\n"
        f"   Full Context: {c.full_context or c.display_name or c.name}\n"
        f"   Description: {c.description or 'N/A'}\n"
        f"   Handle: {c.handle or 'N/A'}\n"
        f"   Items Count: {c.archived_items_count or 0}"
    )


def _metadata_lines(fields: Sequence[MetadataField]) -> str:
    return "\n".join(f"  {m.key}: {m.value}" for m in fields)


def build_batch_prompt(documents: Sequence[Document], collections: Sequence[Collection]) -> str:
    collections_str = "\n\n".join(_collection_block(i + 1, c) for i, c in enumerate(collections))
    documents_str = f"\n\n{SEPARATOR}\n\n".join(
        f"DOCUMENT {i + 1}:\n"
        f"Document Index: {i}\n"
        f"Job ID: {d.job_id or 'N/A'}\n"
        f"Folder: {d.folder_name}\n"
        f"Title: {d.title}\n"
        f"Metadata:\n{_metadata_lines(d.metadata)}"
        for i, d in enumerate(documents)
    )
    n = len(documents)
    return f"""You are a library cataloging expert. You need to analyze MULTIPLE documents and suggest the most appropriate DSpace collection for EACH document.

IMPORTANT: Collections with the SAME NAME may exist in DIFFERENT COMMUNITIES. Pay close attention to the "Community" and "Full Context" fields to distinguish them.

AVAILABLE COLLECTIONS:
{collections_str}

DOCUMENTS TO ANALYZE:
{SEPARATOR}
{documents_str}

TASK:
For EACH document (1 to {n}):
1. Analyze the document's metadata (title, author, subject, type, department, abstract, etc.)
2. Match it with the most appropriate collection
3. CRITICAL: Pay special attention to:
   - Document type (Khóa luận, Đồ án, Giáo trình, etc.)
   - Department/Faculty mentioned in metadata (CNTT, Du lịch, XD, Môi trường, etc.)
   - Community context of each collection
4. If multiple collections have the same name, choose based on community match
5. Provide confidence score (0-100)
6. Give brief reasoning (max 2 sentences)

EXAMPLE MATCHING LOGIC:
- If document mentions "Khoa CNTT" or "Công nghệ thông tin" -> Choose collection in "Khoa Công nghệ thông tin" community
- If document is "Khóa luận" type -> Choose "Khóa luận tốt nghiệp" collection in matching department community
- If document is "Giáo trình" in "Du lịch" field -> Choose "Giáo trình" in "Khoa Du lịch" community, NOT in "Khoa CNTT"

RESPOND ONLY WITH THIS JSON FORMAT (no markdown, no explanation):
{{
  "suggestions": [
    {{
      "documentIndex": 0,
      "jobId": "the Job ID of the document",
      "folderName": "folder_name_here",
      "collectionId": "the collection ID",
      "collectionName": "the collection name",
      "communityName": "the community name",
      "confidence": 85,
      "reasoning": "Brief explanation mentioning community match"
    }}
  ]
}}

CRITICAL: Return suggestions array with EXACTLY {n} items, one for each document.
Return ONLY valid JSON, no markdown blocks, no additional text."""


def build_single_prompt(metadata: Sequence[MetadataField], collections: Sequence[Collection]) -> str:
    metadata_str = "\n".join(f"{m.key}: {m.value}" for m in metadata)
    collections_str = "\n\n".join(_collection_block(i + 1, c) for i, c in enumerate(collections))
    return f"""You are a library cataloging expert. Analyze the following document metadata and suggest the most appropriate DSpace collection from the available options.

IMPORTANT: Collections with the SAME NAME may exist in DIFFERENT COMMUNITIES. Use the "Community" field and the document's department to choose between them.

DOCUMENT METADATA:
{metadata_str}

AVAILABLE COLLECTIONS:
{collections_str}

TASK:
1. Analyze the document's metadata (title, author, subject, type, department, abstract, etc.)
2. Match it with the most appropriate collection based on:
   - Document type (thesis, textbook, research paper, etc.)
   - Department / faculty and the collection's community
   - Subject area
   - Academic level
   - Language
3. Provide a confidence score (0-100)
4. Give a brief explanation (max 2 sentences)

RESPOND ONLY WITH THIS JSON FORMAT (no markdown, no explanation):
{{
  "collectionId": "the collection ID",
  "collectionName": "the collection name",
  "communityName": "the community name",
  "confidence": 85,
  "reasoning": "Brief explanation why this collection is appropriate",
  "alternativeIds": ["alternative1_id", "alternative2_id"]
}}

IMPORTANT: Return ONLY the JSON object, no markdown code blocks, no additional text."""


def parse_batch_response(text: str, expected: int) -> list[Suggestion]:
    result = parse_json_payload(text)
    raw_suggestions = result.get("suggestions")
    if not isinstance(raw_suggestions, list):
        raise ParseError("AI did not provide suggestions array", raw=json.dumps(result, ensure_ascii=False))
    if len(raw_suggestions) != expected:
        logger.warning("[AI] Mong đợi %s gợi ý, nhận được %s", expected, len(raw_suggestions))
    suggestions = []
    for item in raw_suggestions:
        if not isinstance(item, dict):
            logger.warning("[AI] Bỏ qua gợi ý không hợp lệ: %r", item)
            continue
        try:
            suggestions.append(Suggestion.model_validate(item))
        except ValueError as e:
            logger.warning("[AI] Bỏ qua gợi ý sai định dạng: %r (%s)", item, e)
    return suggestions


class LlmSuggester(CollectionSuggester):
    name = "llm"

    def __init__(self, client: ClaudeClient, max_tokens: int = 4096):
        self.client = client
        self.max_tokens = max_tokens

    async def suggest(
        self,
        documents: Sequence[Document],
        collections: Sequence[Collection],
    ) -> list[Suggestion]:
        if not documents:
            return []
        logger.info("[AI] Phân tích %s tài liệu với %s collections trong một lần gọi", len(documents), len(collections))
        text = await self.client.complete(build_batch_prompt(documents, collections), max_tokens=self.max_tokens)
        suggestions = parse_batch_response(text, len(documents))
        logger.info("[AI] ✅ Nhận %s gợi ý", len(suggestions))
        return suggestions

    async def suggest_one(self, metadata: Sequence[MetadataField], collections: Sequence[Collection]) -> dict:
        text = await self.client.complete(build_single_prompt(metadata, collections), max_tokens=1024)
        suggestion = parse_json_payload(text)
        if not suggestion.get("collectionId"):
            raise ParseError("AI did not provide collection ID", raw=json.dumps(suggestion, ensure_ascii=False))
        return suggestion
