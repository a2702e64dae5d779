"""Ghép gợi ý về đúng tài liệu: theo jobId, rồi folderName, rồi documentIndex, cuối cùng mới theo vị trí."""
from __future__ import annotations

import logging
from typing import Sequence

from ingest_core.domain.models import Collection, Document, Mapping, Suggestion

logger = logging.getLogger(__name__)


def _find(doc: Document, idx: int, suggestions: Sequence[Suggestion], used: set[int]) -> int | None:
    free = [(i, s) for i, s in enumerate(suggestions) if i not in used]
    if doc.job_id:
        for i, s in free:
            if s.job_id == doc.job_id:
                return i
    if doc.folder_name:
        for i, s in free:
            if s.folder_name == doc.folder_name:
                return i
    for i, s in free:
        if s.document_index == idx and not s.job_id:
            return i
    if idx < len(suggestions) and idx not in used:
        s = suggestions[idx]
        # Chỉ dùng vị trí khi gợi ý không mang định danh nào
        if not s.job_id and not s.folder_name and s.document_index is None:
            return idx
    return None


def associate_suggestions(
    documents: Sequence[Document],
    suggestions: Sequence[Suggestion],
    collections: Sequence[Collection] = (),
) -> list[Mapping]:
    by_id = {c.id: c for c in collections}
    by_id.update({c.uuid: c for c in collections if c.uuid})
    used: set[int] = set()
    mappings: list[Mapping] = []
    for idx, doc in enumerate(documents):
        found = _find(doc, idx, suggestions, used)
        if found is None or not suggestions[found].collection_id:
            mappings.append(Mapping(
                job_id=doc.job_id,
                folder_name=doc.folder_name,
                title=doc.title,
                collection_name="No suggestion returned",
                reasoning="No suggestion was provided for this document",
                status="error",
                metadata=doc.metadata,
            ))
            continue
        used.add(found)
        s = suggestions[found]
        col = by_id.get(s.collection_id)
        mappings.append(Mapping(
            job_id=doc.job_id,
            folder_name=doc.folder_name,
            title=doc.title,
            collection_id=s.collection_id,
            collection_name=s.collection_name or (col.name if col else None),
            community_name=s.community_name or (col.community_name if col else None),
            confidence=s.confidence,
            reasoning=s.reasoning,
            status="ready",
            metadata=doc.metadata,
        ))
    if len(suggestions) != len(documents):
        logger.warning("[MATCH] Số gợi ý (%s) khác số tài liệu (%s)", len(suggestions), len(documents))
    return mappings
