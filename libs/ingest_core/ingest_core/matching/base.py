from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ingest_core.domain.models import Collection, Document, Suggestion


class CollectionSuggester(ABC):
    """Gợi ý collection cho nhiều tài liệu; heuristic và LLM dùng chung contract này."""

    name: str = "base"

    @abstractmethod
    async def suggest(
        self,
        documents: Sequence[Document],
        collections: Sequence[Collection],
    ) -> list[Suggestion]:
        """Trả về tối đa một Suggestion cho mỗi tài liệu (có thể thiếu)."""
