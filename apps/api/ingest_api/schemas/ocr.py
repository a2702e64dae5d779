from typing import List, Optional

from ingest_core.domain.models import CamelModel, MetadataField


class MetadataBody(CamelModel):
    metadata: List[MetadataField]


class CollectionChoice(CamelModel):
    """Collection người dùng chọn (hoặc chấp nhận từ gợi ý) cho một job."""
    collection_id: str
    collection_name: Optional[str] = None
    community_name: Optional[str] = None
    update_department: bool = True
