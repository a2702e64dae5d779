from typing import List, Literal, Optional

from pydantic import Field

from ingest_core.domain.models import CamelModel, Collection, Document, MetadataField


class SuggestCollectionRequest(CamelModel):
    metadata: List[MetadataField] = Field(default_factory=list)
    collections: List[Collection] = Field(default_factory=list)


class SuggestBatchRequest(CamelModel):
    documents: List[Document] = Field(default_factory=list)
    collections: List[Collection] = Field(default_factory=list)


class IngestSuggestRequest(CamelModel):
    job_ids: List[str] = Field(default_factory=list)
    engine: Literal["heuristic", "llm"] = "heuristic"
    dspace_url: Optional[str] = None


class IngestPushRequest(CamelModel):
    job_ids: List[str] = Field(default_factory=list)
    dspace_url: Optional[str] = None
