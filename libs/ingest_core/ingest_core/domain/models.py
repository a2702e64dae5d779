from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Nhận cả snake_case lẫn camelCase (trình duyệt gửi camelCase)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class PushState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"


class MetadataField(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    key: str
    value: str = ""
    language: Optional[str] = None


class Job(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    job_id: str
    filename: str = ""
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[List[MetadataField]] = None
    # Trường theo dõi DSpace, lưu phía OCR service để UI còn đúng sau khi reload
    dspace_collection_id: Optional[str] = None
    dspace_collection_name: Optional[str] = None
    dspace_community_name: Optional[str] = None
    dspace_status: Optional[PushState] = None
    dspace_item_id: Optional[str] = None
    dspace_handle: Optional[str] = None
    dspace_error: Optional[str] = None

    @property
    def folder_name(self) -> str:
        name = self.filename or self.job_id
        return name[:-4] if name.lower().endswith(".pdf") else name


class JobDelta(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    job_id: str
    status: Optional[JobStatus] = None
    progress: Optional[int] = None
    error: Optional[str] = None


class Collection(CamelModel):
    id: str
    uuid: Optional[str] = None
    name: str = ""
    handle: Optional[str] = None
    description: str = ""
    type: Optional[str] = None
    community_id: Optional[str] = None
    community_name: Optional[str] = None
    community_handle: Optional[str] = None
    display_name: Optional[str] = None
    full_context: Optional[str] = None
    subjects: List[Any] = Field(default_factory=list)
    archived_items_count: int = 0


class Document(CamelModel):
    """Một tài liệu gửi cho bộ gợi ý collection."""
    job_id: Optional[str] = None
    folder_name: str = ""
    title: str = ""
    metadata: List[MetadataField] = Field(default_factory=list)


class Suggestion(CamelModel):
    document_index: Optional[int] = None
    job_id: Optional[str] = None
    folder_name: Optional[str] = None
    collection_id: Optional[str] = None
    collection_name: Optional[str] = None
    community_name: Optional[str] = None
    confidence: float = 0
    reasoning: str = ""


class Mapping(CamelModel):
    job_id: Optional[str] = None
    folder_name: str = ""
    title: str = ""
    collection_id: Optional[str] = None
    collection_name: Optional[str] = None
    community_name: Optional[str] = None
    confidence: float = 0
    reasoning: str = ""
    status: str = "ready"
    metadata: List[MetadataField] = Field(default_factory=list)


class PushResult(CamelModel):
    job_id: str
    filename: str = ""
    state: PushState = PushState.PENDING
    item_id: Optional[str] = None
    handle: Optional[str] = None
    bitstream: Optional[dict] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == PushState.UPLOADED


class PushSummary(CamelModel):
    results: List[PushResult] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    def to_wire(self) -> dict:
        body = super().to_wire()
        body["succeeded"] = self.succeeded
        body["failed"] = self.failed
        return body
