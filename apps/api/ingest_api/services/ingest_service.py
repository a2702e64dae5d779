"""Luồng nghiệp vụ nhiều bước: chọn/gợi ý collection cho job OCR và đẩy lô job lên DSpace."""
from __future__ import annotations

import asyncio

from ingest_api.core.logging import get_logger
from ingest_core.clients.dspace import DSpaceClient, DSpaceSession
from ingest_core.clients.ocr import OcrClient
from ingest_core.domain.metadata import first_value, set_department
from ingest_core.domain.models import Collection, Document, Job, Mapping, PushState, PushSummary
from ingest_core.errors import IngestError, NotFoundError, ValidationError
from ingest_core.matching.associate import associate_suggestions
from ingest_core.matching.base import CollectionSuggester
from ingest_core.pipeline.push import PushPipeline

logger = get_logger("ingest_api.services.ingest")


async def load_jobs(ocr: OcrClient, job_ids: list[str]) -> list[Job]:
    """Lấy job theo thứ tự job_ids; thiếu job nào thì báo 404."""
    if not job_ids:
        raise ValidationError("No job IDs provided")
    jobs = {j.job_id: j for j in await ocr.list_jobs()}
    missing = [i for i in job_ids if i not in jobs]
    if missing:
        raise NotFoundError(f"job not found: {', '.join(missing)}")
    return [jobs[i] for i in job_ids]


async def save_collection(
    ocr: OcrClient,
    job_id: str,
    collection_id: str,
    collection_name: str | None,
    community_name: str | None,
    update_department: bool = True,
    job: Job | None = None,
) -> None:
    if job is None:
        (job,) = await load_jobs(ocr, [job_id])
    if job.dspace_status == PushState.UPLOADED:
        raise ValidationError(f'"{job.filename or job_id}" is already uploaded to DSpace')
    tracking = dict(
        dspace_collection_id=collection_id,
        dspace_collection_name=collection_name,
        dspace_community_name=community_name or "",
        dspace_status=PushState.READY,
    )
    # Item đã tạo thuộc collection cũ: đổi collection thì lần push sau phải tạo item mới
    if (job.dspace_item_id or job.dspace_handle) and job.dspace_collection_id != collection_id:
        logger.warning(
            "[INGEST] Job %s đổi collection %s -> %s, bỏ item cũ %s (%s) trên DSpace",
            job_id, job.dspace_collection_id, collection_id, job.dspace_item_id, job.dspace_handle,
        )
        tracking.update(dspace_item_id=None, dspace_handle=None)
    await ocr.update_dspace_tracking(job_id, **tracking)
    logger.info("[INGEST] Đã lưu collection: job_id=%s, collection=%s (%s)", job_id, collection_name, community_name)
    if not update_department or not collection_name:
        return
    # dc.department đi theo collection đã chọn; lỗi ở bước này không hủy lựa chọn collection
    try:
        fields = await ocr.get_metadata(job_id)
        await ocr.put_metadata(job_id, set_department(fields, collection_name))
    except IngestError as e:
        logger.warning("[INGEST] Không cập nhật được dc.department cho job %s: %s", job_id, e.message)


async def build_documents(ocr: OcrClient, jobs: list[Job]) -> list[Document]:
    documents = []
    for job in jobs:
        try:
            metadata = await ocr.get_metadata(job.job_id)
        except IngestError as e:
            logger.warning("[INGEST] Bỏ qua job %s: không lấy được metadata (%s)", job.job_id, e.message)
            continue
        documents.append(Document(
            job_id=job.job_id,
            folder_name=job.folder_name,
            title=first_value(metadata, "dc.title") or job.filename,
            metadata=metadata,
        ))
    return documents


async def suggest_for_jobs(
    ocr: OcrClient,
    suggester: CollectionSuggester,
    collections: list[Collection],
    job_ids: list[str],
) -> dict:
    jobs = await load_jobs(ocr, job_ids)
    skipped = [j.job_id for j in jobs if j.dspace_status == PushState.UPLOADED]
    if skipped:
        logger.info("[INGEST] Bỏ qua %s job đã upload: %s", len(skipped), skipped)
    by_id = {j.job_id: j for j in jobs if j.job_id not in skipped}
    if not by_id:
        raise ValidationError("All selected jobs are already uploaded")
    documents = await build_documents(ocr, list(by_id.values()))
    if not documents:
        raise NotFoundError("No metadata found")
    logger.info("[INGEST] Gợi ý collection (%s) cho %s tài liệu", suggester.name, len(documents))
    suggestions = await suggester.suggest(documents, collections)
    mappings = associate_suggestions(documents, suggestions, collections)

    async def _save(m: Mapping) -> None:
        await save_collection(
            ocr, m.job_id, m.collection_id, m.collection_name, m.community_name, job=by_id.get(m.job_id),
        )

    ready = [m for m in mappings if m.status == "ready" and m.job_id]
    outcomes = await asyncio.gather(*(_save(m) for m in ready), return_exceptions=True)
    failed = 0
    for m, outcome in zip(ready, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            failed += 1
            m.status = "error"
            logger.warning("[INGEST] Không lưu được collection cho job %s: %s", m.job_id, outcome)
    saved = len(ready) - failed
    return {
        "success": True,
        "engine": suggester.name,
        "count": len(mappings),
        "saved": saved,
        "failed": len(mappings) - saved,
        "skipped": skipped,
        "mappings": [m.to_wire() for m in mappings],
    }


async def push_jobs(
    ocr: OcrClient,
    dspace: DSpaceClient,
    session: DSpaceSession,
    job_ids: list[str],
) -> PushSummary:
    session.require_cookie()
    jobs = await load_jobs(ocr, job_ids)
    return await PushPipeline(dspace, ocr).push_many(jobs, session)
