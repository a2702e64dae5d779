"""
Đẩy tài liệu đã OCR lên DSpace.

Mỗi tài liệu đi tuần tự qua các bước:
  1. Tạo item chỉ có metadata trong collection đã chọn (bỏ qua nếu job đã có dspace_item_id).
  2. Thiếu id nhưng có handle -> tra id theo handle.
  3. Tải zip kết quả OCR, lấy file .pdf đầu tiên không phải file metadata.
  4. Upload PDF làm bitstream của item.
  5. Ghi trạng thái (uploaded / upload_failed) về OCR service.
Nhiều tài liệu chạy song song, lỗi của tài liệu này không ảnh hưởng tài liệu khác.
"""
from __future__ import annotations

import asyncio
import io
import logging
import posixpath
import zipfile
import zlib
from typing import Iterable

from ingest_core.clients.dspace import DSpaceClient, DSpaceSession
from ingest_core.clients.ocr import OcrClient
from ingest_core.domain.models import Job, PushResult, PushState, PushSummary
from ingest_core.errors import IngestError, NotFoundError, ParseError, ValidationError

logger = logging.getLogger(__name__)

PUSHABLE_STATES = frozenset({None, PushState.PENDING, PushState.READY, PushState.UPLOAD_FAILED})


def can_push(job: Job) -> bool:
    return bool(job.dspace_collection_id) and job.dspace_status in PUSHABLE_STATES


def extract_primary_pdf(archive: bytes) -> tuple[str, bytes]:
    """Trả (tên entry, nội dung) của PDF chính trong zip kết quả OCR."""
    try:
        zf = zipfile.ZipFile(io.BytesIO(archive))
    except zipfile.BadZipFile as e:
        raise ParseError("OCR output is not a valid zip archive") from e
    with zf:
        for name in zf.namelist():
            if name.lower().endswith(".pdf") and "metadata" not in name.lower():
                try:
                    return name, zf.read(name)
                except (zipfile.BadZipFile, zlib.error, EOFError) as e:
                    raise ParseError(f"Corrupt entry {name} in OCR output: {e}") from e
    raise NotFoundError("PDF file not found in job output")


class PushPipeline:
    def __init__(self, dspace: DSpaceClient, ocr: OcrClient):
        self.dspace = dspace
        self.ocr = ocr

    async def _track(self, job_id: str, **fields) -> None:
        # Ghi trạng thái chỉ để UI hiển thị đúng; lỗi ở đây không làm hỏng lần push
        try:
            await self.ocr.update_dspace_tracking(job_id, **fields)
        except IngestError as e:
            logger.warning("[PUSH] Không ghi được trạng thái DSpace cho job %s: %s", job_id, e.message)

    async def _ensure_item(self, job: Job, session: DSpaceSession, result: PushResult) -> str:
        if result.item_id:
            logger.info("[PUSH] Job %s đã có item %s, bỏ qua bước tạo item", job.job_id, result.item_id)
            return result.item_id
        if not result.handle:
            metadata = await self.ocr.get_metadata(job.job_id)
            item = await self.dspace.create_item(session, job.dspace_collection_id, metadata)
            result.item_id = item["itemId"] or None
            result.handle = item["handle"] or None
            await self._track(job.job_id, dspace_item_id=result.item_id, dspace_handle=result.handle)
        if not result.item_id and result.handle:
            resolved = await self.dspace.get_item_by_handle(session, result.handle)
            result.item_id = resolved["id"] or None
            if result.item_id:
                await self._track(job.job_id, dspace_item_id=result.item_id)
        if not result.item_id:
            raise ParseError("Could not get DSpace item ID")
        return result.item_id

    async def push(self, job: Job, session: DSpaceSession) -> PushResult:
        if not job.dspace_collection_id:
            raise ValidationError(f'Select a collection for "{job.filename or job.job_id}" first')
        if job.dspace_status == PushState.UPLOADED:
            raise ValidationError(f'"{job.filename or job.job_id}" is already uploaded')

        result = PushResult(
            job_id=job.job_id,
            filename=job.filename,
            state=PushState.UPLOADING,
            item_id=job.dspace_item_id,
            handle=job.dspace_handle,
        )
        await self._track(job.job_id, dspace_status=PushState.UPLOADING, dspace_error=None)
        logger.info("[PUSH] Bắt đầu: job_id=%s, collection=%s", job.job_id, job.dspace_collection_id)
        try:
            item_id = await self._ensure_item(job, session, result)
            archive = await self.ocr.download_archive(job.job_id)
            entry, content = extract_primary_pdf(archive)
            result.bitstream = await self.dspace.upload_bitstream(
                session, item_id, posixpath.basename(entry), content,
            )
        except IngestError as e:
            result.state = PushState.UPLOAD_FAILED
            result.error = e.message
            logger.warning("[PUSH] ❌ Thất bại: job_id=%s, lỗi=%s", job.job_id, e.message)
            await self._track(job.job_id, dspace_status=PushState.UPLOAD_FAILED, dspace_error=e.message)
            return result
        except Exception as e:
            # Mọi lỗi đều kết thúc ở upload_failed để job có thể push lại
            logger.exception("[PUSH] ❌ Lỗi không mong đợi: job_id=%s, error=%r", job.job_id, e)
            result.state = PushState.UPLOAD_FAILED
            result.error = str(e) or type(e).__name__
            await self._track(job.job_id, dspace_status=PushState.UPLOAD_FAILED, dspace_error=result.error)
            return result

        result.state = PushState.UPLOADED
        await self._track(
            job.job_id,
            dspace_status=PushState.UPLOADED,
            dspace_item_id=result.item_id,
            dspace_handle=result.handle,
            dspace_error=None,
        )
        logger.info("[PUSH] ✅ Hoàn tất: job_id=%s, itemId=%s, handle=%s", job.job_id, result.item_id, result.handle)
        return result

    async def push_many(self, jobs: Iterable[Job], session: DSpaceSession) -> PushSummary:
        jobs = list(jobs)
        pushable = [j for j in jobs if can_push(j)]
        skipped = [j.job_id for j in jobs if not can_push(j)]
        if skipped:
            logger.info("[PUSH] Bỏ qua %s job chưa chọn collection hoặc đã upload: %s", len(skipped), skipped)

        outcomes = await asyncio.gather(
            *(self.push(j, session) for j in pushable),
            return_exceptions=True,
        )
        results: list[PushResult] = []
        for job, outcome in zip(pushable, outcomes):
            if isinstance(outcome, PushResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("[PUSH] Lỗi không mong đợi: job_id=%s", job.job_id, exc_info=outcome)
            message = outcome.message if isinstance(outcome, IngestError) else str(outcome)
            results.append(PushResult(
                job_id=job.job_id,
                filename=job.filename,
                state=PushState.UPLOAD_FAILED,
                item_id=job.dspace_item_id,
                handle=job.dspace_handle,
                error=message,
            ))
        summary = PushSummary(results=results, skipped=skipped)
        logger.info("[PUSH] Xong: %s uploaded, %s failed, %s skipped", summary.succeeded, summary.failed, len(skipped))
        return summary
