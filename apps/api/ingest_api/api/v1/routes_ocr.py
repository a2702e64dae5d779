"""Proxy OCR service: upload, danh sách job, metadata, chọn collection, tải kết quả (stream)."""
from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ingest_api.core.deps import get_job_board, get_ocr_client
from ingest_api.core.logging import get_logger
from ingest_api.schemas.ocr import CollectionChoice, MetadataBody
from ingest_api.services.ingest_service import save_collection
from ingest_core.clients.ocr import OcrClient
from ingest_core.domain.models import Job
from ingest_core.jobs import JobBoard

logger = get_logger("ingest_api.api.ocr")

router = APIRouter(prefix="/ocr", tags=["ocr"])


@router.post("/upload")
async def upload(
    file: UploadFile | None = File(default=None),
    collection: str = Form(default="default"),
    language: str = Form(default="vie"),
    ocr: OcrClient = Depends(get_ocr_client),
    board: JobBoard = Depends(get_job_board),
):
    if file is None:
        raise HTTPException(400, "No file provided")
    data = await file.read()
    if not data:
        raise HTTPException(400, "No file provided")
    job = await ocr.submit(
        file.filename or "upload.pdf",
        data,
        content_type=file.content_type,
        collection=collection,
        language=language,
    )
    if job.get("job_id"):
        board.upsert(Job(job_id=str(job["job_id"]), filename=job.get("filename") or file.filename or ""))
    return job


@router.get("/jobs")
async def list_jobs(
    status: str | None = None,
    include_metadata: bool = False,
    ocr: OcrClient = Depends(get_ocr_client),
):
    jobs = await ocr.list_jobs(status=status, include_metadata=include_metadata)
    return {"jobs": [j.model_dump(mode="json") for j in jobs]}


@router.get("/jobs/live")
async def live_jobs(board: JobBoard = Depends(get_job_board)):
    """Snapshot từ bộ theo dõi nền, không gọi OCR service."""
    jobs = board.jobs
    return {
        "jobs": [j.model_dump(mode="json") for j in jobs],
        "active": board.has_active(),
        "completed": len(board.completed()),
    }


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: str,
    ocr: OcrClient = Depends(get_ocr_client),
    board: JobBoard = Depends(get_job_board),
):
    """Hủy/xóa job; lần xóa thứ hai trả 404 "job not found"."""
    await ocr.delete_job(job_id)
    board.remove(job_id)
    return {"ok": True}


@router.get("/jobs/{job_id}/metadata")
async def get_metadata(job_id: str, ocr: OcrClient = Depends(get_ocr_client)):
    fields = await ocr.get_metadata(job_id)
    return {"job_id": job_id, "metadata": [f.model_dump() for f in fields]}


@router.put("/jobs/{job_id}/metadata")
async def put_metadata(job_id: str, body: MetadataBody, ocr: OcrClient = Depends(get_ocr_client)):
    await ocr.put_metadata(job_id, body.metadata)
    logger.info("[OCR] Đã lưu metadata: job_id=%s, số field=%s", job_id, len(body.metadata))
    return {"job_id": job_id, "updated": True}


@router.patch("/jobs/{job_id}/collection")
async def choose_collection(job_id: str, body: CollectionChoice, ocr: OcrClient = Depends(get_ocr_client)):
    await save_collection(
        ocr,
        job_id,
        body.collection_id,
        body.collection_name,
        body.community_name,
        update_department=body.update_department,
    )
    return {"job_id": job_id, "updated": True}


def _zip_response(upstream, filename: str) -> StreamingResponse:
    # Relay từng chunk, đóng kết nối upstream khi client đọc xong
    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        background=BackgroundTask(upstream.aclose),
    )


# /download/batch phải đăng ký trước /download/{job_id}
@router.get("/download/batch")
async def download_batch(
    ids: list[str] | None = Query(default=None),
    ocr: OcrClient = Depends(get_ocr_client),
):
    if not ids:
        raise HTTPException(400, "No job IDs provided")
    upstream = await ocr.open_batch_download(ids)
    return _zip_response(upstream, f"batch_{date.today().isoformat()}.zip")


@router.get("/download/{job_id}")
async def download(job_id: str, ocr: OcrClient = Depends(get_ocr_client)):
    upstream = await ocr.open_download(job_id)
    return _zip_response(upstream, f"{job_id}.zip")
