import json

import httpx
import pytest

from conftest import OCR_URL, make_zip, meta
from ingest_core.clients.ocr import OcrClient
from ingest_core.domain.models import JobStatus, MetadataField, PushState
from ingest_core.errors import NotFoundError, ParseError, UploadError, UpstreamUnavailable, ValidationError


@pytest.mark.asyncio
async def test_submit_posts_multipart(ocr, ocr_service):
    job = await ocr.submit("thesis.pdf", b"%PDF-1.4 fake", "application/pdf", language="eng")
    assert job["job_id"] == "job-1"
    assert job["status"] == "queued"
    request = ocr_service.requests[-1]
    assert request.url.path == "/api/v1/process"
    assert b'name="language"' in request.content and b"eng" in request.content


@pytest.mark.asyncio
async def test_submit_empty_file_never_calls_service(ocr, ocr_service):
    with pytest.raises(ValidationError):
        await ocr.submit("empty.pdf", b"")
    assert ocr_service.requests == []


@pytest.mark.asyncio
async def test_submit_rejected_by_service():
    transport = httpx.MockTransport(lambda r: httpx.Response(413, json={"detail": "File too large"}))
    client = OcrClient(httpx.AsyncClient(transport=transport), OCR_URL)
    with pytest.raises(UploadError) as exc:
        await client.submit("big.pdf", b"%PDF")
    assert exc.value.status_code == 413
    assert "File too large" in exc.value.detail


@pytest.mark.asyncio
async def test_list_jobs_flattens_nested_metadata(ocr, ocr_service):
    ocr_service.add_job("j1", status="processing", progress=40)
    ocr_service.jobs["j1"]["metadata"] = {"metadata": meta(dc_title="Giáo trình Kinh tế")}
    jobs = await ocr.list_jobs(include_metadata=True)
    assert jobs[0].status == JobStatus.PROCESSING
    assert jobs[0].metadata == [MetadataField(key="dc.title", value="Giáo trình Kinh tế")]
    assert ocr_service.requests[-1].url.params["include_metadata"] == "true"


@pytest.mark.asyncio
async def test_metadata_round_trip(ocr, ocr_service):
    ocr_service.add_job("j1", metadata=meta(dc_title="Old"))
    fields = [
        MetadataField(key="dc.title", value="Hệ thống quản lý"),
        MetadataField(key="dc.subject", value="thư viện"),
        MetadataField(key="dc.subject", value="quản lý", language="vi"),
    ]
    await ocr.put_metadata("j1", fields)
    assert await ocr.get_metadata("j1") == fields


@pytest.mark.asyncio
async def test_delete_twice_reports_not_found(ocr, ocr_service):
    ocr_service.add_job("j1")
    assert (await ocr.delete_job("j1"))["ok"] is True
    with pytest.raises(NotFoundError) as exc:
        await ocr.delete_job("j1")
    assert exc.value.message == "job not found"
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_update_tracking_filters_fields(ocr, ocr_service):
    ocr_service.add_job("j1")
    await ocr.update_dspace_tracking("j1", dspace_status=PushState.READY, dspace_collection_id="c1", status="failed")
    assert ocr_service.tracking["j1"] == [{"dspace_status": "ready", "dspace_collection_id": "c1"}]


@pytest.mark.asyncio
async def test_download_archive(ocr, ocr_service):
    archive = make_zip({"out/a.pdf": b"%PDF"})
    ocr_service.add_job("j1", archive=archive)
    assert await ocr.download_archive("j1") == archive


@pytest.mark.asyncio
async def test_open_download_missing_job(ocr):
    with pytest.raises(NotFoundError):
        await ocr.open_download("nope")


@pytest.mark.asyncio
async def test_open_batch_download_requires_ids(ocr):
    with pytest.raises(ValidationError):
        await ocr.open_batch_download([])


@pytest.mark.asyncio
async def test_stream_events_parses_deltas(ocr, ocr_service):
    events = [
        {"job_id": "j1", "status": "processing", "progress": 10},
        {"job_id": "j1", "progress": 55},
    ]
    body = ": keep-alive\n\n" + "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: not-json\n\n"
    ocr_service.stream_bodies.append(body)
    deltas = [d async for d in ocr.stream_events()]
    assert [(d.job_id, d.status, d.progress) for d in deltas] == [
        ("j1", JobStatus.PROCESSING, 10),
        ("j1", None, 55),
    ]


@pytest.mark.asyncio
async def test_list_jobs_skips_rows_with_unknown_status(ocr, ocr_service):
    ocr_service.add_job("j1", status="cancelling", progress=50)
    ocr_service.add_job("j2", status="completed")
    jobs = await ocr.list_jobs()
    assert [j.job_id for j in jobs] == ["j2"]


@pytest.mark.asyncio
async def test_invalid_metadata_is_a_parse_error(ocr, ocr_service):
    ocr_service.add_job("j1", metadata=[{"value": "thiếu key"}])
    with pytest.raises(ParseError):
        await ocr.get_metadata("j1")


class _ResetStream(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"PK\x03\x04"
        raise httpx.ReadError("connection reset by peer")


@pytest.mark.asyncio
async def test_download_archive_interrupted():
    transport = httpx.MockTransport(lambda r: httpx.Response(200, stream=_ResetStream()))
    client = OcrClient(httpx.AsyncClient(transport=transport), OCR_URL)
    with pytest.raises(UpstreamUnavailable) as exc:
        await client.download_archive("j1")
    assert exc.value.message == "Download interrupted"
