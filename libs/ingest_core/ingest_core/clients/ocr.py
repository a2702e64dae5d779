"""Client cho OCR service (FastAPI bên ngoài): upload, jobs, metadata, download, stream trạng thái."""
from __future__ import annotations

import hashlib
import io
import json
import logging
from typing import AsyncIterator, Iterable

import httpx
import pydantic
from pypdf import PdfReader

from ingest_core.domain.models import Job, JobDelta, MetadataField
from ingest_core.errors import (
    NotFoundError,
    ParseError,
    UploadError,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

ALLOWED_TRACKING_FIELDS = frozenset({
    "dspace_collection_id",
    "dspace_collection_name",
    "dspace_community_name",
    "dspace_status",
    "dspace_item_id",
    "dspace_handle",
    "dspace_error",
})


def _pdf_page_count(content: bytes) -> int | None:
    try:
        return len(PdfReader(io.BytesIO(content)).pages)
    except Exception as e:
        logger.debug("[OCR] Không đọc được số trang PDF: %s", e)
        return None


class OcrClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str):
        self.http = http
        self.base_url = (base_url or "").rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _send(self, method: str, path: str, error: str, **kwargs) -> httpx.Response:
        url = self._url(path)
        try:
            resp = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("[OCR] Không kết nối được OCR service %s %s: %s", method, url, e)
            raise UpstreamUnavailable("OCR service unreachable", detail=str(e)) from e
        if resp.status_code == 404:
            raise NotFoundError("job not found", detail=resp.text[:500] or None)
        if not resp.is_success:
            logger.warning("[OCR] %s %s -> %s", method, url, resp.status_code)
            raise UpstreamUnavailable(error, status=resp.status_code, detail=resp.text)
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError("OCR service returned invalid JSON", raw=resp.text) from e
        if not isinstance(data, dict):
            raise ParseError("OCR service returned unexpected JSON", raw=resp.text)
        return data

    async def submit(
        self,
        filename: str,
        content: bytes,
        content_type: str | None = None,
        collection: str = "default",
        language: str = "vie",
    ) -> dict:
        if not content:
            raise ValidationError("No file provided")
        content_type = content_type or "application/octet-stream"
        if content_type == "application/pdf" or (filename or "").lower().endswith(".pdf"):
            logger.info(
                "[OCR] Upload PDF: file=%s, size=%s, sha256=%s, số trang=%s",
                filename, len(content), hashlib.sha256(content).hexdigest(), _pdf_page_count(content),
            )
        try:
            resp = await self.http.post(
                self._url("/api/v1/process"),
                files={"file": (filename, content, content_type)},
                data={"collection": collection or "default", "language": language or "vie"},
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("OCR service unreachable", detail=str(e)) from e
        if not resp.is_success:
            raise UploadError("Upload failed", status=resp.status_code, detail=resp.text)
        data = self._json(resp)
        data.setdefault("status", "queued")
        logger.info("[OCR] Đã gửi job: job_id=%s, file=%s", data.get("job_id"), filename)
        return data

    async def list_jobs(self, status: str | None = None, include_metadata: bool = False) -> list[Job]:
        params = {}
        if status:
            params["status"] = status
        if include_metadata:
            params["include_metadata"] = "true"
        resp = await self._send("GET", "/api/v2/jobs", "Failed to fetch jobs", params=params)
        data = self._json(resp)
        jobs = []
        for raw in data.get("jobs") or []:
            if not isinstance(raw, dict):
                continue
            meta = raw.get("metadata")
            # include_metadata có thể trả {"metadata": [...]} lồng bên trong
            if isinstance(meta, dict):
                raw = {**raw, "metadata": meta.get("metadata") or []}
            try:
                jobs.append(Job.model_validate(raw))
            except pydantic.ValidationError as e:
                logger.warning("[OCR] Bỏ qua job không hợp lệ: job_id=%s (%s)", raw.get("job_id"), e.errors()[0].get("msg"))
        logger.debug("[OCR] Lấy %s jobs (status=%s)", len(jobs), status)
        return jobs

    async def get_metadata(self, job_id: str) -> list[MetadataField]:
        resp = await self._send("GET", f"/api/v2/jobs/{job_id}/metadata", "Failed to load metadata")
        data = self._json(resp)
        try:
            return [MetadataField.model_validate(m) for m in data.get("metadata") or []]
        except pydantic.ValidationError as e:
            raise ParseError("OCR service returned invalid metadata", raw=resp.text) from e

    async def put_metadata(self, job_id: str, fields: Iterable[MetadataField]) -> None:
        payload = {"metadata": [f.model_dump() for f in fields]}
        await self._send("PUT", f"/api/v2/jobs/{job_id}/metadata", "Failed to save metadata", json=payload)

    async def delete_job(self, job_id: str) -> dict:
        resp = await self._send("DELETE", f"/api/v2/jobs/{job_id}", "Failed to delete job")
        logger.info("[OCR] Đã xóa job: job_id=%s", job_id)
        try:
            return resp.json()
        except ValueError:
            return {"ok": True}

    async def update_dspace_tracking(self, job_id: str, **fields) -> None:
        allowed = {k: v for k, v in fields.items() if k in ALLOWED_TRACKING_FIELDS}
        if not allowed:
            return
        if "dspace_status" in allowed and allowed["dspace_status"] is not None:
            allowed["dspace_status"] = getattr(allowed["dspace_status"], "value", allowed["dspace_status"])
        await self._send("PATCH", f"/api/v2/jobs/{job_id}/dspace", "Failed to update DSpace status", json=allowed)

    async def _open_stream(self, path: str, error: str, params=None) -> httpx.Response:
        request = self.http.build_request("GET", self._url(path), params=params)
        try:
            resp = await self.http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("OCR service unreachable", detail=str(e)) from e
        if resp.is_success:
            return resp
        body = (await resp.aread()).decode("utf-8", errors="replace")
        await resp.aclose()
        if resp.status_code == 404:
            raise NotFoundError("job not found", detail=body[:500] or None)
        raise UpstreamUnavailable(error, status=resp.status_code, detail=body)

    async def open_download(self, job_id: str) -> httpx.Response:
        """Response đang mở ở chế độ stream; người gọi phải aclose()."""
        return await self._open_stream(f"/api/v2/download/{job_id}", "Download failed")

    async def open_batch_download(self, job_ids: list[str]) -> httpx.Response:
        if not job_ids:
            raise ValidationError("No job IDs provided")
        return await self._open_stream("/api/v2/download/batch", "Batch download failed", params=[("ids", i) for i in job_ids])

    async def download_archive(self, job_id: str) -> bytes:
        resp = await self.open_download(job_id)
        try:
            return await resp.aread()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("Download interrupted", detail=str(e)) from e
        finally:
            await resp.aclose()

    async def stream_events(self) -> AsyncIterator[JobDelta]:
        """Đọc server-sent events {job_id, status, progress, error} từ OCR service."""
        async with self.http.stream(
            "GET",
            self._url("/api/v2/jobs/stream"),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(10.0, read=None),
        ) as resp:
            if not resp.is_success:
                raise UpstreamUnavailable("Job stream failed", status=resp.status_code)
            data_lines: list[str] = []
            async for line in resp.aiter_lines():
                if line.startswith(":"):
                    continue
                if line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
                    continue
                if line.strip() == "" and data_lines:
                    delta = self._parse_event("\n".join(data_lines))
                    data_lines = []
                    if delta is not None:
                        yield delta
            if data_lines:
                delta = self._parse_event("\n".join(data_lines))
                if delta is not None:
                    yield delta

    @staticmethod
    def _parse_event(payload: str) -> JobDelta | None:
        try:
            return JobDelta.model_validate(json.loads(payload))
        except ValueError as e:
            logger.warning("[OCR] Bỏ qua event không hợp lệ: %s (%s)", payload[:200], e)
            return None
