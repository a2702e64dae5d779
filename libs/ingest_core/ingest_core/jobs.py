"""
Danh sách job OCR "sống" và tác vụ cập nhật nó.

- JobBoard: snapshot theo job_id. Progress không giảm khi job chưa kết thúc; job đã kết thúc
  (completed/failed/cancelled) không bị thay đổi trạng thái nữa, chỉ có thể bị xóa.
- JobWatcher: một asyncio.Task có thể hủy, chạy một trong hai chế độ:
    poll: gọi list_jobs mỗi poll_interval giây, chỉ khi còn job chưa kết thúc;
    stream: đọc SSE từ OCR service, mất kết nối thì chờ reconnect_delay giây rồi nối lại, không giới hạn số lần.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Iterable, Optional

import httpx

from ingest_core.clients.ocr import OcrClient
from ingest_core.domain.models import Job, JobDelta, JobStatus
from ingest_core.errors import IngestError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_RECONNECT_DELAY = 3.0


def _clamp(progress: int) -> int:
    return max(0, min(100, int(progress)))


class JobBoard:
    def __init__(self, jobs: Iterable[Job] = ()):
        self._jobs: dict[str, Job] = {}
        self.replace(jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def _merge(self, current: Job, incoming: Job) -> Job:
        if current.status.terminal:
            return incoming.model_copy(update={
                "status": current.status,
                "progress": current.progress,
                "error": current.error,
            })
        if not incoming.status.terminal and incoming.progress < current.progress:
            return incoming.model_copy(update={"progress": current.progress})
        return incoming

    def replace(self, jobs: Iterable[Job]) -> None:
        """Thay bằng snapshot mới; job không còn trong snapshot coi như đã bị xóa."""
        fresh: dict[str, Job] = {}
        for job in jobs:
            job = job.model_copy(update={"progress": _clamp(job.progress)})
            current = self._jobs.get(job.job_id)
            fresh[job.job_id] = self._merge(current, job) if current else job
        self._jobs = fresh

    def apply(self, delta: JobDelta) -> bool:
        """Áp một delta {job_id, status, progress, error}. Trả False nếu bị bỏ qua."""
        current = self._jobs.get(delta.job_id)
        if current is None:
            self._jobs[delta.job_id] = Job(
                job_id=delta.job_id,
                status=delta.status or JobStatus.QUEUED,
                progress=_clamp(delta.progress or 0),
                error=delta.error,
            )
            return True
        if current.status.terminal:
            logger.debug("[OCR] Bỏ qua delta cho job đã kết thúc: job_id=%s", delta.job_id)
            return False
        update: dict = {}
        if delta.status is not None and delta.status != current.status:
            update["status"] = delta.status
        if delta.progress is not None:
            progress = _clamp(delta.progress)
            if progress > current.progress:
                update["progress"] = progress
        if delta.error is not None and delta.error != current.error:
            update["error"] = delta.error
        if not update:
            return False
        self._jobs[delta.job_id] = current.model_copy(update=update)
        return True

    def upsert(self, job: Job) -> None:
        current = self._jobs.get(job.job_id)
        self._jobs[job.job_id] = self._merge(current, job) if current else job

    def remove(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def has_active(self) -> bool:
        return any(not j.status.terminal for j in self._jobs.values())

    def completed(self) -> list[Job]:
        return [j for j in self._jobs.values() if j.status == JobStatus.COMPLETED]


class JobWatcher:
    def __init__(
        self,
        client: OcrClient,
        board: JobBoard,
        mode: str = "poll",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        include_metadata: bool = False,
        on_change: Optional[Callable[[JobBoard], None]] = None,
    ):
        if mode not in ("poll", "stream"):
            raise ValueError(f"mode phải là 'poll' hoặc 'stream', nhận {mode!r}")
        self.client = client
        self.board = board
        self.mode = mode
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay
        self.include_metadata = include_metadata
        self.on_change = on_change
        self.reconnects = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.board)
        except Exception:
            logger.exception("[OCR] on_change callback lỗi, watcher vẫn chạy tiếp")

    async def refresh(self) -> None:
        jobs = await self.client.list_jobs(include_metadata=self.include_metadata)
        self.board.replace(jobs)
        self._notify()

    async def _poll_loop(self) -> None:
        first = True
        while True:
            if first or self.board.has_active():
                try:
                    await self.refresh()
                except IngestError as e:
                    logger.warning("[OCR] Làm mới danh sách job thất bại: %s", e.message)
                first = False
            await asyncio.sleep(self.poll_interval)

    async def _stream_loop(self) -> None:
        while True:
            try:
                async for delta in self.client.stream_events():
                    if self.board.apply(delta):
                        self._notify()
                logger.info("[OCR] Stream trạng thái job đã đóng")
            except (IngestError, httpx.HTTPError) as e:
                logger.warning("[OCR] Mất kết nối stream trạng thái job: %s", e)
            self.reconnects += 1
            logger.info("[OCR] Kết nối lại stream sau %ss (lần %s)", self.reconnect_delay, self.reconnects)
            await asyncio.sleep(self.reconnect_delay)

    def start(self) -> asyncio.Task:
        if not self.running:
            loop = self._poll_loop if self.mode == "poll" else self._stream_loop
            self._task = asyncio.create_task(loop(), name=f"job-watcher-{self.mode}")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> "JobWatcher":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
