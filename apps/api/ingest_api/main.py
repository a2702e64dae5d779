from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ingest_api.api.v1.routes_ai import router as ai_router
from ingest_api.api.v1.routes_dspace import router as dspace_router
from ingest_api.api.v1.routes_ingest import router as ingest_router
from ingest_api.api.v1.routes_ocr import router as ocr_router
from ingest_api.core.config import settings
from ingest_api.core.logging import get_logger, mask_secrets, setup_logging
from ingest_core.clients.ocr import OcrClient
from ingest_core.errors import IngestError
from ingest_core.jobs import JobBoard, JobWatcher

setup_logging()

logger = get_logger("ingest_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Một AsyncClient dùng chung cho DSpace / OCR / Claude, đóng khi tắt app
    app.state.http = httpx.AsyncClient(timeout=settings.http_timeout, follow_redirects=False)
    if settings.dspace_url:
        logger.info("[DSPACE] Server mặc định: %s", mask_secrets(settings.dspace_url))
    else:
        logger.warning("[DSPACE] DSPACE_URL chưa cấu hình. Mọi request phải gửi kèm dspaceUrl.")
    logger.info("[OCR] OCR service: %s", mask_secrets(settings.ocr_api_url))
    if settings.claude_api_key:
        logger.info("[AI] Claude đã cấu hình (model=%s)", settings.claude_model)
    else:
        logger.warning("[AI] CLAUDE_API_KEY chưa cấu hình. Chỉ dùng được gợi ý heuristic.")
    # Danh sách job "sống" cho /ocr/jobs/live, cập nhật nền theo JOBS_WATCH_MODE
    app.state.job_board = JobBoard()
    watcher = None
    if settings.jobs_watch_mode in ("poll", "stream"):
        watcher = JobWatcher(
            OcrClient(app.state.http, settings.ocr_api_url),
            app.state.job_board,
            mode=settings.jobs_watch_mode,
            poll_interval=settings.jobs_poll_interval,
            reconnect_delay=settings.jobs_stream_reconnect,
        )
        watcher.start()
        logger.info("[OCR] Theo dõi job: mode=%s", settings.jobs_watch_mode)
    try:
        yield
    finally:
        if watcher is not None:
            await watcher.stop()
        await app.state.http.aclose()


app = FastAPI(title="DSpace Ingest API", lifespan=lifespan)

# CORS: frontend gửi kèm cookie JSESSIONID nên phải allow_credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError):
    if exc.status_code >= 500:
        logger.warning("[API] %s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(dspace_router)
app.include_router(ocr_router)
app.include_router(ai_router)
app.include_router(ingest_router)


@app.get("/health")
def health():
    return {"ok": True}
