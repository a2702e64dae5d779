"""Fake DSpace / OCR service / Claude dựng trên httpx.MockTransport, dùng chung cho mọi test."""
import asyncio
import io
import json
import re
import zipfile
from urllib.parse import parse_qs

import httpx
import pytest

from ingest_core.clients.dspace import DSpaceClient, DSpaceSession
from ingest_core.clients.llm import ClaudeClient
from ingest_core.clients.ocr import OcrClient

DSPACE_URL = "https://dspace.test"
OCR_URL = "http://ocr.test"
CLAUDE_URL = "https://claude.test/v1/messages"
SESSION_COOKIE = "JSESSIONID=abc123"


def make_zip(entries: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def meta(**pairs) -> list[dict]:
    """meta(dc_title="A") -> [{"key": "dc.title", "value": "A", "language": None}]."""
    return [{"key": k.replace("_", "."), "value": v, "language": None} for k, v in pairs.items()]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FakeOcrService:
    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.metadata: dict[str, list] = {}
        self.archives: dict[str, bytes] = {}
        self.tracking: dict[str, list] = {}
        self.fail_tracking = False
        self.stream_bodies: list = []
        self.stream_calls = 0
        self.requests: list[httpx.Request] = []

    def add_job(self, job_id, filename="doc.pdf", status="completed", progress=100, metadata=None, archive=None, **extra):
        self.jobs[job_id] = {"job_id": job_id, "filename": filename, "status": status, "progress": progress, **extra}
        self.metadata[job_id] = list(metadata or [])
        if archive is not None:
            self.archives[job_id] = archive

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def _stream(self, request):
        self.stream_calls += 1
        if not self.stream_bodies:
            return httpx.Response(200, text="", headers={"content-type": "text/event-stream"})
        body = self.stream_bodies.pop(0)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path, method = request.url.path, request.method
        if path == "/api/v1/process" and method == "POST":
            job_id = f"job-{len(self.jobs) + 1}"
            match = re.search(rb'filename="([^"]+)"', request.content)
            filename = match.group(1).decode() if match else "upload.pdf"
            self.add_job(job_id, filename=filename, status="queued", progress=0)
            return httpx.Response(200, json={"job_id": job_id, "filename": filename})
        if path == "/api/v2/jobs" and method == "GET":
            return httpx.Response(200, json={"jobs": list(self.jobs.values())})
        if path == "/api/v2/jobs/stream":
            return self._stream(request)
        if path == "/api/v2/download/batch":
            ids = request.url.params.get_list("ids")
            return httpx.Response(200, content=make_zip({f"{i}.zip": self.archives.get(i, b"") for i in ids}))
        m = re.fullmatch(r"/api/v2/download/([^/]+)", path)
        if m:
            if m.group(1) not in self.archives:
                return httpx.Response(404, json={"detail": "Job not found"})
            return httpx.Response(200, content=self.archives[m.group(1)], headers={"content-type": "application/zip"})
        m = re.fullmatch(r"/api/v2/jobs/([^/]+)(/metadata|/dspace)?", path)
        if m:
            job_id, sub = m.group(1), m.group(2)
            if job_id not in self.jobs:
                return httpx.Response(404, json={"detail": "Job not found"})
            if sub is None and method == "DELETE":
                del self.jobs[job_id]
                self.metadata.pop(job_id, None)
                return httpx.Response(200, json={"ok": True, "job_id": job_id})
            if sub == "/metadata" and method == "GET":
                return httpx.Response(200, json={"job_id": job_id, "metadata": self.metadata[job_id]})
            if sub == "/metadata" and method == "PUT":
                self.metadata[job_id] = json.loads(request.content)["metadata"]
                return httpx.Response(200, json={"ok": True})
            if sub == "/dspace" and method == "PATCH":
                if self.fail_tracking:
                    return httpx.Response(500, text="tracking unavailable")
                fields = json.loads(request.content)
                self.tracking.setdefault(job_id, []).append(fields)
                self.jobs[job_id].update(fields)
                return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, json={"detail": "Not Found"})


class FakeDSpace:
    def __init__(self):
        self.password = "secret"
        self.item_format = "json"
        self.status_mode = "json"
        self.collections: list[dict] = []
        self.communities: list[dict] = []
        self.community_collections: dict = {}
        self.items: dict[str, dict] = {}
        self.handles: dict[str, str] = {}
        self.bitstreams: list[tuple] = []
        self.fail_upload_for: set = set()
        self.created = 0
        self.requests: list[httpx.Request] = []

    def _authorized(self, request) -> bool:
        return SESSION_COOKIE in (request.headers.get("cookie") or "")

    def _create_item(self, request, collection_id):
        if not self._authorized(request):
            return httpx.Response(401, text="Unauthorized")
        self.created += 1
        n = self.created
        item_uuid = f"00000000-0000-0000-0000-{n:012d}"
        handle = f"123456789/{n}"
        self.items[item_uuid] = {"collection": collection_id, "metadata": json.loads(request.content)["metadata"]}
        self.handles[handle] = item_uuid
        if self.item_format == "xml":
            self.items[str(n)] = self.items[item_uuid]
            self.handles[handle] = str(n)
            xml = (
                '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
                f"<item><id>{n}</id><name>Item {n}</name><handle>{handle}</handle>"
                "<type>item</type><archived>true</archived></item>"
            )
            return httpx.Response(200, text=xml, headers={"content-type": "application/xml"})
        if self.item_format == "handle-only":
            return httpx.Response(200, json={"handle": handle, "name": f"Item {n}"})
        return httpx.Response(200, json={
            "uuid": item_uuid,
            "name": f"Item {n}",
            "handle": handle,
            "type": "item",
            "link": f"/rest/items/{item_uuid}",
            "archived": "true",
        })

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path, method = request.url.path, request.method
        if path == "/rest/login" and method == "POST":
            form = parse_qs(request.content.decode())
            if form.get("password") != [self.password]:
                return httpx.Response(401, text="Invalid credentials")
            return httpx.Response(200, text="", headers=[
                ("set-cookie", f"{SESSION_COOKIE}; Path=/rest; Secure; HttpOnly"),
            ])
        if path == "/rest/status":
            if self.status_mode == "html":
                return httpx.Response(200, text="<html><body>Login</body></html>", headers={"content-type": "text/html"})
            return httpx.Response(200, json={
                "okay": True,
                "authenticated": self._authorized(request),
                "email": "librarian@example.edu.vn",
            })
        if path == "/rest/collections" and method == "GET":
            limit = int(request.url.params.get("limit", 100))
            offset = int(request.url.params.get("offset", 0))
            return httpx.Response(200, json=self.collections[offset:offset + limit])
        if path == "/rest/communities":
            return httpx.Response(200, json=self.communities)
        m = re.fullmatch(r"/rest/communities/([^/]+)/collections", path)
        if m:
            value = self.community_collections.get(m.group(1), [])
            if isinstance(value, int):
                return httpx.Response(value, text="boom")
            return httpx.Response(200, json=value)
        m = re.fullmatch(r"/rest/collections/([^/]+)/items", path)
        if m and method == "POST":
            return self._create_item(request, m.group(1))
        m = re.fullmatch(r"/rest/handle/(.+)", path)
        if m:
            item_id = self.handles.get(m.group(1))
            if item_id is None:
                return httpx.Response(404, text="Not found")
            return httpx.Response(200, json={"uuid": item_id, "handle": m.group(1), "type": "item"})
        m = re.fullmatch(r"/rest/items/([^/]+)/bitstreams", path)
        if m and method == "POST":
            if not self._authorized(request):
                return httpx.Response(401, text="Unauthorized")
            item_id = m.group(1)
            if item_id in self.fail_upload_for:
                return httpx.Response(500, text="storage error")
            name = request.url.params.get("name")
            self.bitstreams.append((item_id, name, request.content))
            return httpx.Response(200, json={
                "uuid": f"bs-{len(self.bitstreams)}",
                "name": name,
                "sizeBytes": len(request.content),
            })
        return httpx.Response(404, text="Not found")


class FakeClaude:
    def __init__(self):
        self.replies: list[str] = []
        self.status = 200
        self.requests: list[httpx.Request] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, text="overloaded")
        text = self.replies.pop(0) if self.replies else "{}"
        return httpx.Response(200, json={"content": [{"type": "text", "text": text}]})


@pytest.fixture
def ocr_service():
    return FakeOcrService()


@pytest.fixture
def dspace_server():
    return FakeDSpace()


@pytest.fixture
def claude_server():
    return FakeClaude()


@pytest.fixture
def http(ocr_service, dspace_server, claude_server):
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "ocr.test":
            return ocr_service.handle(request)
        if host == "dspace.test":
            return dspace_server.handle(request)
        if host == "claude.test":
            return claude_server.handle(request)
        raise httpx.ConnectError("host unreachable", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def dspace(http):
    return DSpaceClient(http)


@pytest.fixture
def ocr(http):
    return OcrClient(http, OCR_URL)


@pytest.fixture
def claude(http):
    return ClaudeClient(http, "test-key", api_url=CLAUDE_URL)


@pytest.fixture
def session():
    return DSpaceSession(base_url=DSPACE_URL, cookie=SESSION_COOKIE)
