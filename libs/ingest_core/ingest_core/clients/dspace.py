"""Client REST cho DSpace 6.x: login, status, collections/communities, item, bitstream.

Session không nằm trong cookie jar của httpx mà được truyền tường minh qua
DSpaceSession ở mọi lời gọi.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ingest_core.domain.models import MetadataField
from ingest_core.errors import (
    AuthError,
    ParseError,
    UpstreamUnavailable,
    ValidationError,
    preview,
)
from ingest_core.responses import JsonBody, extract_list, parse_bitstream, parse_item, sniff

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
MAX_PAGES = 100


def trim_cookie(raw: str) -> str:
    """'JSESSIONID=abc; Path=/rest; Secure; HttpOnly' -> 'JSESSIONID=abc'."""
    return raw.split(";", 1)[0].strip()


@dataclass(frozen=True)
class DSpaceSession:
    base_url: str
    cookie: Optional[str] = None

    @property
    def rest_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/rest"

    def headers(self) -> dict[str, str]:
        h = {"Accept": "application/json"}
        if self.cookie:
            h["Cookie"] = self.cookie
        return h

    def require_cookie(self) -> None:
        if not self.cookie:
            raise AuthError("No session cookie - please login first")


@dataclass
class StatusResult:
    authenticated: bool
    profile: Optional[dict] = None
    raw: Optional[str] = None

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"authenticated": self.authenticated}
        if self.profile is not None:
            body["profile"] = self.profile
        if self.raw is not None:
            body["raw"] = self.raw
        return body


def _pick_session_cookie(resp: httpx.Response) -> str | None:
    cookies = resp.headers.get_list("set-cookie")
    for c in cookies:
        if c.strip().upper().startswith("JSESSIONID="):
            return trim_cookie(c)
    return trim_cookie(cookies[0]) if cookies else None


class DSpaceClient:
    def __init__(self, http: httpx.AsyncClient, page_size: int = DEFAULT_PAGE_SIZE):
        self.http = http
        self.page_size = page_size

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("[DSPACE] Không kết nối được %s %s: %s", method, url, e)
            raise UpstreamUnavailable("DSpace server unreachable", detail=str(e)) from e

    async def _checked(self, method: str, url: str, error: str, **kwargs) -> httpx.Response:
        resp = await self._send(method, url, **kwargs)
        if resp.status_code == 401 or resp.status_code == 403:
            raise AuthError(error, detail=preview(resp.text))
        if not resp.is_success:
            logger.warning("[DSPACE] %s %s -> %s", method, url, resp.status_code)
            raise UpstreamUnavailable(error, status=resp.status_code, detail=resp.text)
        return resp

    # ------------------------------------------------------------------ auth

    async def login(self, email: str, password: str, base_url: str) -> DSpaceSession:
        if not email or not password or not base_url:
            raise ValidationError("Missing required fields: email, password, dspaceUrl")
        url = f"{base_url.rstrip('/')}/rest/login"
        try:
            resp = await self.http.post(
                url,
                data={"email": email, "password": password},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning("[DSPACE] Login: không kết nối được %s: %s", base_url, e)
            raise AuthError("DSpace server unreachable", detail=str(e)) from e
        if not resp.is_success:
            logger.info("[DSPACE] Login thất bại: email=%s, status=%s", email, resp.status_code)
            raise AuthError("Login failed", detail=preview(resp.text))
        cookie = _pick_session_cookie(resp)
        if not cookie:
            raise AuthError("DSpace did not return session cookie")
        logger.info("[DSPACE] ✅ Login thành công: email=%s, server=%s", email, base_url)
        return DSpaceSession(base_url=base_url, cookie=cookie)

    async def check_status(self, session: DSpaceSession) -> StatusResult:
        """Session hết hạn thường trả trang HTML/XML chứ không phải 401 -> coi là chưa đăng nhập."""
        try:
            resp = await self.http.get(f"{session.rest_url}/status", headers=session.headers())
        except httpx.HTTPError as e:
            logger.warning("[DSPACE] Status: không kết nối được %s: %s", session.base_url, e)
            return StatusResult(authenticated=False)
        if "application/json" not in resp.headers.get("content-type", ""):
            return StatusResult(authenticated=False, raw=preview(resp.text))
        try:
            data = resp.json()
        except ValueError:
            return StatusResult(authenticated=False, raw=preview(resp.text))
        if not isinstance(data, dict):
            return StatusResult(authenticated=False)
        return StatusResult(authenticated=bool(data.get("authenticated")), profile=data)

    # ----------------------------------------------------------- directory

    async def _paged_list(self, session: DSpaceSession, path: str, key: str) -> list[dict]:
        items: list[dict] = []
        offset = 0
        for _ in range(MAX_PAGES):
            resp = await self._checked(
                "GET",
                f"{session.rest_url}/{path}",
                f"Failed to fetch {key}",
                params={"limit": self.page_size, "offset": offset},
                headers=session.headers(),
            )
            body = sniff(resp.text)
            if not isinstance(body, JsonBody):
                raise ParseError("Unexpected response format", raw=resp.text)
            page = extract_list(body.value, key)
            items.extend(page)
            # Chỉ mảng trần mới phân trang theo offset được
            if not isinstance(body.value, list) or len(page) < self.page_size:
                break
            offset += self.page_size
        return items

    async def list_collections(self, session: DSpaceSession) -> list[dict]:
        return await self._paged_list(session, "collections", "collections")

    async def list_communities(self, session: DSpaceSession) -> list[dict]:
        return await self._paged_list(session, "communities", "communities")

    async def list_community_collections(self, session: DSpaceSession, community_id: str) -> list[dict]:
        return await self._paged_list(session, f"communities/{community_id}/collections", "collections")

    # ---------------------------------------------------------------- items

    async def create_item(
        self,
        session: DSpaceSession,
        collection_id: str,
        metadata: list[MetadataField],
    ) -> dict:
        session.require_cookie()
        if not collection_id:
            raise ValidationError("Missing required fields: collectionId")
        payload = {
            "metadata": [
                {"key": m.key, "value": m.value, "language": m.language or None}
                for m in metadata
            ]
        }
        resp = await self._checked(
            "POST",
            f"{session.rest_url}/collections/{collection_id}/items",
            "Failed to create item",
            json=payload,
            headers=session.headers(),
        )
        item = parse_item(sniff(resp.text))
        if not item["itemId"] and not item["handle"]:
            raise ParseError("Item identifier not found in response", raw=resp.text)
        logger.info(
            "[DSPACE] Đã tạo item: collection=%s, itemId=%s, handle=%s, format=%s",
            collection_id, item["itemId"], item["handle"], item["_format"],
        )
        return item

    async def get_item_by_handle(self, session: DSpaceSession, handle: str) -> dict:
        if not handle:
            raise ValidationError("Missing handle")
        resp = await self._checked(
            "GET",
            f"{session.rest_url}/handle/{handle}",
            "Failed to get item by handle",
            headers=session.headers(),
        )
        item = parse_item(sniff(resp.text))
        if not item["itemId"]:
            raise ParseError("Item ID not found in response", raw=resp.text)
        return {"id": item["itemId"], "handle": item["handle"], "type": item["type"]}

    async def upload_bitstream(
        self,
        session: DSpaceSession,
        item_id: str,
        file_name: str,
        content: bytes,
    ) -> dict:
        session.require_cookie()
        if not item_id or str(item_id) in ("undefined", "null"):
            raise ValidationError("Invalid itemId")
        if not file_name:
            raise ValidationError("Missing fileName")
        if not content:
            raise ValidationError("Empty file")
        headers = session.headers()
        headers["Content-Type"] = "application/octet-stream"
        resp = await self._checked(
            "POST",
            f"{session.rest_url}/items/{item_id}/bitstreams",
            "DSpace upload failed",
            params={"name": file_name},
            content=content,
            headers=headers,
        )
        result = parse_bitstream(sniff(resp.text))
        logger.info("[DSPACE] Đã upload bitstream: itemId=%s, file=%s, size=%s", item_id, file_name, len(content))
        return result
