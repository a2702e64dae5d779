"""Gọi Anthropic Messages API (một prompt -> một đoạn text)."""
from __future__ import annotations

import logging

import httpx

from ingest_core.errors import ConfigurationError, ParseError, UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
API_VERSION = "2023-06-01"


class ClaudeClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        api_url: str = DEFAULT_API_URL,
    ):
        self.http = http
        self.api_key = api_key
        self.model = model
        self.api_url = api_url

    async def complete(self, prompt: str, max_tokens: int = 4096) -> str:
        if not self.api_key:
            raise ConfigurationError("CLAUDE_API_KEY not configured in server environment")
        try:
            resp = await self.http.post(
                self.api_url,
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key,
                    "anthropic-version": API_VERSION,
                },
                json={
                    "model": self.model,
                    "max_tokens": max_tokens,
                    "messages": [{"role": "user", "content": prompt}],
                },
            )
        except httpx.HTTPError as e:
            logger.warning("[AI] Không gọi được AI service: %s", e)
            raise UpstreamUnavailable("AI service error", detail=str(e)) from e
        if not resp.is_success:
            logger.error("[AI] AI service trả lỗi %s: %s", resp.status_code, resp.text[:500])
            raise UpstreamUnavailable("AI service error", status=resp.status_code, detail=resp.text)
        try:
            return resp.json()["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ParseError("Unexpected AI service response", raw=resp.text) from e
