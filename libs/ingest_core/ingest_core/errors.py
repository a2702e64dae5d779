"""Phân loại lỗi dùng chung: Auth, Upstream, Parse, Validation, NotFound.

Mỗi lỗi mang sẵn status_code + detail để tầng API chuyển thành JSON mà không cần
biết lỗi phát sinh ở client nào.
"""
from __future__ import annotations

DETAIL_PREVIEW_CHARS = 500
RAW_PREVIEW_CHARS = 1000


def preview(text: str | None, limit: int = DETAIL_PREVIEW_CHARS) -> str | None:
    """Cắt chuỗi về độ dài tối đa để đưa vào thông báo lỗi."""
    if text is None:
        return None
    return text if len(text) <= limit else text[:limit]


class IngestError(Exception):
    status_code: int = 500
    error: str = "Internal error"

    def __init__(self, message: str | None = None, *, detail: str | None = None, raw: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.detail = detail
        self.raw = raw

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        if self.raw is not None:
            body["raw"] = self.raw
        return body


class AuthError(IngestError):
    """Sai thông tin đăng nhập hoặc thiếu/hết hạn session."""
    status_code = 401
    error = "Authentication failed"


class UpstreamUnavailable(IngestError):
    """Lỗi mạng hoặc non-2xx từ OCR / DSpace / AI."""
    status_code = 502
    error = "Upstream service error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int | None = None,
        detail: str | None = None,
        raw: str | None = None,
    ):
        super().__init__(message, detail=preview(detail), raw=raw)
        self.upstream_status = status
        if status is not None and 400 <= status < 600:
            self.status_code = status


class UploadError(UpstreamUnavailable):
    """OCR service từ chối file (sai loại, quá lớn...)."""
    error = "Upload failed"


class ParseError(IngestError):
    """Body không đúng dạng JSON/XML mong đợi; giữ lại raw (đã cắt) để chẩn đoán."""
    status_code = 502
    error = "Failed to parse upstream response"

    def __init__(self, message: str | None = None, *, raw: str | None = None, detail: str | None = None):
        super().__init__(message, detail=detail, raw=preview(raw, RAW_PREVIEW_CHARS))


class ValidationError(IngestError):
    status_code = 400
    error = "Invalid input"


class NotFoundError(IngestError):
    status_code = 404
    error = "Not found"


class ConfigurationError(IngestError):
    status_code = 500
    error = "Server is not configured"
