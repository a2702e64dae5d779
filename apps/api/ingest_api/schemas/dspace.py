from typing import Any, Optional

from ingest_core.domain.models import CamelModel


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""
    dspace_url: Optional[str] = None


class DSpaceUrlRequest(CamelModel):
    dspace_url: Optional[str] = None


class CreateItemRequest(CamelModel):
    collection_id: Optional[str] = None
    metadata: Any = None  # kiểm tra là mảng trong route để trả 400 đúng thông báo
    dspace_url: Optional[str] = None


class HandleRequest(CamelModel):
    handle: Optional[str] = None
    dspace_url: Optional[str] = None


class LoginResponse(CamelModel):
    success: bool
    message: str
