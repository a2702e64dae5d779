"""Proxy DSpace REST: đăng nhập, trạng thái session, danh mục collection, tạo item, upload bitstream."""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ingest_api.core.config import Settings
from ingest_api.core.deps import build_session, get_dspace_client, get_settings
from ingest_api.core.logging import get_logger
from ingest_api.schemas.dspace import (
    CreateItemRequest,
    DSpaceUrlRequest,
    HandleRequest,
    LoginRequest,
    LoginResponse,
)
from ingest_core.clients.dspace import DSpaceClient
from ingest_core.directory import list_collections_flat, list_collections_with_context
from ingest_core.domain.models import MetadataField

logger = get_logger("ingest_api.api.dspace")

router = APIRouter(tags=["dspace"])


@router.post("/login")
async def login(
    body: LoginRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    if not body.email or not body.password:
        raise HTTPException(400, "Missing required fields: email, password")
    base_url = body.dspace_url or cfg.dspace_url
    if not base_url:
        raise HTTPException(400, "Missing dspaceUrl")
    session = await dspace.login(body.email, body.password, base_url)
    response = JSONResponse(LoginResponse(success=True, message="Login success").model_dump())
    # Trả lại cookie DSpace cho trình duyệt, chỉ giữ phần name=value
    response.headers.append("set-cookie", f"{session.cookie}; Path=/; HttpOnly; SameSite=Lax")
    return response


@router.post("/status")
async def status(
    request: Request,
    body: DSpaceUrlRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    session = build_session(request, body.dspace_url, cfg)
    result = await dspace.check_status(session)
    if result.profile is not None:
        return {**result.profile, "authenticated": result.authenticated}
    return result.to_dict()


@router.get("/session")
async def current_session(
    request: Request,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    """Trạng thái đăng nhập với DSpace mặc định (DSPACE_URL)."""
    session = build_session(request, None, cfg)
    result = await dspace.check_status(session)
    return result.to_dict()


@router.post("/collections")
async def collections(
    request: Request,
    body: DSpaceUrlRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    session = build_session(request, body.dspace_url, cfg)
    cols = await list_collections_flat(dspace, session)
    return {"success": True, "count": len(cols), "collections": [c.to_wire() for c in cols]}


@router.post("/collections-with-context")
async def collections_with_context(
    request: Request,
    body: DSpaceUrlRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    session = build_session(request, body.dspace_url, cfg)
    cols = await list_collections_with_context(dspace, session)
    return {"success": True, "count": len(cols), "collections": [c.to_wire() for c in cols]}


@router.post("/create-item")
async def create_item(
    request: Request,
    body: CreateItemRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    session = build_session(request, body.dspace_url, cfg)
    session.require_cookie()
    if not body.collection_id or body.metadata is None:
        raise HTTPException(400, "Missing required fields: collectionId, metadata")
    if not isinstance(body.metadata, list):
        raise HTTPException(400, "metadata must be an array")
    try:
        fields = [MetadataField.model_validate(m) for m in body.metadata]
    except ValueError as e:
        raise HTTPException(400, f"Invalid metadata: {e}") from e
    item = await dspace.create_item(session, body.collection_id, fields)
    return {"success": True, **item}


@router.post("/get-item-by-handle")
async def get_item_by_handle(
    request: Request,
    body: HandleRequest,
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    if not body.handle:
        raise HTTPException(400, "Missing handle")
    session = build_session(request, body.dspace_url, cfg)
    item = await dspace.get_item_by_handle(session, body.handle)
    return {"success": True, **item}


@router.post("/upload-bitstream")
async def upload_bitstream(
    request: Request,
    item_id: str | None = Query(default=None, alias="itemId"),
    file_name: str | None = Query(default=None, alias="fileName"),
    dspace_url: str | None = Query(default=None, alias="dspaceUrl"),
    cfg: Settings = Depends(get_settings),
    dspace: DSpaceClient = Depends(get_dspace_client),
):
    """Body là bytes thô của file (application/octet-stream)."""
    session = build_session(request, dspace_url, cfg)
    session.require_cookie()
    if not item_id or not file_name:
        raise HTTPException(400, "Missing required parameters: itemId, fileName")
    if item_id in ("undefined", "null"):
        raise HTTPException(400, "Invalid itemId")
    content = await request.body()
    if not content:
        raise HTTPException(400, "Empty file")
    logger.info("[DSPACE] Upload bitstream: itemId=%s, file=%s, size=%s", item_id, file_name, len(content))
    result = await dspace.upload_bitstream(session, item_id, file_name, content)
    return {"success": True, **result}
