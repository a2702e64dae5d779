"""Danh mục collection của DSpace, kèm ngữ cảnh community.

Tên collection chỉ duy nhất trong một community ("Khóa luận tốt nghiệp" có ở nhiều khoa),
nên bản có ngữ cảnh gắn thêm community và full_context = "<community> > <collection>".
"""
from __future__ import annotations

import logging

from ingest_core.clients.dspace import DSpaceClient, DSpaceSession
from ingest_core.domain.models import Collection
from ingest_core.errors import IngestError

logger = logging.getLogger(__name__)


def _first_metadata_value(col: dict, key: str) -> str | None:
    meta = col.get("metadata")
    if isinstance(meta, dict):
        values = meta.get(key) or []
        if values and isinstance(values[0], dict):
            return values[0].get("value")
    return None


def _description(col: dict) -> str:
    return (
        col.get("introductoryText")
        or col.get("shortDescription")
        or _first_metadata_value(col, "dc.description")
        or _first_metadata_value(col, "dc.description.abstract")
        or ""
    )


def _subjects(col: dict) -> list:
    meta = col.get("metadata")
    if isinstance(meta, dict):
        return list(meta.get("dc.subject") or [])
    return []


def normalize_collection(col: dict, community: dict | None = None) -> Collection:
    col_id = col.get("id") or col.get("uuid")
    data = {
        "id": str(col_id) if col_id is not None else "",
        "uuid": str(col.get("uuid") or col_id or "") or None,
        "name": col.get("name") or "",
        "handle": col.get("handle"),
        "description": _description(col),
        "type": col.get("type"),
        "subjects": _subjects(col),
        "archived_items_count": int(col.get("numberItems") or col.get("archivedItemsCount") or 0),
    }
    if community is not None:
        community_id = community.get("id") or community.get("uuid")
        community_name = community.get("name") or ""
        data.update(
            community_id=str(community_id) if community_id is not None else None,
            community_name=community_name,
            community_handle=community.get("handle"),
            display_name=f"{data['name']} ({community_name})",
            full_context=f"{community_name} > {data['name']}",
        )
    return Collection(**data)


async def list_collections_flat(client: DSpaceClient, session: DSpaceSession) -> list[Collection]:
    raw = await client.list_collections(session)
    collections = [normalize_collection(c) for c in raw if isinstance(c, dict)]
    logger.info("[DSPACE] Tìm thấy %s collections", len(collections))
    return collections


async def list_collections_with_context(client: DSpaceClient, session: DSpaceSession) -> list[Collection]:
    communities = await client.list_communities(session)
    logger.info("[DSPACE] Tìm thấy %s communities", len(communities))
    result: list[Collection] = []
    for community in communities:
        if not isinstance(community, dict):
            continue
        community_id = community.get("id") or community.get("uuid")
        try:
            cols = await client.list_community_collections(session, str(community_id))
        except IngestError as e:
            # Danh mục chỉ best-effort: bỏ qua community lỗi, không làm hỏng cả lần gọi
            logger.warning("[DSPACE] Bỏ qua community %s (%s): %s", community_id, community.get("name"), e.message)
            continue
        result.extend(normalize_collection(c, community) for c in cols if isinstance(c, dict))
    logger.info("[DSPACE] Tìm thấy %s collections kèm community", len(result))
    return result


def group_by_community(collections: list[Collection]) -> dict[str, list[Collection]]:
    grouped: dict[str, list[Collection]] = {}
    for col in collections:
        grouped.setdefault(col.community_name or "Unknown", []).append(col)
    return grouped
