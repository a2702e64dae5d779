"""Nhận diện định dạng body trả về từ DSpace (JSON / XML / không rõ).

DSpace 6.x có thể bỏ qua header Accept và trả XML, nên body luôn được đọc dạng text
rồi phân loại một lần tại biên (sniff); phía sau chỉ làm việc với dict chuẩn hóa.
"""
from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Union

from ingest_core.errors import ParseError


@dataclass(frozen=True)
class JsonBody:
    value: Any
    format: str = "json"


@dataclass(frozen=True)
class XmlBody:
    root: ET.Element
    text: str
    format: str = "xml"


@dataclass(frozen=True)
class UnknownBody:
    text: str
    format: str = "unknown"


RawResponse = Union[JsonBody, XmlBody, UnknownBody]


def sniff(text: str) -> RawResponse:
    """Xét ký tự khác khoảng trắng đầu tiên: '<' -> XML, '{' hoặc '[' -> JSON."""
    trimmed = (text or "").strip()
    if trimmed.startswith("<"):
        try:
            return XmlBody(root=ET.fromstring(trimmed), text=text)
        except ET.ParseError as e:
            raise ParseError("Failed to parse XML response", raw=text, detail=str(e)) from e
    if trimmed.startswith("{") or trimmed.startswith("["):
        try:
            return JsonBody(value=json.loads(trimmed))
        except ValueError as e:
            raise ParseError("Failed to parse JSON response", raw=text, detail=str(e)) from e
    return UnknownBody(text=text)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def xml_field(root: ET.Element, name: str) -> str | None:
    """Giá trị text của phần tử con trực tiếp `name` (bỏ qua namespace); fallback tìm sâu."""
    for child in root:
        if _local(child.tag) == name:
            return (child.text or "").strip() or None
    for el in root.iter():
        if el is not root and _local(el.tag) == name:
            return (el.text or "").strip() or None
    return None


def _to_int(value: str | None) -> int | str | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def id_from_link(link: str | None) -> str | None:
    """'/rest/items/<uuid>' -> '<uuid>'."""
    if not link:
        return None
    tail = link.rstrip("/").rsplit("/", 1)[-1]
    return tail or None


def parse_item(body: RawResponse) -> dict:
    """Chuẩn hóa item DSpace về {itemId, id, uuid, handle, name, archived, type}.

    id có thể là số (DSpace 5), uuid (DSpace 6) hoặc chỉ có link / handle.
    """
    if isinstance(body, XmlBody):
        root = body.root
        raw_id = _to_int(xml_field(root, "id"))
        uuid = xml_field(root, "uuid")
        link = xml_field(root, "link")
        data = {
            "id": raw_id,
            "uuid": uuid,
            "handle": xml_field(root, "handle"),
            "name": xml_field(root, "name"),
            "archived": xml_field(root, "archived") or "false",
            "type": xml_field(root, "type") or "item",
            "link": link,
        }
    elif isinstance(body, JsonBody):
        value = body.value
        if isinstance(value, list):
            value = value[0] if value else {}
        if not isinstance(value, dict):
            raise ParseError("Unexpected JSON item shape", raw=json.dumps(value, ensure_ascii=False))
        data = {
            "id": value.get("id"),
            "uuid": value.get("uuid"),
            "handle": value.get("handle"),
            "name": value.get("name"),
            "archived": value.get("archived") or "false",
            "type": value.get("type") or "item",
            "link": value.get("link"),
        }
    else:
        raise ParseError("Unknown response format", raw=body.text)

    item_id = data["id"] or data["uuid"] or id_from_link(data["link"])
    data["itemId"] = str(item_id) if item_id is not None else None
    if data["id"] is None:
        data["id"] = item_id
    if data["uuid"] is None and isinstance(item_id, str) and "-" in item_id:
        data["uuid"] = item_id
    data["archived"] = str(data["archived"]).lower()
    data["_format"] = body.format
    return data


def parse_bitstream(body: RawResponse) -> dict:
    if isinstance(body, XmlBody):
        size = xml_field(body.root, "sizeBytes")
        return {
            "id": _to_int(xml_field(body.root, "id")) or xml_field(body.root, "uuid"),
            "name": xml_field(body.root, "name"),
            "sizeBytes": int(size) if size and size.isdigit() else None,
        }
    if isinstance(body, JsonBody) and isinstance(body.value, dict):
        v = body.value
        return {
            "id": v.get("id") or v.get("uuid"),
            "name": v.get("name"),
            "sizeBytes": v.get("sizeBytes"),
        }
    # DSpace đôi khi trả body rỗng khi upload thành công
    return {"message": "Success"}


def extract_list(value: Any, key: str) -> list:
    """Bare array | {key: [...]} | {_embedded: {key: [...]}} | object đơn -> list."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        if isinstance(value.get(key), list):
            return value[key]
        embedded = value.get("_embedded")
        if isinstance(embedded, dict) and isinstance(embedded.get(key), list):
            return embedded[key]
        return [value]
    return []
