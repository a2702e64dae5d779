"""Chỉnh sửa metadata Dublin Core của một job trước khi đẩy lên DSpace.

Bản ghi là một dãy (key, value, language) có thứ tự, key có thể trùng (nhiều dc.subject),
nên mọi thao tác đều theo chỉ số, không theo key. Lưu = PUT thay thế toàn bộ.
"""
from __future__ import annotations

import logging
from typing import Iterable

from ingest_core.domain.models import MetadataField
from ingest_core.errors import ValidationError

logger = logging.getLogger(__name__)

KEY_LABELS = {
    "dc.title": "Title",
    "dc.title.alternative": "Alternative Title",
    "dc.contributor.author": "Author",
    "dc.contributor.advisor": "Advisor",
    "dc.contributor.editor": "Editor",
    "dc.publisher": "Publisher",
    "dc.date.issued": "Year",
    "dc.subject": "Subjects",
    "dc.description.abstract": "Abstract",
    "dc.type": "Type",
    "dc.language.iso": "Language",
    "dc.identifier.isbn": "ISBN",
    "dc.format.extent": "Pages",
    "dc.size": "Size",
    "dc.description.degree": "Degree",
    "dc.department": "Department",
    "dc.format.mimetype": "MIME Type",
}

READONLY_KEYS = frozenset({"dc.format.mimetype"})

SECTIONS: list[tuple[str, tuple[str, ...]]] = [
    ("Bibliographic", (
        "dc.title", "dc.title.alternative", "dc.contributor.author",
        "dc.contributor.advisor", "dc.contributor.editor", "dc.publisher",
        "dc.date.issued", "dc.identifier.isbn",
    )),
    ("Content", (
        "dc.subject", "dc.description.abstract", "dc.type",
        "dc.language.iso", "dc.description.degree", "dc.department",
    )),
    ("Technical", ("dc.format.extent", "dc.size", "dc.format.mimetype")),
]


def first_value(fields: Iterable[MetadataField], key: str) -> str | None:
    for f in fields:
        if f.key == key and f.value:
            return f.value
    return None


def set_department(fields: list[MetadataField], name: str) -> list[MetadataField]:
    """Gán dc.department = tên collection đã chọn (thêm mới nếu chưa có). Trả về list mới."""
    updated = [f.model_copy() for f in fields]
    for f in updated:
        if f.key == "dc.department":
            f.value = name
            return updated
    updated.append(MetadataField(key="dc.department", value=name, language="en_US"))
    return updated


class MetadataEditor:
    def __init__(self, fields: Iterable[MetadataField], readonly_keys: frozenset[str] = READONLY_KEYS):
        self._original = [MetadataField.model_validate(f) for f in fields]
        self._fields = [f.model_copy() for f in self._original]
        self.readonly_keys = readonly_keys
        self.dirty = False

    @property
    def fields(self) -> list[MetadataField]:
        return [f.model_copy() for f in self._fields]

    @staticmethod
    def label(key: str) -> str:
        return KEY_LABELS.get(key, key)

    def is_editable(self, index: int) -> bool:
        return self._fields[index].key not in self.readonly_keys

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._fields):
            raise ValidationError(f"Field index out of range: {index}")

    def set_value(self, index: int, value: str) -> None:
        self._check_index(index)
        field = self._fields[index]
        if field.key in self.readonly_keys:
            raise ValidationError(f"Field {field.key} is read-only")
        if field.value != value:
            field.value = value
            self.dirty = True

    def add_field(self, key: str, value: str = "", language: str | None = None) -> int:
        if not key:
            raise ValidationError("Field key is required")
        if key in self.readonly_keys:
            raise ValidationError(f"Field {key} is read-only")
        self._fields.append(MetadataField(key=key, value=value, language=language))
        self.dirty = True
        return len(self._fields) - 1

    def remove_field(self, index: int) -> None:
        self._check_index(index)
        if self._fields[index].key in self.readonly_keys:
            raise ValidationError(f"Field {self._fields[index].key} is read-only")
        del self._fields[index]
        self.dirty = True

    def reset(self) -> None:
        self._fields = [f.model_copy() for f in self._original]
        self.dirty = False

    def groups(self) -> list[tuple[str, list[tuple[int, MetadataField]]]]:
        """Nhóm field để hiển thị; giữ chỉ số gốc để sửa lại đúng vị trí trong dãy."""
        section_of = {key: label for label, keys in SECTIONS for key in keys}
        grouped: dict[str, list[tuple[int, MetadataField]]] = {label: [] for label, _ in SECTIONS}
        grouped["Other"] = []
        for idx, f in enumerate(self._fields):
            grouped[section_of.get(f.key, "Other")].append((idx, f))
        return [(label, items) for label, items in grouped.items() if items]

    async def save(self, client, job_id: str) -> list[MetadataField]:
        """Một lần put_metadata (thay toàn bộ); xóa cờ dirty khi thành công."""
        fields = self.fields
        await client.put_metadata(job_id, fields)
        self._original = [f.model_copy() for f in fields]
        self.dirty = False
        logger.info("[META] Đã lưu metadata: job_id=%s, số field=%s", job_id, len(fields))
        return fields
