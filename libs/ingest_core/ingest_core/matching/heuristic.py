"""
Bộ gợi ý collection cục bộ bằng chấm điểm (không gọi mạng, kết quả xác định).

Điểm của một collection = tổng các tín hiệu độc lập:
  1. Loại tài liệu (dc.type) khớp tên collection: 40-50, nhóm đầu tiên khớp thì dừng.
  2. Khoa/ngành nhận ra từ metadata (viết tắt hoặc tên đầy đủ): 100 nếu tên khoa nằm trong
     tên collection, 90 nếu viết tắt nằm trong tên collection, 80 nếu nằm trong tên community.
     Chỉ lấy tín hiệu cao nhất. Đây là thứ phân biệt các collection trùng tên ở các khoa khác nhau.
  3. Từ khóa dc.subject: 20 mỗi từ có trong tên collection, 15 mỗi từ có trong tên community.
  4. Độ phổ biến: min(số item / 100, 10), chỉ để phá thế hòa.
Chỉ trả collection tốt nhất khi điểm > ngưỡng (30).
"""
from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Sequence

from ingest_core.config_loader import get_config, load_matching_config
from ingest_core.domain.metadata import first_value
from ingest_core.domain.models import Collection, Document, MetadataField, Suggestion
from ingest_core.matching.base import CollectionSuggester

logger = logging.getLogger(__name__)

DEFAULT_TYPE_KEYWORDS: list[tuple[tuple[str, ...], int]] = [
    (("khóa luận", "khoá luận"), 50),
    (("đồ án",), 50),
    (("giáo trình",), 50),
    (("tài liệu",), 40),
    (("luận văn",), 50),
    (("bài giảng",), 50),
]

DEFAULT_DEPARTMENTS: dict[str, str] = {
    "cntt": "Công nghệ thông tin",
    "kt": "Kinh tế",
    "qtkd": "Quản trị kinh doanh",
    "qt": "Quản trị",
    "xd": "Xây dựng",
    "mt": "Môi trường",
    "nn": "Ngoại ngữ",
    "dl": "Du lịch",
    "dt": "Điện tử",
    "ck": "Cơ khí",
}

_SUBJECT_SPLIT = re.compile(r"[,;]+")
_WORD = re.compile(r"\w+")


def normalize(text: str | None) -> str:
    return unicodedata.normalize("NFC", text or "").casefold().strip()


def _tokens(text: str) -> set[str]:
    return set(_WORD.findall(text))


@dataclass
class MatchingRules:
    type_keywords: list[tuple[tuple[str, ...], int]] = field(default_factory=lambda: list(DEFAULT_TYPE_KEYWORDS))
    departments: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_DEPARTMENTS))
    dept_in_collection: int = 100
    abbr_in_collection: int = 90
    dept_in_community: int = 80
    subject_in_collection: int = 20
    subject_in_community: int = 15
    popularity_divisor: float = 100.0
    popularity_cap: float = 10.0
    threshold: float = 30.0

    @classmethod
    def from_config(cls, config: dict) -> "MatchingRules":
        rules = cls()
        section = get_config(config, ["heuristic"], default={})
        types = section.get("type_keywords")
        if types:
            rules.type_keywords = [(tuple(t["keywords"]), int(t["score"])) for t in types]
        depts = section.get("departments")
        if depts:
            rules.departments = {str(k).lower(): str(v) for k, v in depts.items()}
        for name in (
            "dept_in_collection", "abbr_in_collection", "dept_in_community",
            "subject_in_collection", "subject_in_community",
            "popularity_divisor", "popularity_cap", "threshold",
        ):
            if section.get(name) is not None:
                setattr(rules, name, type(getattr(rules, name))(section[name]))
        return rules

    @classmethod
    def load(cls, path: str | None = None) -> "MatchingRules":
        return cls.from_config(load_matching_config(path))


@dataclass
class ScoredCollection:
    collection: Collection
    score: float
    reasons: list[str] = field(default_factory=list)


@dataclass
class _Signals:
    doc_type: str
    subjects: list[str]
    department: tuple[str, str] | None  # (viết tắt, tên đầy đủ)


def _all_values(fields: Sequence[MetadataField], key: str) -> list[str]:
    return [f.value for f in fields if f.key == key and f.value]


def identify_department(fields: Sequence[MetadataField], rules: MatchingRules) -> tuple[str, str] | None:
    """Tìm khoa: viết tắt (nguyên từ) hoặc tên đầy đủ trong dc.department; viết tắt trong title/subject."""
    department = normalize(" ".join(_all_values(fields, "dc.department")))
    title = normalize(first_value(fields, "dc.title"))
    subject = normalize(" ".join(_all_values(fields, "dc.subject")))
    dept_tokens, title_tokens, subject_tokens = _tokens(department), _tokens(title), _tokens(subject)
    for abbr, full_name in rules.departments.items():
        abbr_n = normalize(abbr)
        if (
            abbr_n in dept_tokens
            or (department and normalize(full_name) in department)
            or abbr_n in title_tokens
            or abbr_n in subject_tokens
        ):
            return abbr_n, full_name
    return None


def _signals(fields: Sequence[MetadataField], rules: MatchingRules) -> _Signals:
    subjects: list[str] = []
    for value in _all_values(fields, "dc.subject"):
        subjects.extend(w.strip() for w in _SUBJECT_SPLIT.split(normalize(value)) if w.strip())
    return _Signals(
        doc_type=normalize(" ".join(_all_values(fields, "dc.type"))),
        subjects=subjects,
        department=identify_department(fields, rules),
    )


def _score(col: Collection, sig: _Signals, rules: MatchingRules) -> ScoredCollection:
    col_name = normalize(col.name)
    community = normalize(col.community_name)
    score = 0.0
    reasons: list[str] = []

    if sig.doc_type:
        for keywords, points in rules.type_keywords:
            kws = [normalize(k) for k in keywords]
            if any(k in sig.doc_type for k in kws) and any(k in col_name for k in kws):
                score += points
                reasons.append(f"type '{keywords[0]}'")
                break

    if sig.department:
        abbr, full_name = sig.department
        full_n = normalize(full_name)
        candidates = []
        if full_n in col_name:
            candidates.append((rules.dept_in_collection, "collection"))
        if abbr in _tokens(col_name):
            candidates.append((rules.abbr_in_collection, "collection"))
        if full_n in community or abbr in _tokens(community):
            candidates.append((rules.dept_in_community, "community"))
        if candidates:
            points, where = max(candidates)
            score += points
            reasons.append(f"department '{full_name}' in {where}")

    for word in sig.subjects:
        if word in col_name:
            score += rules.subject_in_collection
            reasons.append(f"subject '{word}'")
        if community and word in community:
            score += rules.subject_in_community
            reasons.append(f"subject '{word}' in community")

    if col.archived_items_count > 0:
        score += min(col.archived_items_count / rules.popularity_divisor, rules.popularity_cap)

    return ScoredCollection(collection=col, score=score, reasons=reasons)


def rank_collections(
    fields: Sequence[MetadataField],
    collections: Sequence[Collection],
    rules: MatchingRules | None = None,
) -> list[ScoredCollection]:
    """Chấm điểm mọi collection, sắp giảm dần (giữ thứ tự gốc khi bằng điểm)."""
    rules = rules or MatchingRules()
    sig = _signals(fields, rules)
    scored = [_score(c, sig, rules) for c in collections]
    return sorted(scored, key=lambda s: -s.score)


def find_best_match(
    fields: Sequence[MetadataField],
    collections: Sequence[Collection],
    rules: MatchingRules | None = None,
) -> ScoredCollection | None:
    rules = rules or MatchingRules()
    ranked = rank_collections(fields, collections, rules)
    if ranked and ranked[0].score > rules.threshold:
        return ranked[0]
    return None


class HeuristicSuggester(CollectionSuggester):
    name = "heuristic"

    def __init__(self, rules: MatchingRules | None = None):
        self.rules = rules or MatchingRules()

    async def suggest(
        self,
        documents: Sequence[Document],
        collections: Sequence[Collection],
    ) -> list[Suggestion]:
        suggestions = []
        for idx, doc in enumerate(documents):
            best = find_best_match(doc.metadata, collections, self.rules)
            if best is None:
                logger.info("[MATCH] Không có collection đủ điểm cho %s", doc.folder_name or doc.job_id)
                continue
            col = best.collection
            suggestions.append(Suggestion(
                document_index=idx,
                job_id=doc.job_id,
                folder_name=doc.folder_name,
                collection_id=col.id,
                collection_name=col.name,
                community_name=col.community_name,
                confidence=min(round(best.score), 100),
                reasoning="; ".join(best.reasons) or "popularity",
            ))
        logger.info("[MATCH] Heuristic: %s/%s tài liệu có gợi ý", len(suggestions), len(documents))
        return suggestions
