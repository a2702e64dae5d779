import pytest

from ingest_core.config_loader import get_config
from ingest_core.domain.models import Collection, Document, MetadataField
from ingest_core.errors import ConfigurationError
from ingest_core.matching.heuristic import (
    HeuristicSuggester,
    MatchingRules,
    find_best_match,
    identify_department,
    rank_collections,
)


def _fields(**pairs):
    return [MetadataField(key=k.replace("_", "."), value=v) for k, v in pairs.items()]


def _col(cid, name, community, items=0):
    return Collection(
        id=cid,
        name=name,
        community_name=community,
        full_context=f"{community} > {name}",
        archived_items_count=items,
    )


THESIS_COLLECTIONS = [
    _col("du-lich", "Khóa luận tốt nghiệp", "Khoa Du lịch"),
    _col("cntt", "Khóa luận tốt nghiệp", "Khoa CNTT"),
]


def test_same_named_collections_are_split_by_department():
    fields = _fields(dc_title="Xây dựng ứng dụng quản lý thư viện", dc_type="Khóa luận", dc_department="CNTT")
    scores = {s.collection.id: s.score for s in rank_collections(fields, THESIS_COLLECTIONS)}
    assert scores["cntt"] >= 130
    assert scores["du-lich"] <= 50
    assert find_best_match(fields, THESIS_COLLECTIONS).collection.id == "cntt"


def test_department_outweighs_popularity():
    collections = [
        _col("gt-dl", "Giáo trình", "Khoa Du lịch", items=900),
        _col("gt-cntt", "Giáo trình", "Khoa Công nghệ thông tin", items=0),
    ]
    fields = _fields(dc_type="Giáo trình", dc_department="Công nghệ thông tin")
    assert find_best_match(fields, collections).collection.id == "gt-cntt"


def test_department_in_collection_name_scores_highest():
    collections = [
        _col("kl", "Khóa luận tốt nghiệp", "Khoa Công nghệ thông tin"),
        _col("kl-cntt", "Khóa luận Công nghệ thông tin", "Thư viện số"),
    ]
    ranked = rank_collections(_fields(dc_type="Khóa luận", dc_department="CNTT"), collections)
    assert [s.collection.id for s in ranked] == ["kl-cntt", "kl"]
    assert ranked[0].score == 150
    assert ranked[1].score == 130


def test_abbreviation_matches_whole_words_only():
    # "dt" (Điện tử) không được khớp bên trong từ khác
    assert identify_department(_fields(dc_title="Chuyên đề dtm nâng cao"), MatchingRules()) is None
    assert identify_department(_fields(dc_subject="xd, kết cấu"), MatchingRules()) == ("xd", "Xây dựng")


def test_subject_tokens_add_points():
    collections = [_col("a", "Tài liệu mạng máy tính", "Khoa Điện tử"), _col("b", "Tài liệu kế toán", "Khoa Kinh tế")]
    ranked = rank_collections(_fields(dc_type="Tài liệu", dc_subject="mạng máy tính; bảo mật"), collections)
    assert ranked[0].collection.id == "a"
    assert ranked[0].score == 60
    assert ranked[1].score == 40


def test_below_threshold_returns_nothing():
    fields = _fields(dc_title="Tuyển tập thơ")
    assert find_best_match(fields, [_col("x", "Giáo trình", "Khoa Kinh tế", items=500)]) is None


def test_ties_keep_directory_order():
    collections = [_col("first", "Giáo trình", "Khoa A"), _col("second", "Giáo trình", "Khoa B")]
    assert find_best_match(_fields(dc_type="Giáo trình"), collections).collection.id == "first"


def test_rules_from_yaml(tmp_path):
    path = tmp_path / "matching.yml"
    path.write_text(
        "heuristic:\n"
        "  threshold: 60\n"
        "  departments:\n"
        "    ktxd: Kinh tế xây dựng\n",
        encoding="utf-8",
    )
    rules = MatchingRules.load(str(path))
    assert rules.threshold == 60.0
    assert rules.departments == {"ktxd": "Kinh tế xây dựng"}
    assert find_best_match(_fields(dc_type="Giáo trình"), [_col("g", "Giáo trình", "Khoa A")], rules) is None


def test_missing_rules_file_uses_defaults(tmp_path):
    rules = MatchingRules.load(str(tmp_path / "nope.yml"))
    assert rules.threshold == 30.0
    assert "cntt" in rules.departments


@pytest.mark.asyncio
async def test_suggester_emits_suggestions_with_identifiers():
    docs = [
        Document(job_id="j1", folder_name="kl_01", title="A",
                 metadata=_fields(dc_type="Khóa luận", dc_department="CNTT")),
        Document(job_id="j2", folder_name="tho", title="B", metadata=_fields(dc_title="Thơ")),
    ]
    suggestions = await HeuristicSuggester().suggest(docs, THESIS_COLLECTIONS)
    assert len(suggestions) == 1
    s = suggestions[0]
    assert (s.job_id, s.document_index, s.folder_name, s.collection_id) == ("j1", 0, "kl_01", "cntt")
    assert s.community_name == "Khoa CNTT"
    assert s.confidence == 100
    assert "department" in s.reasoning


def test_broken_rules_file_is_a_configuration_error(tmp_path):
    path = tmp_path / "matching.yml"
    path.write_text("heuristic: [threshold: 60\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        MatchingRules.load(str(path))


def test_get_config_default_for_missing_or_null():
    cfg = {"heuristic": {"threshold": None, "departments": {"cntt": "Công nghệ thông tin"}}}
    assert get_config(cfg, ["heuristic", "departments", "cntt"]) == "Công nghệ thông tin"
    assert get_config(cfg, ["heuristic", "threshold"], default=30) == 30
    assert get_config(cfg, ["llm", "model"]) is None
