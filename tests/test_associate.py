from ingest_core.domain.models import Collection, Document, Suggestion
from ingest_core.matching.associate import associate_suggestions

DOCS = [
    Document(job_id="j1", folder_name="kl_01", title="Một"),
    Document(job_id="j2", folder_name="kl_02", title="Hai"),
    Document(job_id="j3", folder_name="kl_03", title="Ba"),
]
COLLECTIONS = [Collection(id="c1", name="Khóa luận tốt nghiệp", community_name="Khoa CNTT")]


def test_matches_by_job_id_regardless_of_order():
    suggestions = [
        Suggestion(job_id="j3", collection_id="c3"),
        Suggestion(job_id="j1", collection_id="c1"),
        Suggestion(job_id="j2", collection_id="c2"),
    ]
    mappings = associate_suggestions(DOCS, suggestions, COLLECTIONS)
    assert [(m.job_id, m.collection_id) for m in mappings] == [("j1", "c1"), ("j2", "c2"), ("j3", "c3")]
    assert mappings[0].community_name == "Khoa CNTT"
    assert mappings[0].collection_name == "Khóa luận tốt nghiệp"


def test_falls_back_to_folder_name_then_document_index():
    suggestions = [
        Suggestion(document_index=2, collection_id="c3"),
        Suggestion(folder_name="kl_01", collection_id="c1"),
    ]
    mappings = associate_suggestions(DOCS, suggestions)
    assert [m.collection_id for m in mappings] == ["c1", None, "c3"]
    assert mappings[1].status == "error"
    assert mappings[1].collection_name == "No suggestion returned"


def test_positional_fallback_only_for_anonymous_suggestions():
    suggestions = [Suggestion(collection_id="c1"), Suggestion(collection_id="c2")]
    mappings = associate_suggestions(DOCS, suggestions)
    assert [m.collection_id for m in mappings] == ["c1", "c2", None]
    assert [m.status for m in mappings] == ["ready", "ready", "error"]


def test_more_suggestions_than_documents_does_not_raise():
    suggestions = [Suggestion(job_id=f"j{i}", collection_id="c1") for i in range(1, 6)]
    mappings = associate_suggestions(DOCS, suggestions)
    assert len(mappings) == 3
    assert all(m.status == "ready" for m in mappings)


def test_suggestion_without_collection_is_an_error():
    mappings = associate_suggestions(DOCS[:1], [Suggestion(job_id="j1", collection_id=None)])
    assert mappings[0].status == "error"
