from __future__ import annotations

from pinecone_mcp.formatting import (
    chunk_order,
    format_row,
    format_rows,
    paper_number,
    reassemble_by_document,
)
from pinecone_mcp.models import MetadataValue, SearchResult
from pinecone_mcp.urls import build_default_registry


def _result(
    result_id: str,
    content: str = "",
    score: float = 0.5,
    *,
    reranked: bool = False,
    **metadata: MetadataValue,
) -> SearchResult:
    return SearchResult(
        id=result_id, content=content, score=score, metadata=metadata, reranked=reranked
    )


class TestPaperNumber:
    def test_document_number(self):
        assert paper_number({"document_number": "P2300R7", "filename": "x.md"}) == "P2300R7"

    def test_filename_without_md(self):
        assert paper_number({"filename": "p1234r0.MD"}) == "P1234R0"

    def test_only_trailing_md_removed(self):
        assert paper_number({"filename": "n4.md.txt"}) == "N4.MD.TXT"

    def test_none(self):
        assert paper_number({"title": "x"}) is None
        assert paper_number({"document_number": ""}) is None


class TestFormatRow:
    def test_basic_fields(self):
        row = format_row(
            _result("a", "body", 0.123456, reranked=True, title="T", author="A", url="https://u")
        )
        assert row["title"] == "T"
        assert row["author"] == "A"
        assert row["url"] == "https://u"
        assert row["content"] == "body"
        assert row["score"] == 0.1235
        assert row["reranked"] is True
        assert row["metadata"] == {"title": "T", "author": "A", "url": "https://u"}

    def test_missing_fields_are_empty_strings(self):
        row = format_row(_result("a"))
        assert row["title"] == ""
        assert row["author"] == ""
        assert row["url"] == ""
        assert row["paper_number"] is None

    def test_content_truncated(self):
        row = format_row(_result("a", "x" * 50), content_max_length=10)
        assert row["content"] == "x" * 10

    def test_default_truncation(self):
        assert len(format_row(_result("a", "x" * 5000))["content"]) == 2000

    def test_url_enrichment(self):
        row = format_row(
            _result("a", doc_id="abc"),
            "mailing",
            enrich_urls=True,
            registry=build_default_registry(),
        )
        assert row["url"] == "https://lists.boost.org/archives/list/abc/"
        assert row["metadata"]["url"] == row["url"]

    def test_blank_url_is_enriched(self):
        row = format_row(_result("a", doc_id="abc", url="  "), "mailing", enrich_urls=True)
        assert row["url"].endswith("/abc/")

    def test_existing_url_kept(self):
        row = format_row(_result("a", doc_id="abc", url="https://x"), "mailing", enrich_urls=True)
        assert row["url"] == "https://x"

    def test_no_enrichment_by_default(self):
        row = format_row(_result("a", doc_id="abc"), "mailing")
        assert row["url"] == ""

    def test_source_metadata_not_mutated(self):
        result = _result("a", doc_id="abc")
        format_row(result, "mailing", enrich_urls=True)
        assert "url" not in result.metadata

    def test_format_rows_preserves_order(self):
        rows = format_rows([_result("a", title="1"), _result("b", title="2")])
        assert [r["title"] for r in rows] == ["1", "2"]


class TestChunkOrder:
    def test_number(self):
        assert chunk_order({"chunk_index": 3}) == 3

    def test_digit_string(self):
        assert chunk_order({"index": "12"}) == 12

    def test_key_precedence(self):
        assert chunk_order({"loc": 9, "chunk_index_0": 2}) == 2

    def test_boolean_ignored(self):
        assert chunk_order({"chunk_index": True}) is None

    def test_non_digit_string_ignored(self):
        assert chunk_order({"chunk_index": "1a", "loc": 4}) == 4

    def test_missing(self):
        assert chunk_order({}) is None

    def test_negative_is_unordered(self):
        assert chunk_order({"chunk_index": -1, "loc": 4}) is None


class TestReassembleByDocument:
    def test_two_documents_in_chunk_order(self):
        results = [
            _result("c1", "second", 0.7, document_number="P1234", chunk_index=1),
            _result("c0", "first", 0.9, document_number="P1234", chunk_index=0),
            _result("c2", "third", 0.5, document_number="P1234", chunk_index=2),
            _result("d0", "other", 0.6, document_number="P5678"),
        ]

        docs = reassemble_by_document(results)

        assert [d.document_id for d in docs] == ["P1234", "P5678"]
        p1234, p5678 = docs
        assert p1234.merged_content == "first\n\nsecond\n\nthird"
        assert p1234.chunk_count == 3
        assert p1234.best_score == 0.9
        assert p1234.metadata["chunk_index"] == 0
        assert p5678.chunk_count == 1

    def test_partition(self):
        results = [
            _result("a", document_number="D1"),
            _result("b", url="https://u"),
            _result("c", doc_id="x"),
            _result("d"),
            _result("e", document_number="D1"),
        ]
        docs = reassemble_by_document(results)
        assert sum(d.chunk_count for d in docs) == len(results)
        assert [d.document_id for d in docs] == ["D1", "https://u", "x", "d"]

    def test_unordered_chunks_keep_retrieval_order_after_ordered(self):
        results = [
            _result("u1", "u1", document_number="D"),
            _result("o1", "o1", document_number="D", chunk_index=5),
            _result("u2", "u2", document_number="D"),
            _result("o0", "o0", document_number="D", chunk_index=2),
        ]
        (doc,) = reassemble_by_document(results, separator="|")
        assert doc.merged_content == "o0|o1|u1|u2"

    def test_negative_index_sorts_after_ordered(self):
        results = [
            _result("n", "first", document_number="D", chunk_index=-1),
            _result("z", "zero", document_number="D", chunk_index=0),
        ]
        (doc,) = reassemble_by_document(results, separator="|")
        assert doc.merged_content == "zero|first"

    def test_max_chunks(self):
        results = [
            _result(f"c{i}", f"t{i}", document_number="D", chunk_index=i) for i in range(5)
        ]
        (doc,) = reassemble_by_document(results, max_chunks_per_document=2)
        assert doc.chunk_count == 2
        assert doc.merged_content == "t0\n\nt1"

    def test_blank_content_skipped(self):
        results = [
            _result("a", "  one  ", document_number="D", chunk_index=0),
            _result("b", "   ", document_number="D", chunk_index=1),
            _result("c", "two", document_number="D", chunk_index=2),
        ]
        (doc,) = reassemble_by_document(results)
        assert doc.merged_content == "one\n\ntwo"
        assert doc.chunk_count == 3

    def test_best_score_rounded(self):
        (doc,) = reassemble_by_document([_result("a", score=0.123456, document_number="D")])
        assert doc.best_score == 0.1235

    def test_empty(self):
        assert reassemble_by_document([]) == []
