"""
Tests for the inverted document index.
"""

import pytest

from rdf_docbase.storage.expressions import FilterQuery, parse_expression
from rdf_docbase.storage.indexing import (
    DocSet,
    DocumentIndex,
    EMPTY_DOCSET,
    IndexReadError,
    IndexStats,
    SortedPostings,
)


def make_doc(doc_id, subject="<s>", context="<g>", numeric=None):
    doc = {
        "id": doc_id,
        "context": context,
        "subject": subject,
        "predicate": "<p>",
        "object": f'"{doc_id}"',
        "lang": "__nolang__",
    }
    if numeric is not None:
        doc["numeric_object"] = numeric
    return doc


@pytest.fixture
def index():
    """Index with five documents over two subjects and two graphs."""
    index = DocumentIndex()
    index.write(make_doc("d1", subject="<a>", numeric=1.0))
    index.write(make_doc("d2", subject="<a>", numeric=2.0))
    index.write(make_doc("d3", subject="<b>", numeric=3.0))
    index.write(make_doc("d4", subject="<b>", context="<h>", numeric=4.0))
    index.write(make_doc("d5", subject="<c>"))
    return index


class TestSortedPostings:
    """Tests for SortedPostings."""

    def test_lookup(self):
        postings = SortedPostings("subject")
        postings.add("<a>", "d1")
        postings.add("<a>", "d2")
        postings.add("<b>", "d3")
        assert postings.lookup("<a>") == {"d1", "d2"}
        assert postings.lookup("<z>") == set()

    def test_range_lookup(self):
        """Range lookups are inclusive; None leaves a side open."""
        postings = SortedPostings("numeric_object")
        for i, value in enumerate([5.0, 1.0, 3.0, 2.0, 4.0]):
            postings.add(value, f"d{i}")
        assert postings.range_lookup(2.0, 4.0) == {"d2", "d3", "d4"}
        assert postings.range_lookup(None, 1.0) == {"d1"}
        assert postings.range_lookup(4.5, None) == {"d0"}
        assert len(postings.range_lookup()) == 5

    def test_keys_stay_sorted(self):
        postings = SortedPostings("numeric_object")
        for value in [3.0, 1.0, 2.0]:
            postings.add(value, "d")
        assert postings.keys() == [1.0, 2.0, 3.0]

    def test_duplicate_add_counts_once(self):
        postings = SortedPostings("subject")
        postings.add("<a>", "d1")
        postings.add("<a>", "d1")
        assert postings.stats() == IndexStats("subject", num_keys=1, num_entries=1)

    def test_remove(self):
        """Removing the last document of a key drops the key."""
        postings = SortedPostings("subject")
        postings.add("<a>", "d1")
        postings.add("<a>", "d2")
        postings.remove("<a>", "d1")
        assert postings.lookup("<a>") == {"d2"}
        postings.remove("<a>", "d2")
        assert postings.keys() == []
        postings.remove("<a>", "d2")  # Missing entries are ignored
        assert postings.stats().num_entries == 0


class TestDocSet:
    """Tests for DocSet."""

    def test_sorted_iteration(self):
        docs = DocSet(["c", "a", "b"])
        assert list(docs) == ["a", "b", "c"]
        assert docs.cardinality == 3

    def test_intersection(self):
        assert DocSet(["a", "b"]).intersection(DocSet(["b", "c"])) == DocSet(["b"])

    def test_empty(self):
        assert not EMPTY_DOCSET
        assert EMPTY_DOCSET.cardinality == 0


class TestEvaluate:
    """Tests for query evaluation."""

    def test_match_all(self, index):
        with index.reader() as reader:
            assert reader.evaluate(FilterQuery()).cardinality == 5

    def test_conjunction(self, index):
        query = FilterQuery().term("subject", "<b>").term("context", "<g>")
        with index.reader() as reader:
            assert reader.evaluate(query).ids == {"d3"}

    def test_range(self, index):
        query = FilterQuery().range("numeric_object", 2, 3)
        with index.reader() as reader:
            assert reader.evaluate(query).ids == {"d2", "d3"}

    def test_values_are_coerced(self, index):
        """Clause values go through the field schema."""
        query = FilterQuery().term("numeric_object", "1")
        with index.reader() as reader:
            assert reader.evaluate(query).ids == {"d1"}

    def test_within(self, index):
        """Evaluation can be restricted to a given set."""
        with index.reader() as reader:
            within = DocSet(["d1", "d3"])
            assert reader.evaluate(FilterQuery().term("subject", "<a>"), within).ids == {"d1"}
            assert reader.evaluate(FilterQuery(), within) == within

    def test_within_applied_after_clauses(self, index):
        """Matches outside the restricting set are dropped; the set itself is not changed."""
        with index.reader() as reader:
            within = DocSet(["d2", "d3", "d4"])
            result = reader.evaluate(FilterQuery().term("context", "<g>"), within)
            assert result.ids == {"d2", "d3"}
            assert within.ids == {"d2", "d3", "d4"}
            assert reader.evaluate(FilterQuery().term("subject", "<c>"), within) == EMPTY_DOCSET

    def test_unknown_field(self, index):
        with index.reader() as reader:
            with pytest.raises(ValueError):
                reader.evaluate(FilterQuery().term("colour", "red"))


class TestReader:
    """Tests for IndexReader."""

    def test_read_fields(self, index):
        with index.reader() as reader:
            fields = reader.read_fields("d1")
        assert fields["subject"] == "<a>"
        assert fields["numeric_object"] == 1.0

    def test_missing_document(self, index):
        with index.reader() as reader:
            with pytest.raises(IndexReadError):
                reader.read_fields("nope")

    def test_closed_reader(self, index):
        reader = index.reader()
        reader.close()
        assert reader.closed
        with pytest.raises(IndexReadError):
            reader.evaluate(FilterQuery())
        with pytest.raises(IndexReadError):
            reader.read_fields("d1")

    def test_page(self, index):
        with index.reader() as reader:
            docs = reader.evaluate(FilterQuery())
            assert reader.page(docs, rows=2) == ["d1", "d2"]
            assert reader.page(docs, after="d2", rows=2) == ["d3", "d4"]
            assert reader.page(docs, after="d4", rows=2) == ["d5"]
            assert reader.page(docs, after="d5", rows=2) == []

    def test_search_cursor(self, index):
        """Cursor paging visits every match exactly once."""
        seen = []
        with index.reader() as reader:
            mark = None
            while True:
                ids, mark = reader.search(FilterQuery().term("context", "<g>"), rows=2, cursor_mark=mark)
                seen.extend(ids)
                if mark is None:
                    break
        assert seen == ["d1", "d2", "d3", "d5"]

    def test_snapshot_isolation(self, index):
        """Writes after a reader was opened are not visible to it."""
        reader = index.reader()
        index.write(make_doc("d6"))
        index.delete(FilterQuery().term("subject", "<a>"))

        assert len(reader) == 5
        assert reader.evaluate(FilterQuery().term("subject", "<a>")).ids == {"d1", "d2"}
        assert reader.read_fields("d1")["subject"] == "<a>"

        with index.reader() as fresh:
            assert len(fresh) == 4
            assert fresh.evaluate(FilterQuery().term("subject", "<a>")) == EMPTY_DOCSET


class TestDocumentIndex:
    """Tests for DocumentIndex writes."""

    def test_write_requires_id(self):
        with pytest.raises(ValueError):
            DocumentIndex().write({"subject": "<a>"})

    def test_write_rejects_bad_values(self):
        with pytest.raises(ValueError):
            DocumentIndex().write({"id": "d1", "numeric_object": "lots"})

    def test_rewrite_replaces(self, index):
        """Writing an existing id replaces the old document."""
        index.write(make_doc("d1", subject="<z>"))
        assert len(index) == 5
        assert index.count('subject:"<z>"') == 1
        assert index.count('subject:"<a>"') == 1

    def test_delete_by_expression(self, index):
        assert index.delete_by_expression('subject:"<b>" AND context:"<g>"') == 1
        assert len(index) == 4
        assert index.delete_by_expression('subject:"<nothing>"') == 0

    def test_count(self, index):
        assert index.count("*:*") == 5
        assert index.count('context:"<h>"') == 1
        assert index.count("numeric_object:[2 TO *]") == 3

    def test_distinct_values(self, index):
        assert index.distinct_values("context") == ["<g>", "<h>"]
        with pytest.raises(ValueError):
            index.distinct_values("colour")

    def test_stats(self, index):
        stats = index.stats()
        assert stats["subject"].num_keys == 3
        assert stats["subject"].num_entries == 5

    def test_parsed_expression_equals_query(self):
        assert parse_expression('subject:"<a>"') == FilterQuery().term("subject", "<a>")
