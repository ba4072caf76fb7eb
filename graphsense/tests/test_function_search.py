import asyncio

import numpy as np

from graphsense.search.function_search import FunctionSearch
from graphsense.search.rerank_service import SummaryReranker, normalize_scores, tokenize
from graphsense.types import FunctionRecord


def _record(function_id, name, summary):
    return FunctionRecord(id=function_id, name=name, path=f"/src/{name}.ts", summary=summary)


class TestRerankService:
    """Test BM25 reranking of summaries."""

    def test_tokenize_splits_camel_case(self):
        assert tokenize("parseISODate handles a camelCase input!") == [
            "parse", "isodate", "handles", "camel", "case", "input"
        ]

    def test_normalize_scores(self):
        assert np.allclose(normalize_scores([2.0, 4.0, 3.0]), [0.0, 1.0, 0.5])
        assert np.allclose(normalize_scores([7.0, 7.0]), [0.5, 0.5])
        assert normalize_scores([]).size == 0

    def test_lexical_match_wins_on_equal_vector_scores(self):
        reranker = SummaryReranker(vector_weight=0.5, bm25_weight=0.5)
        documents = [
            "Renders the navigation bar.",
            "Sends an email notification to the user.",
            "Parses an ISO date string into a Date object.",
        ]

        order = reranker.rerank("parse date string", documents, [0.8, 0.8, 0.8])

        assert order[0] == 2

    def test_ties_keep_vector_order(self):
        reranker = SummaryReranker(vector_weight=0.0, bm25_weight=1.0)

        assert reranker.rerank("zzz", ["alpha", "beta", "gamma"]) == [0, 1, 2]

    def test_empty_documents(self):
        assert SummaryReranker().rerank("query", []) == []


class TestFunctionSearch:
    """Test search over the function record store."""

    def _store(self, fake_record_store):
        for record in (
            _record("1", "renderNav", "Renders the navigation bar."),
            _record("2", "sendEmail", "Sends an email notification to the user."),
            _record("3", "parseDate", "Parses an ISO date string into a Date object."),
        ):
            fake_record_store.records[record.id] = record
        return fake_record_store

    def test_results_in_store_order_without_rerank(self, fake_embedding, fake_record_store):
        search = FunctionSearch(fake_embedding, self._store(fake_record_store), rerank_enabled=False)

        results = asyncio.run(search.search("parse date", top_k=3))

        assert [r.name for r in results] == ["renderNav", "sendEmail", "parseDate"]
        assert [r.rank for r in results] == [1, 2, 3]
        assert fake_embedding.embedded == ["parse date"]

    def test_rerank_promotes_matching_summary(self, fake_embedding, fake_record_store):
        reranker = SummaryReranker(vector_weight=0.2, bm25_weight=0.8)
        search = FunctionSearch(fake_embedding, self._store(fake_record_store),
                                reranker=reranker, rerank_enabled=True)

        results = asyncio.run(search.search("parse an ISO date string", top_k=3))

        assert results[0].name == "parseDate"
        assert results[0].rank == 1
        assert results[0].summary.startswith("Parses")

    def test_top_k_limits_results(self, fake_embedding, fake_record_store):
        search = FunctionSearch(fake_embedding, self._store(fake_record_store), rerank_enabled=False)

        assert len(asyncio.run(search.search("anything", top_k=2))) == 2

    def test_empty_store(self, fake_embedding, fake_record_store):
        search = FunctionSearch(fake_embedding, fake_record_store)

        assert asyncio.run(search.search("anything")) == []
