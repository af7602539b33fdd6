"""Tests for the BM25 keyword index."""

import math

import pytest

from hybridrag import MemoryKeywordIndex


async def build(chunks: dict[str, str], **kwargs) -> MemoryKeywordIndex:
    index = MemoryKeywordIndex(**kwargs)
    for chunk_id, content in chunks.items():
        await index.upsert(chunk_id, content, document_id=chunk_id.split("_")[0])
    return index


CORPUS = {
    "a_0": "python is a programming language",
    "b_0": "java is a programming language too",
    "c_0": "snakes include the python and the cobra",
    "d_0": "bread needs flour and water",
}


class TestMemoryKeywordIndex:
    """Tests for BM25 scoring and index maintenance."""

    @pytest.mark.asyncio
    async def test_search_ranks_matches(self):
        """Test chunks containing the query terms are returned best first."""
        index = await build(CORPUS)

        results = await index.search("python programming", top_k=5)

        ids = [r.chunk_id for r in results]
        assert ids[0] == "a_0"
        assert set(ids) == {"a_0", "b_0", "c_0"}
        assert all(r.score > 0 for r in results)
        assert results[0].document_id == "a"
        assert results[0].content == CORPUS["a_0"]

    @pytest.mark.asyncio
    async def test_zero_score_chunks_excluded(self):
        """Test chunks sharing no terms with the query are not returned."""
        index = await build(CORPUS)

        results = await index.search("flour", top_k=10)

        assert [r.chunk_id for r in results] == ["d_0"]

    @pytest.mark.asyncio
    async def test_top_k_bound(self):
        """Test at most top_k results come back."""
        index = await build(CORPUS)

        assert len(await index.search("is a language python", top_k=2)) == 2

    @pytest.mark.asyncio
    async def test_score_formula(self):
        """Test a single-term score against the BM25 formula."""
        index = await build({"x_0": "apple apple banana", "y_0": "cherry"})

        results = await index.search("apple")

        n, df, tf = 2, 1, 2
        doc_len, avg_len = 3, 2.0
        idf = math.log(1 + (n - df + 0.5) / (df + 0.5))
        expected = idf * tf * 2.2 / (tf + 1.2 * (1 - 0.75 + 0.75 * doc_len / avg_len))
        assert results[0].score == pytest.approx(expected)
        assert index.score("apple", "x_0") == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_repeated_query_terms_count_once(self):
        """Test duplicate query terms do not inflate the score."""
        index = await build(CORPUS)

        once = await index.search("python")
        twice = await index.search("python python PYTHON")

        assert [(r.chunk_id, r.score) for r in once] == [(r.chunk_id, r.score) for r in twice]

    @pytest.mark.asyncio
    async def test_monotonic_in_term_frequency(self):
        """Test more occurrences of a query term never lower the score."""
        others = {"o_0": "unrelated words here", "o_1": "term appears once here"}
        scores = []
        for repeats in range(1, 5):
            chunk = " ".join(["term"] * repeats + ["filler", "text"])
            index = await build({**others, "t_0": chunk})
            scores.append(index.score("term", "t_0"))

        assert scores == sorted(scores)
        assert scores[-1] > scores[0]

    @pytest.mark.asyncio
    async def test_empty_query(self):
        """Test empty and token-free queries return nothing."""
        index = await build(CORPUS)

        assert await index.search("") == []
        assert await index.search("  ?! ") == []

    @pytest.mark.asyncio
    async def test_empty_index(self):
        """Test searching an empty index."""
        assert await MemoryKeywordIndex().search("python") == []

    @pytest.mark.asyncio
    async def test_ties_broken_by_chunk_id(self):
        """Test identical chunks are ordered by chunk id."""
        index = await build({"z_0": "same text", "m_0": "same text", "a_0": "same text"})

        results = await index.search("same")

        assert [r.chunk_id for r in results] == ["a_0", "m_0", "z_0"]

    @pytest.mark.asyncio
    async def test_idempotent_upsert(self):
        """Test re-upserting identical content leaves the index unchanged."""
        index = await build(CORPUS)
        before = [(r.chunk_id, r.score) for r in await index.search("python programming")]

        await index.upsert("a_0", CORPUS["a_0"], document_id="a")
        await index.upsert("a_0", CORPUS["a_0"], document_id="a")

        after = [(r.chunk_id, r.score) for r in await index.search("python programming")]
        assert after == before
        assert await index.count() == len(CORPUS)
        assert index.document_frequency("python") == 2

    @pytest.mark.asyncio
    async def test_upsert_replaces_content(self):
        """Test an upsert retracts the previous postings."""
        index = await build(CORPUS)

        await index.upsert("a_0", "rust systems language", document_id="a")

        assert index.document_frequency("python") == 1
        assert [r.chunk_id for r in await index.search("python")] == ["c_0"]
        assert [r.chunk_id for r in await index.search("rust")] == ["a_0"]

    @pytest.mark.asyncio
    async def test_delete(self):
        """Test deleted chunks stop matching."""
        index = await build(CORPUS)

        assert await index.delete("c_0") is True
        assert await index.delete("c_0") is False
        assert await index.count() == 3
        assert [r.chunk_id for r in await index.search("cobra")] == []
        assert index.document_frequency("cobra") == 0

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clearing the index."""
        index = await build(CORPUS)

        await index.clear()

        assert await index.count() == 0
        assert await index.search("python") == []

    @pytest.mark.asyncio
    async def test_stopwords_optional(self):
        """Test stopword removal is off by default."""
        plain = await build(CORPUS)
        filtered = await build(CORPUS, remove_stopwords=True)

        assert await plain.search("the") != []
        assert await filtered.search("the") == []

    @pytest.mark.asyncio
    async def test_case_insensitive(self):
        """Test matching ignores case."""
        index = await build(CORPUS)

        assert [r.chunk_id for r in await index.search("COBRA")] == ["c_0"]
