from __future__ import annotations

import asyncio
import math

import pytest

from sam_search.embeddings import EmbeddingGenerator
from sam_search.errors import EmbeddingError
from sam_search.models import Opportunity
from sam_search.ranker import RelevanceRanker, cosine_similarity


def opp(notice_id: str, title: str, description: str = "") -> Opportunity:
    return Opportunity(id=notice_id, notice_id=notice_id, title=title, description=description)


class StubGenerator:
    """Maps text to canned vectors; texts listed in ``fail`` raise."""

    def __init__(self, vectors, fail=(), delay=None):
        self.vectors = vectors
        self.fail = set(fail)
        self.delay = delay or {}
        self.calls = []

    async def embed(self, text, provider, api_key):
        self.calls.append(text)
        if text in self.delay:
            await asyncio.sleep(self.delay[text])
        if text in self.fail:
            raise EmbeddingError(f"cannot embed {text}")
        return self.vectors[text]


def text_of(o: Opportunity) -> str:
    return o.ranking_text()


def test_cosine_similarity_properties():
    a = [1.0, 2.0, 3.0]
    b = [-2.0, 0.5, 4.0]

    assert cosine_similarity(a, a) == 1.0
    assert cosine_similarity(a, b) == cosine_similarity(b, a)
    assert -1.0 <= cosine_similarity(a, b) <= 1.0
    assert cosine_similarity(a, [-x for x in a]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 0], [0, 1]) == 0.0
    assert math.isclose(cosine_similarity([1, 1], [1, 0]), math.sqrt(0.5))


def test_cosine_similarity_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_similarity_rejects_mismatched_dimensions():
    with pytest.raises(ValueError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_ranks_by_similarity_descending():
    candidates = [opp("1", "Office furniture"), opp("2", "Radar upgrade"), opp("3", "Radar study")]
    vectors = {
        "radar": (1.0, 0.0),
        text_of(candidates[0]): (0.0, 1.0),
        text_of(candidates[1]): (1.0, 0.1),
        text_of(candidates[2]): (1.0, 0.5),
    }
    ranker = RelevanceRanker(StubGenerator(vectors))

    ranked = asyncio.run(ranker.rank(candidates, "radar", "openai", "k"))

    assert [o.id for o in ranked] == ["2", "3", "1"]
    assert ranked[0].relevance_score > ranked[1].relevance_score > ranked[2].relevance_score
    assert ranked[2].relevance_score == 0.0


def test_equal_scores_keep_upstream_order():
    candidates = [opp(str(i), f"Listing {i}") for i in range(5)]
    vectors = {"query": (1.0, 1.0)}
    vectors.update({text_of(c): (2.0, 2.0) for c in candidates})
    ranker = RelevanceRanker(StubGenerator(vectors))

    ranked = asyncio.run(ranker.rank(candidates, "query", "openai", "k"))

    assert [o.id for o in ranked] == ["0", "1", "2", "3", "4"]


def test_output_is_truncated_to_top_n():
    candidates = [opp(str(i), f"Listing {i}") for i in range(40)]
    vectors = {"query": (1.0, 0.0)}
    vectors.update({text_of(c): (1.0, float(i)) for i, c in enumerate(candidates)})
    ranker = RelevanceRanker(StubGenerator(vectors), top_n=25)

    ranked = asyncio.run(ranker.rank(candidates, "query", "openai", "k"))

    assert len(ranked) == 25
    assert ranked[0].id == "0"


def test_blank_query_is_a_no_op():
    candidates = [opp("1", "B"), opp("2", "A")]
    generator = StubGenerator({})
    ranker = RelevanceRanker(generator)

    for query in ["", "   ", None]:
        ranked = asyncio.run(ranker.rank(candidates, query, "openai", "k"))
        assert ranked == candidates
        assert all(o.relevance_score == 0.0 for o in ranked)
    assert generator.calls == []


def test_query_embedding_failure_returns_unscored_candidates():
    candidates = [opp("1", "B"), opp("2", "A")]
    ranker = RelevanceRanker(StubGenerator({}, fail={"radar"}))

    ranked = asyncio.run(ranker.rank(candidates, "radar", "openai", "k"))

    assert ranked == candidates


def test_any_candidate_failure_aborts_ranking():
    candidates = [opp("1", "Alpha"), opp("2", "Beta"), opp("3", "Gamma")]
    vectors = {"radar": (1.0, 0.0)}
    vectors.update({text_of(c): (0.0, 1.0) for c in candidates})
    generator = StubGenerator(vectors, fail={text_of(candidates[1])})
    ranker = RelevanceRanker(generator)

    ranked = asyncio.run(ranker.rank(candidates, "radar", "openai", "k"))

    assert [o.id for o in ranked] == ["1", "2", "3"]
    assert all(o.relevance_score == 0.0 for o in ranked)
    # Every candidate call was still issued.
    assert len(generator.calls) == 4


def test_slow_candidate_times_out_without_partial_ranking():
    candidates = [opp("1", "Fast"), opp("2", "Slow")]
    vectors = {"radar": (1.0, 0.0), text_of(candidates[0]): (1.0, 0.0), text_of(candidates[1]): (0.0, 1.0)}
    generator = StubGenerator(vectors, delay={text_of(candidates[1]): 1.0})
    ranker = RelevanceRanker(generator, timeout=0.05)

    ranked = asyncio.run(ranker.rank(candidates, "radar", "openai", "k"))

    assert ranked == candidates


def test_ranking_does_not_mutate_inputs():
    candidates = [opp("1", "Alpha"), opp("2", "Beta")]
    vectors = {"radar": (1.0, 0.0), text_of(candidates[0]): (0.0, 1.0), text_of(candidates[1]): (1.0, 0.0)}
    ranker = RelevanceRanker(StubGenerator(vectors))

    ranked = asyncio.run(ranker.rank(candidates, "radar", "openai", "k"))

    assert [o.id for o in ranked] == ["2", "1"]
    assert candidates[1].relevance_score == 0.0


def test_unsupported_provider_falls_back_to_upstream_order():
    candidates = [opp("1", "Alpha"), opp("2", "Beta")]
    ranker = RelevanceRanker(EmbeddingGenerator())

    ranked = asyncio.run(ranker.rank(candidates, "radar", "cohere", "k"))

    assert ranked == candidates
