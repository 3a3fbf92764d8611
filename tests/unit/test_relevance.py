from __future__ import annotations

import asyncio
import threading
from collections.abc import Sequence

from kestrel.core.relevance import (
    Indeterminate,
    NotRelevant,
    RelevanceClassifier,
    RelevanceStage,
    Relevant,
    SqlEmbeddingCache,
    verdict_payload,
)

PROFILE = [1.0, 0.0, 0.0]


class MemoryCache:
    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], list[float]] = {}

    def get(self, model_id: str, content_hash: str) -> list[float] | None:
        return self.entries.get((model_id, content_hash))

    def put(self, model_id: str, content_hash: str, normalized_text: str, vector: Sequence[float]) -> None:
        self.entries[(model_id, content_hash)] = list(vector)


class BrokenCache:
    def get(self, model_id: str, content_hash: str) -> list[float] | None:
        raise RuntimeError("cache offline")

    def put(self, model_id: str, content_hash: str, normalized_text: str, vector: Sequence[float]) -> None:
        raise RuntimeError("cache offline")


class FakeEmbedder:
    def __init__(self, vectors: dict[str, list[float]]):
        self.vectors = vectors
        self.calls: list[str] = []

    def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vectors.get(text, [])


def _classifier(embedder, cache=None, **kwargs) -> RelevanceClassifier:
    return RelevanceClassifier(
        embedder=embedder,
        model_id="test-embed",
        cache=cache if cache is not None else MemoryCache(),
        **kwargs,
    )


def test_similar_title_is_relevant() -> None:
    embedder = FakeEmbedder({"Backend Engineer": [0.9, 0.1, 0.0]})
    verdict = asyncio.run(_classifier(embedder).classify("Backend Engineer", PROFILE, RelevanceStage.TITLE))

    assert isinstance(verdict, Relevant)
    assert verdict.relevant is True
    assert verdict.score == 99


def test_dissimilar_description_is_not_relevant_with_score() -> None:
    embedder = FakeEmbedder({"Sales role": [0.2, 1.0, 0.0]})
    verdict = asyncio.run(_classifier(embedder).classify("Sales role", PROFILE))

    assert isinstance(verdict, NotRelevant)
    assert verdict.relevant is False
    assert verdict.score == 20


def test_threshold_is_inclusive() -> None:
    embedder = FakeEmbedder({"Orthogonal": [0.0, 1.0, 0.0]})
    classifier = _classifier(embedder, title_threshold=0.0)
    verdict = asyncio.run(classifier.classify("Orthogonal", PROFILE, RelevanceStage.TITLE))

    assert isinstance(verdict, Relevant)
    assert verdict.score == 0


def test_empty_profile_vector_is_indeterminate_without_embedding() -> None:
    embedder = FakeEmbedder({"Backend Engineer": [1.0, 0.0, 0.0]})
    verdict = asyncio.run(_classifier(embedder).classify("Backend Engineer", []))

    assert isinstance(verdict, Indeterminate)
    assert verdict.relevant is True
    assert embedder.calls == []


def test_embedding_failure_fails_open() -> None:
    def exploding(text: str) -> list[float]:
        raise ConnectionError("model server down")

    verdict = asyncio.run(_classifier(exploding).classify("Backend Engineer", PROFILE))

    assert isinstance(verdict, Indeterminate)
    assert verdict.relevant is True
    assert verdict_payload(verdict) == {"relevant": True, "score": -1}


def test_empty_embedding_fails_open() -> None:
    verdict = asyncio.run(_classifier(FakeEmbedder({})).classify("Anything", PROFILE))
    assert isinstance(verdict, Indeterminate)


def test_dimension_mismatch_fails_open() -> None:
    embedder = FakeEmbedder({"Backend Engineer": [1.0, 0.0]})
    verdict = asyncio.run(_classifier(embedder).classify("Backend Engineer", PROFILE))
    assert isinstance(verdict, Indeterminate)


def test_repeated_text_is_embedded_once() -> None:
    embedder = FakeEmbedder({"Backend Engineer": [1.0, 0.0, 0.0]})
    classifier = _classifier(embedder)

    async def scenario():
        first = await classifier.classify("Backend Engineer", PROFILE)
        second = await classifier.classify("  Backend   Engineer\n", PROFILE)
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second
    assert embedder.calls == ["Backend Engineer"]


def test_sql_cache_survives_new_classifier() -> None:
    first_embedder = FakeEmbedder({"Platform Engineer": [0.8, 0.6, 0.0]})
    asyncio.run(_classifier(first_embedder, cache=SqlEmbeddingCache()).embed("Platform Engineer"))

    second_embedder = FakeEmbedder({})
    vector = asyncio.run(_classifier(second_embedder, cache=SqlEmbeddingCache()).embed("Platform Engineer"))

    assert vector == [0.8, 0.6, 0.0]
    assert second_embedder.calls == []


def test_cache_failures_do_not_change_verdict() -> None:
    embedder = FakeEmbedder({"Backend Engineer": [1.0, 0.0, 0.0]})
    verdict = asyncio.run(_classifier(embedder, cache=BrokenCache()).classify("Backend Engineer", PROFILE))

    assert isinstance(verdict, Relevant)
    assert embedder.calls == ["Backend Engineer"]


def test_blank_text_is_indeterminate() -> None:
    embedder = FakeEmbedder({})
    verdict = asyncio.run(_classifier(embedder).classify("   ", PROFILE))

    assert isinstance(verdict, Indeterminate)
    assert embedder.calls == []


class ThreadRecordingCache(MemoryCache):
    def __init__(self) -> None:
        super().__init__()
        self.threads: list[int] = []

    def get(self, model_id: str, content_hash: str) -> list[float] | None:
        self.threads.append(threading.get_ident())
        return super().get(model_id, content_hash)

    def put(self, model_id: str, content_hash: str, normalized_text: str, vector: Sequence[float]) -> None:
        self.threads.append(threading.get_ident())
        super().put(model_id, content_hash, normalized_text, vector)


def test_cache_io_runs_off_the_event_loop_thread() -> None:
    cache = ThreadRecordingCache()
    embedder = FakeEmbedder({"Backend Engineer": [0.9, 0.1, 0.0]})

    asyncio.run(_classifier(embedder, cache=cache).embed("Backend Engineer"))

    assert len(cache.threads) == 2
    assert threading.get_ident() not in cache.threads
