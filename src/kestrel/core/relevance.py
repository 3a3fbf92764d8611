"""Embedding-based relevance gates for job titles and job descriptions.

The classifier is fail-open: when a judgment cannot be computed (empty or
failed embedding, empty profile vector, mismatched dimensions, any unexpected
error) it returns ``Indeterminate``, which callers treat as relevant. It never
raises and never answers "not relevant" without a real similarity.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from kestrel.config import Settings, get_settings
from kestrel.core.similarity import content_hash, cosine_similarity, normalize_text, similarity_score
from kestrel.db.repositories import Repository
from kestrel.db.session import SessionLocal

logger = logging.getLogger(__name__)

INDETERMINATE_SCORE = -1

Embedder = Callable[[str], Sequence[float]]


class RelevanceStage(StrEnum):
    TITLE = "title"
    DESCRIPTION = "description"


@dataclass(frozen=True, slots=True)
class Relevant:
    score: int
    similarity: float

    relevant = True


@dataclass(frozen=True, slots=True)
class NotRelevant:
    score: int
    similarity: float

    relevant = False


@dataclass(frozen=True, slots=True)
class Indeterminate:
    reason: str

    relevant = True
    score = None


RelevanceVerdict = Relevant | NotRelevant | Indeterminate


def verdict_payload(verdict: RelevanceVerdict) -> dict[str, Any]:
    """Flatten a verdict to the ``{relevant, score}`` wire shape, with -1 for indeterminate."""
    if isinstance(verdict, Indeterminate):
        return {"relevant": True, "score": INDETERMINATE_SCORE}
    return {"relevant": verdict.relevant, "score": verdict.score}


class EmbeddingCache(Protocol):
    def get(self, model_id: str, content_hash: str) -> list[float] | None: ...

    def put(self, model_id: str, content_hash: str, normalized_text: str, vector: Sequence[float]) -> None: ...


class SqlEmbeddingCache:
    """Embedding cache stored in the ``embedding_cache`` table."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal):
        self.session_factory = session_factory

    def get(self, model_id: str, content_hash: str) -> list[float] | None:
        with self.session_factory() as db:
            entry = Repository(db).get_embedding(model_id, content_hash)
            if entry is None or not isinstance(entry.vector, list):
                return None
            return [float(value) for value in entry.vector]

    def put(self, model_id: str, content_hash: str, normalized_text: str, vector: Sequence[float]) -> None:
        with self.session_factory() as db:
            Repository(db).put_embedding(
                model_id,
                content_hash,
                normalized_text=normalized_text,
                vector=vector,
            )


class RelevanceClassifier:
    def __init__(
        self,
        *,
        embedder: Embedder,
        model_id: str,
        cache: EmbeddingCache | None = None,
        settings: Settings | None = None,
        title_threshold: float | None = None,
        description_threshold: float | None = None,
    ):
        settings = settings or get_settings()
        self.embedder = embedder
        self.model_id = model_id
        self.cache = cache if cache is not None else SqlEmbeddingCache()
        self.thresholds = {
            RelevanceStage.TITLE: settings.title_threshold if title_threshold is None else title_threshold,
            RelevanceStage.DESCRIPTION: (
                settings.description_threshold if description_threshold is None else description_threshold
            ),
        }

    async def classify(
        self,
        text: str,
        profile_vector: Sequence[float],
        stage: RelevanceStage = RelevanceStage.DESCRIPTION,
    ) -> RelevanceVerdict:
        try:
            return await self._classify(text, profile_vector, RelevanceStage(stage))
        except Exception as exc:
            logger.exception("Relevance check failed stage=%s", stage)
            return Indeterminate(reason=f"classification error: {exc}")

    async def embed(self, text: str) -> list[float]:
        """Cached embedding of ``text``; empty when the text is blank or embedding fails."""
        normalized = normalize_text(text)
        if not normalized:
            return []

        digest = content_hash(normalized)
        cached = await asyncio.to_thread(self._cache_get, digest)
        if cached:
            return cached

        vector = [float(value) for value in await asyncio.to_thread(self.embedder, normalized)]
        if not vector:
            return []

        await asyncio.to_thread(self._cache_put, digest, normalized, vector)
        return vector

    async def _classify(
        self,
        text: str,
        profile_vector: Sequence[float],
        stage: RelevanceStage,
    ) -> RelevanceVerdict:
        if not profile_vector:
            return Indeterminate(reason="profile vector is empty")

        vector = await self.embed(text)
        if not vector:
            return Indeterminate(reason="embedding unavailable")

        if len(vector) != len(profile_vector):
            logger.warning(
                "Embedding dimension mismatch stage=%s text=%d profile=%d",
                stage,
                len(vector),
                len(profile_vector),
            )
            return Indeterminate(reason="embedding dimension mismatch")

        similarity = cosine_similarity(vector, profile_vector)
        score = similarity_score(similarity)
        if similarity >= self.thresholds[stage]:
            return Relevant(score=score, similarity=similarity)
        return NotRelevant(score=score, similarity=similarity)

    def _cache_get(self, digest: str) -> list[float] | None:
        try:
            return self.cache.get(self.model_id, digest)
        except Exception as exc:
            logger.warning("Embedding cache read failed hash=%s error=%s", digest, exc)
            return None

    def _cache_put(self, digest: str, normalized: str, vector: list[float]) -> None:
        try:
            self.cache.put(self.model_id, digest, normalized, vector)
        except Exception as exc:
            logger.warning("Failed to persist embedding cache hash=%s error=%s", digest, exc)
