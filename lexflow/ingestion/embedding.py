"""Batch chunk texts through the embedding provider with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from lexflow.config import settings
from lexflow.errors import EmbeddingError
from lexflow.llm.retrying_client import RetryPolicy

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


@dataclass
class EmbeddingOutcome:
    """Vectors and failures keyed by the caller's chunk index."""

    vectors: Dict[int, List[float]] = field(default_factory=dict)
    failures: Dict[int, str] = field(default_factory=dict)


class EmbeddingCoordinator:
    """Embeds (text, index) pairs in batches.

    At most ``concurrency`` batch calls are in flight. A batch that fails after
    its retries, or returns the wrong number of vectors, falls back to one call
    per item inside the same concurrency slot. Items that still fail are
    reported in ``EmbeddingOutcome.failures`` rather than raised.
    """

    def __init__(
        self,
        embedder: Embedder,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        dimensions: Optional[int] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.embedder = embedder
        self.batch_size = batch_size or settings.embed_batch_size
        self.concurrency = concurrency or settings.embed_concurrency
        self.dimensions = dimensions or settings.embedding_dimensions
        self.policy = policy or RetryPolicy.for_embedding()
        self._sleep = sleep

    async def embed_chunks(self, items: Sequence[Tuple[str, int]]) -> EmbeddingOutcome:
        outcome = EmbeddingOutcome()
        if not items:
            return outcome
        batches = [list(items[i : i + self.batch_size]) for i in range(0, len(items), self.batch_size)]
        semaphore = asyncio.Semaphore(self.concurrency)
        await asyncio.gather(
            *(self._run_batch(number, batch, semaphore, outcome) for number, batch in enumerate(batches))
        )
        if outcome.failures:
            logger.error("Failed to embed %s chunks out of %s", len(outcome.failures), len(items))
        else:
            logger.info("Embedded %s chunks in %s batches", len(items), len(batches))
        return outcome

    async def _call(self, texts: List[str]) -> List[List[float]]:
        async for attempt in self.policy.retrying(self._sleep):
            with attempt:
                vectors = await self.embedder.embed(texts)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                "Embedding count mismatch", {"expected": len(texts), "received": len(vectors)}
            )
        return vectors

    async def _run_batch(
        self,
        number: int,
        batch: List[Tuple[str, int]],
        semaphore: asyncio.Semaphore,
        outcome: EmbeddingOutcome,
    ) -> None:
        async with semaphore:
            try:
                vectors = await self._call([text for text, _ in batch])
            except Exception as exc:
                logger.warning(
                    "Batch %s of %s items failed (%s); embedding items individually",
                    number,
                    len(batch),
                    exc,
                )
                for text, index in batch:
                    await self._embed_single(text, index, outcome)
                return

            for (text, index), vector in zip(batch, vectors):
                if len(vector) == self.dimensions:
                    outcome.vectors[index] = vector
                else:
                    logger.warning(
                        "Chunk %s returned a %s-dimension vector; retrying individually", index, len(vector)
                    )
                    await self._embed_single(text, index, outcome)

    async def _embed_single(self, text: str, index: int, outcome: EmbeddingOutcome) -> None:
        try:
            vectors = await self._call([text])
        except Exception as exc:
            outcome.failures[index] = str(exc)
            logger.warning("Chunk %s could not be embedded: %s", index, exc)
            return
        vector = vectors[0]
        if len(vector) != self.dimensions:
            outcome.failures[index] = f"expected {self.dimensions} dimensions, got {len(vector)}"
            return
        outcome.vectors[index] = vector
