"""Persist embedded chunk rows in Qdrant."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.http import models as qmodels

from lexflow.config import settings
from lexflow.models.chunk import ChunkRow

logger = logging.getLogger(__name__)


def point_id(source_id: str, chunk_index: int) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"{source_id}:{chunk_index}"))


def row_batches(rows: Sequence[ChunkRow], batch_size: int) -> Iterable[List[ChunkRow]]:
    for start in range(0, len(rows), batch_size):
        yield list(rows[start : start + batch_size])


def source_filter(source_id: str) -> qmodels.Filter:
    return qmodels.Filter(must=[qmodels.FieldCondition(key="source_id", match=qmodels.MatchValue(value=source_id))])


def to_point(row: ChunkRow) -> qmodels.PointStruct:
    return qmodels.PointStruct(
        id=point_id(row.source_id, row.chunk_index),
        vector=row.embedding,
        payload=row.payload(),
    )


class QdrantChunkStore:
    """Chunk rows keyed by (source_id, chunk_index), so re-inserts overwrite."""

    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        collection: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self.client = client or QdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key or None)
        self.collection = collection or settings.qdrant_collection
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.insert_batch_size

    def ensure_collection(self) -> None:
        if self.client.collection_exists(self.collection):
            return
        logger.info("Creating Qdrant collection %s", self.collection)
        self.client.create_collection(
            collection_name=self.collection,
            vectors_config=qmodels.VectorParams(size=self.dimensions, distance=qmodels.Distance.COSINE),
        )

    def insert_rows(self, rows: Sequence[ChunkRow]) -> int:
        """Upsert rows in batches; a failed batch is retried row by row.

        Returns the number of rows written. Rows that fail on their own are
        logged and skipped.
        """
        written = 0
        for batch in row_batches(rows, self.batch_size):
            try:
                self.client.upsert(
                    collection_name=self.collection,
                    wait=True,
                    points=[to_point(row) for row in batch],
                )
                written += len(batch)
                continue
            except Exception as exc:
                logger.warning("Batch insert of %s rows failed (%s); inserting individually", len(batch), exc)

            for row in batch:
                try:
                    self.client.upsert(collection_name=self.collection, wait=True, points=[to_point(row)])
                    written += 1
                except Exception as exc:
                    logger.error("Skipping chunk %s of source %s: %s", row.chunk_index, row.source_id, exc)
        logger.info("Inserted %s of %s chunk rows into %s", written, len(rows), self.collection)
        return written

    def delete_source(self, source_id: str) -> None:
        self.client.delete(
            collection_name=self.collection,
            points_selector=qmodels.FilterSelector(filter=source_filter(source_id)),
            wait=True,
        )

    def list_source(self, source_id: str) -> List[Dict[str, Any]]:
        """Return the stored payloads of one source ordered by chunk_index."""
        payloads: List[Dict[str, Any]] = []
        offset = None
        while True:
            points, offset = self.client.scroll(
                collection_name=self.collection,
                scroll_filter=source_filter(source_id),
                limit=self.batch_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(point.payload or {} for point in points)
            if offset is None:
                break
        return sorted(payloads, key=lambda payload: payload.get("chunk_index", 0))
