"""Shared fixtures and fakes for the test suite."""

import asyncio
from typing import List, Optional, Sequence, Set

import pytest

from lexflow.errors import EmbeddingError, ThrottledError
from lexflow.models.document import Paragraph

VOCABULARY = (
    "lessee maintains the premises and observes every repair obligation owed to the landlord "
    "under the tenancy covenant while consent for alterations remains with the freeholder "
)


def make_text(length: int, lead: str = "the") -> str:
    """Deterministic lowercase prose of exactly ``length`` characters with no terminal period."""
    base = f"{lead} {VOCABULARY}"
    text = (base * (length // len(base) + 2))[:length]
    if text[-1] == " ":
        text = text[:-1] + "s"
    return text


def paragraph(text: str, page: int = 1, heading: bool = False) -> Paragraph:
    return Paragraph(text=text, page=page, is_heading=heading, heading_level=1 if heading else None)


async def no_sleep(_seconds: float) -> None:
    return None


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeEmbedder:
    """Returns constant vectors; can fail batches, items, or emit bad dimensions."""

    def __init__(
        self,
        dimensions: int = 4,
        fail_batches_with: Optional[Set[str]] = None,
        fail_items: Optional[Set[str]] = None,
        bad_dimension_items: Optional[Set[str]] = None,
        throttle_first: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.dimensions = dimensions
        self.fail_batches_with = fail_batches_with or set()
        self.fail_items = fail_items or set()
        self.bad_dimension_items = bad_dimension_items or set()
        self.throttle_first = throttle_first
        self.delay = delay
        self.calls: List[List[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if len(self.calls) <= self.throttle_first:
                raise ThrottledError("rate limited")
            if len(texts) > 1 and any(marker in text for text in texts for marker in self.fail_batches_with):
                raise EmbeddingError("batch rejected")
            if any(marker in text for text in texts for marker in self.fail_items):
                raise ValueError("input too long")
            return [
                [0.5] * (self.dimensions + 1)
                if any(marker in text for marker in self.bad_dimension_items)
                else [0.5] * self.dimensions
                for text in texts
            ]
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
