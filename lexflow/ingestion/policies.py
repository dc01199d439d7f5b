"""Chunk size policies per source type."""

from __future__ import annotations

from typing import Dict, Optional, Union

from pydantic import BaseModel

from lexflow.models.document import SourceType


class ChunkPolicy(BaseModel):
    """Character limits and boundary flags for one kind of document.

    ``max_chars`` is the soft limit that triggers a boundary, ``max_chunk_chars``
    the hard ceiling no chunk body may exceed.
    """

    max_chars: int
    min_chars: int
    overlap_chars: int
    max_chunk_chars: int
    argument_phases: bool = False
    numbered_sections: bool = False


DEFAULT_POLICY = ChunkPolicy(max_chars=1500, min_chars=300, overlap_chars=200, max_chunk_chars=1800)

_STATUTE = ChunkPolicy(
    max_chars=1200, min_chars=200, overlap_chars=150, max_chunk_chars=1500, numbered_sections=True
)
_SCHOLARLY = ChunkPolicy(max_chars=1600, min_chars=350, overlap_chars=250, max_chunk_chars=2000)

POLICIES: Dict[SourceType, ChunkPolicy] = {
    SourceType.CASE: ChunkPolicy(
        max_chars=1800, min_chars=400, overlap_chars=300, max_chunk_chars=2200, argument_phases=True
    ),
    SourceType.STATUTE: _STATUTE,
    SourceType.REGULATION: _STATUTE,
    SourceType.CONSTITUTION: _STATUTE,
    SourceType.TREATY: ChunkPolicy(
        max_chars=1400, min_chars=300, overlap_chars=200, max_chunk_chars=1800, numbered_sections=True
    ),
    SourceType.JOURNAL_ARTICLE: _SCHOLARLY,
    SourceType.BOOK: _SCHOLARLY,
    SourceType.COMMENTARY: ChunkPolicy(
        max_chars=1500, min_chars=300, overlap_chars=200, max_chunk_chars=1900
    ),
}


def policy_for(source_type: Optional[Union[SourceType, str]]) -> ChunkPolicy:
    """Return the policy for a source type; unknown tags get the default."""
    if not isinstance(source_type, SourceType):
        source_type = SourceType.parse(source_type)
    return POLICIES.get(source_type, DEFAULT_POLICY)
