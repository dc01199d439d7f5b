"""Prompt templates for evidence-grounded generation."""

from __future__ import annotations

import logging
from typing import Iterable, List

from lexflow.models.generation import EvidenceChunk

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a legal research assistant.
Use only the provided evidence blocks to answer the question.
Reference the supporting evidence using [Doc #] notation.
Do not invent authorities, citations or holdings. If the evidence is insufficient, say so explicitly."""


def format_evidence_block(position: int, chunk: EvidenceChunk) -> str:
    title = chunk.source_title or "Untitled source"
    page_info = f" (page {chunk.page_number})" if chunk.page_number else ""
    return f"[Doc {position}] {title}{page_info}\n{chunk.text.strip()}"


def bounded_evidence(chunks: Iterable[EvidenceChunk], max_chars: int) -> List[str]:
    """Format evidence blocks in order until the character budget is spent."""
    blocks: List[str] = []
    used = 0
    chunk_list = list(chunks)
    for position, chunk in enumerate(chunk_list, start=1):
        block = format_evidence_block(position, chunk)
        if used + len(block) > max_chars:
            remaining = max_chars - used
            if remaining > 0 and not blocks:
                blocks.append(block[:remaining])
            logger.info(
                "Evidence truncated at %s characters; kept %s of %s chunks",
                max_chars,
                len(blocks),
                len(chunk_list),
            )
            break
        blocks.append(block)
        used += len(block) + 2
    return blocks


def build_user_prompt(question: str, evidences: Iterable[EvidenceChunk], max_chars: int) -> str:
    evidence_sections = "\n\n".join(bounded_evidence(evidences, max_chars))
    return f"""Question:
{question.strip()}

Evidence:
{evidence_sections}

Instructions:
- Support every conclusion with a citation such as [Doc 1].
- Distinguish binding authority from commentary where the evidence allows."""
