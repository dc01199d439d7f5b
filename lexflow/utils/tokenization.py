"""Helpers for loading tiktoken encodings with operator-controlled fallback."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

import tiktoken

from lexflow.config import settings

logger = logging.getLogger(__name__)

ENCODING_NAME = "cl100k_base"


def _should_fallback(context: str, reason: Exception) -> bool:
    message = f"Failed to load tiktoken '{ENCODING_NAME}' while {context}. Reason: {reason}"
    if settings.allow_tiktoken_fallback:
        logger.warning(
            "%s. Proceeding with whitespace token approximation because ALLOW_TIKTOKEN_FALLBACK=1.",
            message,
        )
        return True
    raise RuntimeError(
        f"{message}. Rerun with ALLOW_TIKTOKEN_FALLBACK=1 to allow whitespace fallback."
    )


@lru_cache(maxsize=None)
def get_encoding(context: str = "truncating embedding input") -> Optional[tiktoken.Encoding]:
    """Load the OpenAI tokenizer, or None when the whitespace fallback is allowed."""
    try:
        return tiktoken.get_encoding(ENCODING_NAME)
    except Exception as exc:
        if _should_fallback(context, exc):
            return None
        raise


def truncate_to_tokens(text: str, max_tokens: int, encoding: Optional[tiktoken.Encoding]) -> str:
    """Cut text down to at most ``max_tokens`` tokens."""
    if encoding:
        tokens = encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return encoding.decode(tokens[:max_tokens])
    words = text.split()
    if len(words) <= max_tokens:
        return text
    return " ".join(words[:max_tokens])
