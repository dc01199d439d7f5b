"""Thin async wrappers around the OpenAI Responses and Embeddings APIs."""

from __future__ import annotations

from typing import List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from lexflow.config import settings
from lexflow.errors import EmbeddingError, ThrottledError
from lexflow.utils.tokenization import get_encoding, truncate_to_tokens


def _build_client(api_key: Optional[str], base_url: Optional[str]) -> AsyncOpenAI:
    api_key = api_key or settings.openai_api_key
    if not api_key:
        raise ValueError("OPENAI_API_KEY is not configured in the environment.")
    return AsyncOpenAI(api_key=api_key, base_url=base_url or settings.openai_base_url)


class OpenAIChatClient:
    """Single-shot chat completion. Rate limits surface as ThrottledError."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.openai_model_chat
        self.client = client or _build_client(api_key, base_url)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_output_tokens: int = 1500,
    ) -> str:
        try:
            response = await self.client.responses.create(
                model=self.model,
                temperature=temperature,
                max_output_tokens=max_output_tokens,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.RateLimitError as exc:
            raise ThrottledError("Chat model rate limited", cause=exc) from exc
        return self._extract_text(response)

    @staticmethod
    def _extract_text(response) -> str:
        chunks: list[str] = []
        for item in response.output or []:
            for content in getattr(item, "content", None) or []:
                content_type = getattr(content, "type", None)
                content_text = getattr(content, "text", None)
                if isinstance(content, dict):
                    content_type = content.get("type", content_type)
                    content_text = content.get("text", content_text)
                if content_type in {"output_text", "text"} and content_text:
                    chunks.append(str(content_text))
        return "\n".join(part.strip() for part in chunks if part).strip()


class OpenAIEmbeddingClient:
    """Embeds a list of texts in one request, preserving input order."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.openai_model_embed
        self.dimensions = dimensions or settings.embedding_dimensions
        self.max_input_tokens = settings.embedding_max_input_tokens
        self.client = client or _build_client(api_key, base_url)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        encoding = get_encoding("truncating embedding input")
        inputs = [truncate_to_tokens(text, self.max_input_tokens, encoding) for text in texts]
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=inputs,
                dimensions=self.dimensions,
            )
        except openai.RateLimitError as exc:
            raise ThrottledError("Embedding model rate limited", cause=exc) from exc
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(inputs):
            raise EmbeddingError(
                "Embedding count mismatch",
                {"expected": len(inputs), "received": len(data)},
            )
        return [list(item.embedding) for item in data]
