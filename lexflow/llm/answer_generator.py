"""Glue module that turns evidence chunks into an answer via the chat model."""

from __future__ import annotations

from typing import Iterable, Optional

from lexflow.config import settings
from lexflow.llm.openai_client import OpenAIChatClient
from lexflow.llm.prompts import SYSTEM_PROMPT, build_user_prompt
from lexflow.llm.retrying_client import RetryingModelClient
from lexflow.models.generation import EvidenceChunk


class AnswerGenerator:
    """Generates evidence-grounded answers through a RetryingModelClient."""

    def __init__(
        self,
        client: Optional[OpenAIChatClient] = None,
        retrying: Optional[RetryingModelClient] = None,
        max_evidence_chars: Optional[int] = None,
    ) -> None:
        self.client = client or OpenAIChatClient()
        self.retrying = retrying or RetryingModelClient()
        self.max_evidence_chars = max_evidence_chars or settings.max_evidence_chars

    async def generate(self, question: str, evidences: Iterable[EvidenceChunk]) -> str:
        prompt = build_user_prompt(question, list(evidences), self.max_evidence_chars)
        answer = await self.retrying.call(
            lambda: self.client.complete(SYSTEM_PROMPT, prompt),
            label="generation",
        )
        return answer.strip()
