"""LLM integration helpers."""

from .answer_generator import AnswerGenerator
from .openai_client import OpenAIChatClient, OpenAIEmbeddingClient
from .retrying_client import RetryingModelClient, RetryPolicy

__all__ = [
    "AnswerGenerator",
    "OpenAIChatClient",
    "OpenAIEmbeddingClient",
    "RetryPolicy",
    "RetryingModelClient",
]
