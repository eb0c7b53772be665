"""LLM collaborator adapters."""

from .client import GeminiClient, LLMClient, OllamaClient, create_llm_client

__all__ = ["LLMClient", "GeminiClient", "OllamaClient", "create_llm_client"]
