"""LLM provider adapters.

    OpenAILLMProvider -- gpt-4.1-mini by default (also any OpenAI-compatible API)

main.py builds the provider from settings and injects it into the answer,
report and annotation services.
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
