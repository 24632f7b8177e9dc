from .openai_client import LLM, LLMResponseError, OpenAIClient

__all__ = ["OpenAIClient", "LLM", "LLMResponseError"]
