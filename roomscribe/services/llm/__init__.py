from roomscribe.services.llm.base import LLMProvider, LLMProviderError
from roomscribe.services.llm.gemini_provider import GeminiProvider
from roomscribe.services.llm.ollama_provider import OllamaProvider
from roomscribe.services.llm.openai_provider import OpenAIProvider

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
