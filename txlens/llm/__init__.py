"""LLM client and chain configurations."""

from .client import LLMSettings, create_llm_client, get_llm_settings
from .chains import LangChainNarrativeGenerator
from .generator import NarrativeError, NarrativeGenerator

__all__ = [
    "LLMSettings",
    "create_llm_client",
    "get_llm_settings",
    "NarrativeGenerator",
    "NarrativeError",
    "LangChainNarrativeGenerator",
]
