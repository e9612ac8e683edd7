"""LLM module - Generation capability for the compression pipeline.

This module provides:
- GenerationClient: The capability protocol (closed request/response shapes)
- LLMProvider: Direct HTTP calls to OpenAI-compatible APIs
- TieredGenerationClient: Provider routing by compute tier
- LLMConfig: Configuration for API connections
"""

from .config import LLMConfig
from .provider import LLMProvider, TieredGenerationClient
from .types import ChatCompletion, GenerationClient, GenerationRequest, GenerationResult

__all__ = [
    "LLMProvider",
    "TieredGenerationClient",
    "LLMConfig",
    "GenerationClient",
    "GenerationRequest",
    "GenerationResult",
    "ChatCompletion",
]
