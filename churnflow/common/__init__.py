"""
ChurnFlow Common Module

Shared infrastructure for the capture router: configuration, the LLM
client and the capture schemas.
"""

from .config import ChurnConfig, load_config, save_config
from .llm_client import LLMClient
from .llm_utils import parse_llm_json

__all__ = [
    "ChurnConfig",
    "load_config",
    "save_config",
    "LLMClient",
    "parse_llm_json",
]
