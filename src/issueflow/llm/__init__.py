"""LLM-backed text generation."""

from src.issueflow.llm.client import ChatTextGenerator, TextGenerationError
from src.issueflow.llm.parsing import extract_json_block

__all__ = [
    "ChatTextGenerator",
    "TextGenerationError",
    "extract_json_block",
]
