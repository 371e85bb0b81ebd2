"""
LLM Module

Google Gemini integrations used by the ingestion pipeline.
"""

from knowledge_base.ai.llm.gemini_client import (
    GeminiError,
    get_client,
    semantic_chunk,
    parse_chunk_list,
    register_knowledge_file,
    delete_knowledge_file,
)

__all__ = [
    "GeminiError",
    "get_client",
    "semantic_chunk",
    "parse_chunk_list",
    "register_knowledge_file",
    "delete_knowledge_file",
]
