"""AI Prompts Module"""

from knowledge_base.ai.prompts.chunking_prompts import (
    build_chunking_prompt,
    build_chunking_content_prompt,
)

__all__ = [
    "build_chunking_prompt",
    "build_chunking_content_prompt",
]
