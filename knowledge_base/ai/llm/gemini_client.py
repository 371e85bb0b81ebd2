"""
Google Gemini Client

Integration with Google's Gemini API using the google-genai package.

Two collaborators of the ingestion pipeline live here:
- semantic_chunk: asks the model for passage boundaries
- register/delete_knowledge_file: keeps a copy of the extracted text
  in the Gemini Files API so it can be attached to later prompts

The SDK calls are blocking, so they run in a worker thread.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from knowledge_base.core.config import settings
from knowledge_base.ai.prompts import build_chunking_prompt, build_chunking_content_prompt

logger = logging.getLogger(__name__)


class GeminiError(Exception):
    """Raised when a Gemini call fails or returns something unusable."""
    pass


# ============================================================
# CLIENT INITIALIZATION
# ============================================================

_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    """Get or create the Gemini client."""
    global _client

    if _client is None:
        if not settings.GEMINI_API_KEY:
            raise GeminiError(
                "GEMINI_API_KEY not set. "
                "Get your key at https://aistudio.google.com/apikey"
            )

        _client = genai.Client(api_key=settings.GEMINI_API_KEY)
        logger.info(f"Gemini client initialized (model: {settings.GEMINI_MODEL})")

    return _client


# ============================================================
# SEMANTIC CHUNKING
# ============================================================

async def semantic_chunk(text: str, target_size: int) -> List[str]:
    """
    Split text into passages using the LLM.

    Args:
        text: Full document text
        target_size: Approximate passage size in characters

    Returns:
        Passage texts in document order

    Raises:
        GeminiError: If the call fails or the answer is not a JSON array of strings
    """
    client = get_client()

    config = types.GenerateContentConfig(
        system_instruction=build_chunking_prompt(target_size),
        response_mime_type="application/json",
        temperature=0.0,
    )

    try:
        response = await asyncio.to_thread(
            client.models.generate_content,
            model=settings.GEMINI_MODEL,
            contents=build_chunking_content_prompt(text),
            config=config,
        )
    except Exception as e:
        logger.error(f"Gemini chunking request failed: {e}")
        raise GeminiError(f"Semantic chunking request failed: {e}") from e

    return parse_chunk_list(response.text or "")


def parse_chunk_list(raw_content: str) -> List[str]:
    """
    Parse the model answer into a list of passages.

    Accepts a bare JSON array, a fenced one, or {"chunks": [...]}.
    """
    content = raw_content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines)

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise GeminiError(f"Semantic chunking returned invalid JSON: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("chunks"), list):
        data = data["chunks"]

    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise GeminiError("Semantic chunking did not return a list of strings")

    return data


# ============================================================
# KNOWLEDGE FILES
# ============================================================

async def register_knowledge_file(path: str, metadata: Dict[str, Any]) -> str:
    """
    Upload extracted text to the Gemini Files API.

    Args:
        path: Local path of the text file
        metadata: Descriptive fields; ``name`` becomes the display name

    Returns:
        The external file id (``files/...``)
    """
    client = get_client()

    upload_config = types.UploadFileConfig(
        display_name=str(metadata.get("name") or metadata.get("document_id") or "document"),
        mime_type="text/plain",
    )

    uploaded = await asyncio.to_thread(
        client.files.upload,
        file=path,
        config=upload_config,
    )

    logger.info(f"Registered knowledge file {uploaded.name} for {metadata.get('document_id')}")
    return uploaded.name


async def delete_knowledge_file(file_id: str) -> None:
    """Remove a previously registered knowledge file."""
    client = get_client()
    await asyncio.to_thread(client.files.delete, name=file_id)
    logger.info(f"Deleted knowledge file {file_id}")

