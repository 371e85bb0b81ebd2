"""
Semantic Chunking Prompts

Prompts asking Gemini to split extracted document text into
self-contained passages for retrieval.
"""


def build_chunking_prompt(target_size: int) -> str:
    return f"""You split documents into passages for a search index.

OUTPUT FORMAT:
Return ONLY valid JSON (no markdown fences, no extra text): an array of strings,
each string one passage, in document order.

RULES:
- Each passage should be about {target_size} characters, never more than {target_size * 2}
- Cut at topic or section changes, never in the middle of a sentence
- Copy the text verbatim; do not summarize, translate or rephrase
- Keep headings with the paragraph that follows them
- Every part of the document must appear in exactly one passage"""


def build_chunking_content_prompt(text: str) -> str:
    return f"""Here is the document to split:

{text}"""
