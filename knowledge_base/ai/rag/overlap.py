"""
Chunk overlap context.

When a chunk is emitted, the tail of its text is carried into the start
of the next chunk so that a sentence split across the boundary can
still be retrieved from either side.
"""

import re

# A sentence end followed by whitespace, then the rest of the window
_SENTENCE_TAIL = re.compile(r"[.!?]\s+(\S.*)$", re.DOTALL)


def last_fragment(text: str, max_length: int) -> str:
    """
    Return a trailing fragment of ``text`` to prefix the next chunk.

    The cut is made, in order of preference, at a sentence boundary
    inside the trailing window, at a word boundary, or at a plain
    character offset when the window holds a single long word.

    The result ends with one space and is never longer than
    ``max_length`` characters (including that space).

    Args:
        text: Text of the chunk just emitted
        max_length: Upper bound on the fragment length

    Returns:
        The fragment, or an empty string when nothing fits
    """
    stripped = text.strip()
    budget = max_length - 1  # room for the separating space
    if budget <= 0 or not stripped:
        return ""

    if len(stripped) <= budget:
        return stripped + " "

    window = stripped[-budget:]

    match = _SENTENCE_TAIL.search(window)
    if match:
        return match.group(1).strip() + " "

    # Window already starts on a word boundary
    if stripped[-budget - 1].isspace() or window[0].isspace():
        return window.strip() + " "

    # Drop the partial word at the start of the window
    parts = window.split(None, 1)
    if len(parts) == 2:
        return parts[1].strip() + " "

    return window + " "
