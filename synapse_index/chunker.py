"""
Text chunking for SynapseIndex.

Splits long content into overlapping windows, preferring to end a window on
a sentence boundary shortly after the nominal cut.
"""

from typing import List

SENTENCE_END = ". "


def smart_chunk(
    content: str,
    chunk_size: int = 500,
    overlap: int = 50,
    lookahead: int = 100
) -> List[str]:
    """
    Split content into overlapping chunks.

    Args:
        content: Text to split
        chunk_size: Nominal window size in characters
        overlap: Characters shared by consecutive windows
        lookahead: How far past the nominal end a ". " may extend the window

    Returns:
        List of stripped, non-empty chunks. Content no longer than
        chunk_size is returned as a single chunk, unmodified. Each window
        starts `overlap` characters before the previous end until the start
        passes the end of the content, which can leave a short trailing chunk.
    """
    if not content or not isinstance(content, str):
        return []
    if overlap >= chunk_size:
        raise ValueError(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")
    if len(content) <= chunk_size:
        return [content]

    chunks = []
    start = 0
    length = len(content)

    while start < length:
        end = start + chunk_size

        if end < length:
            boundary = content.find(SENTENCE_END, end)
            if boundary != -1 and boundary - end < lookahead:
                end = boundary + 1

        chunk = content[start:end].strip()
        if chunk:
            chunks.append(chunk)
        start = end - overlap

    return chunks
