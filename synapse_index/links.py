"""
Auto-Linker - discovers relationships between chunks that share keywords.

Links are undirected in meaning. Each is stored once with the orientation
chosen at discovery time; its id is derived from the ordered pair so the
reverse orientation can be detected as a duplicate.

Every new chunk is compared against every indexed chunk, so one ingestion
costs O(new * total) keyword intersections. That is fine for a local index
of moderate size and is the main cost of `index()`.
"""

import logging
from typing import Any, Dict, Iterable, List, Set

from .models import Chunk, Link

logger = logging.getLogger(__name__)

MIN_SHARED_KEYWORDS = 3


def link_id(from_id: str, to_id: str) -> str:
    return f"{from_id}_{to_id}"


def shared_keywords(a: Chunk, b: Chunk) -> List[str]:
    """Keywords of `a` that also appear in `b`, in `a`'s order."""
    other = set(b.keywords)
    return [k for k in a.keywords if k in other]


def link_strength(a: Chunk, b: Chunk, shared: List[str]) -> float:
    longest = max(len(a.keywords), len(b.keywords))
    return len(shared) / longest if longest else 0.0


def discover_links(
    new_chunks: Iterable[Chunk],
    all_chunks: List[Chunk],
    existing_links: List[Link],
    now: int,
    min_shared: int = MIN_SHARED_KEYWORDS
) -> List[Link]:
    """
    Find links between newly added chunks and the whole index.

    Args:
        new_chunks: Chunks added by the current ingestion (already in all_chunks)
        all_chunks: Every chunk in the index
        existing_links: Links already stored; new links are appended to it
        now: Discovery timestamp (ms)
        min_shared: Minimum number of shared keywords for a link

    Returns:
        The links created by this call
    """
    known: Set[str] = {link.id for link in existing_links}
    created = []

    for chunk in new_chunks:
        for other in all_chunks:
            if other.id == chunk.id:
                continue

            shared = shared_keywords(chunk, other)
            if len(shared) < min_shared:
                continue

            forward = link_id(chunk.id, other.id)
            if forward in known or link_id(other.id, chunk.id) in known:
                continue

            link = Link(
                id=forward,
                from_id=chunk.id,
                to_id=other.id,
                strength=link_strength(chunk, other, shared),
                shared_keywords=shared,
                discovered_at=now,
            )
            existing_links.append(link)
            known.add(forward)
            created.append(link)

    if created:
        logger.debug(f"Discovered {len(created)} new link(s)")

    return created


def linked_sources(chunk_id: str, links: List[Link], chunks: List[Chunk]) -> List[Dict[str, Any]]:
    """
    Every link touching `chunk_id`, with the chunk on the other end.

    The chunk entry is None if the other end is no longer indexed.
    """
    by_id = {chunk.id: chunk for chunk in chunks}
    result = []

    for link in links:
        if not link.touches(chunk_id):
            continue
        target = by_id.get(link.other_end(chunk_id))
        entry = link.model_dump()
        entry["chunk"] = target.model_dump() if target else None
        result.append(entry)

    return result
