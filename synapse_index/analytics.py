"""
Analytics - usage tracking, search logging, suggestions and statistics.

Usage records feed the interaction boost in ranking; the search log and
popular-term counters feed statistics. All updates are append or increment
only.
"""

import json
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .models import AnalyticsDocument, IndexDocument, SearchLogEntry, UsageRecord

logger = logging.getLogger(__name__)

TOP_SEARCH_TERMS = 10
TOP_ACCESSED = 5
TOP_SUGGESTIONS = 3


def init_usage(analytics: AnalyticsDocument, chunk_id: str, source: str) -> UsageRecord:
    record = UsageRecord(sources=[source])
    analytics.context_usage[chunk_id] = record
    return record


def clicks_for(analytics: AnalyticsDocument, chunk_id: str) -> int:
    record = analytics.context_usage.get(chunk_id)
    return record.clicks if record else 0


def record_click(analytics: AnalyticsDocument, chunk_id: str, now: int) -> bool:
    """Count a click. Returns False for an unknown chunk id."""
    record = analytics.context_usage.get(chunk_id)
    if record is None:
        return False
    record.clicks += 1
    record.last_accessed = now
    return True


def record_context_use(
    analytics: AnalyticsDocument,
    chunk_ids: Iterable[str],
    source: str,
    now: int
) -> int:
    """
    Mark chunks as handed out as context to `source`.

    Returns:
        Number of usage records updated
    """
    updated = 0
    for chunk_id in chunk_ids:
        record = analytics.context_usage.get(chunk_id)
        if record is None:
            continue
        record.times_used += 1
        record.last_accessed = now
        if source not in record.sources:
            record.sources.append(source)
        updated += 1
    return updated


def log_search(analytics: AnalyticsDocument, query: str, source: Optional[str], now: int) -> SearchLogEntry:
    entry = SearchLogEntry(query=query, timestamp=now, source=source or "all")
    analytics.searches.append(entry)
    return entry


def count_terms(analytics: AnalyticsDocument, terms: Sequence[str]) -> None:
    for term in terms:
        analytics.popular_terms[term] = analytics.popular_terms.get(term, 0) + 1


def salvage_analytics(raw: Any) -> Optional[Tuple[AnalyticsDocument, int]]:
    """
    Rebuild a stored analytics document entry by entry.

    Malformed search log entries, term counts and usage records are dropped,
    everything else is kept.

    Returns:
        The document and the number of entries dropped, or None if the
        document itself does not have the analytics shape
    """
    if not isinstance(raw, dict):
        return None

    searches = raw.get("searches", [])
    terms = raw.get("popularTerms", {})
    usage = raw.get("contextUsage", {})
    if not isinstance(searches, list) or not isinstance(terms, dict) or not isinstance(usage, dict):
        return None

    analytics = AnalyticsDocument()
    dropped = 0

    for entry in searches:
        try:
            analytics.searches.append(SearchLogEntry.model_validate(entry))
        except ValidationError:
            dropped += 1

    for term, count in terms.items():
        if isinstance(count, int) and not isinstance(count, bool):
            analytics.popular_terms[term] = count
        else:
            dropped += 1

    for chunk_id, record in usage.items():
        try:
            analytics.context_usage[chunk_id] = UsageRecord.model_validate(record)
        except ValidationError:
            dropped += 1

    return analytics, dropped


def smart_suggestions(
    index: IndexDocument,
    analytics: AnalyticsDocument,
    recent_terms: Sequence[str] = ()
) -> List[Dict[str, Any]]:
    """
    Suggest the most-clicked chunks that are still indexed.

    `common_terms` lists the chunk keywords that partially match any of the
    recent terms (case-insensitive).
    """
    chunks = {chunk.id: chunk for chunk in index.chunks}
    lowered = [t.lower() for t in recent_terms if isinstance(t, str) and t]

    clicked = [
        (chunk_id, record) for chunk_id, record in analytics.context_usage.items()
        if chunk_id in chunks and record.clicks > 0
    ]
    clicked.sort(key=lambda item: item[1].clicks, reverse=True)

    suggestions = []
    for chunk_id, record in clicked[:TOP_SUGGESTIONS]:
        chunk = chunks[chunk_id]
        common = [k for k in chunk.keywords if any(k in t or t in k for t in lowered)]
        suggestions.append({
            "id": chunk.id,
            "source": chunk.source,
            "content": chunk.content,
            "metadata": chunk.metadata,
            "reason": "Previously accessed",
            "access_count": record.clicks,
            "common_terms": common,
        })

    return suggestions


def empty_stats() -> Dict[str, Any]:
    return {
        "total_chunks": 0,
        "total_links": 0,
        "sources": {},
        "top_search_terms": [],
        "top_accessed_content": [],
        "cache_hit_rate": 0,
        "disk_usage": 0,
    }


def build_stats(index: IndexDocument, analytics: AnalyticsDocument, cache_size: int) -> Dict[str, Any]:
    """
    Summarize the index and analytics.

    Every section is computed independently; a malformed section is logged
    and left at its default so the rest of the report still comes back.

    `cache_hit_rate` is cache occupancy over total searches, as a percentage.
    It approximates how many searches could be served from cache, it is not
    a measured hit ratio.
    """
    stats = empty_stats()

    try:
        by_source = Counter(chunk.source for chunk in index.chunks if chunk is not None)
        stats["total_chunks"] = len(index.chunks)
        stats["sources"] = dict(by_source)
    except Exception as e:
        logger.warning(f"Could not count chunks: {e}")

    try:
        stats["total_links"] = len(index.links)
    except Exception as e:
        logger.warning(f"Could not count links: {e}")

    try:
        term_counts: Counter = Counter()
        for search in analytics.searches:
            query = getattr(search, "query", None)
            if not isinstance(query, str) or not query:
                logger.debug(f"Skipping invalid search entry: {search!r}")
                continue
            term_counts.update(t for t in query.lower().split() if len(t) > 2)
        stats["top_search_terms"] = [
            {"term": term, "count": count}
            for term, count in term_counts.most_common(TOP_SEARCH_TERMS)
        ]
    except Exception as e:
        logger.warning(f"Could not compute top search terms: {e}")

    try:
        chunks = {chunk.id: chunk for chunk in index.chunks if chunk is not None}
        usage = [
            (chunk_id, record) for chunk_id, record in analytics.context_usage.items()
            if isinstance(getattr(record, "clicks", None), int)
        ]
        usage.sort(key=lambda item: item[1].clicks, reverse=True)

        top = []
        for chunk_id, record in usage[:TOP_ACCESSED]:
            chunk = chunks.get(chunk_id)
            metadata = chunk.metadata if chunk else {}
            top.append({
                "chunk_id": chunk_id,
                "clicks": record.clicks,
                "title": metadata.get("filename") or metadata.get("title") or "Unknown",
                "source": chunk.source if chunk else "unknown",
            })
        stats["top_accessed_content"] = top
    except Exception as e:
        logger.warning(f"Could not compute top accessed content: {e}")

    try:
        total_searches = len(analytics.searches)
        if total_searches > 0:
            stats["cache_hit_rate"] = round(cache_size / total_searches * 100)
    except Exception as e:
        logger.warning(f"Could not compute cache hit rate: {e}")

    try:
        index_size = len(json.dumps(index.to_document()))
        analytics_size = len(json.dumps(analytics.to_document()))
        stats["disk_usage"] = round((index_size + analytics_size) / 1024)
    except Exception as e:
        logger.warning(f"Could not estimate disk usage: {e}")

    return stats
