"""
Synapse Engine - the core of SynapseIndex's context retrieval.

This module handles:
- Ingesting content from any source (chunk, embed, auto-link)
- Multi-factor ranked search (similarity, recency, interaction, keywords)
- Active context selection with usage tracking
- Click tracking, suggestions and statistics
- Persisting the index and analytics after every mutation
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from .analytics import (
    build_stats,
    clicks_for,
    count_terms,
    init_usage,
    log_search,
    record_click,
    record_context_use,
    salvage_analytics,
    smart_suggestions,
    empty_stats,
)
from .cache import LRUCache, make_cache_key
from .chunker import smart_chunk
from .config import Settings, settings
from .links import discover_links, linked_sources
from .logging_config import with_request_id
from .models import (
    AnalyticsDocument,
    Chunk,
    IndexDocument,
    SearchOptions,
    new_index_document,
)
from .similarity import (
    embed,
    explain_relevance,
    interaction_score,
    keyword_boost,
    match_keywords,
    query_terms,
    recency_score,
    similarity,
)
from .storage import SnapshotStorage, StorageError, create_storage

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_blank(text: Any) -> bool:
    return not isinstance(text, str) or not text.strip()


class SynapseEngine:
    """
    Owns the index, the analytics and the search cache for one storage location.

    Mutating operations are coroutines and run one at a time; each one
    completes after both documents have been handed to the storage backend.
    A failed write is logged and kept in `last_storage_error`, the in-memory
    state stays authoritative.

    Usage:
        engine = await open_engine()
        await engine.index("zenith", "markdown", text, {"title": "Notes"})
        results = await engine.search("quick fox", source="zenith")
    """

    def __init__(
        self,
        storage: SnapshotStorage,
        config: Optional[Settings] = None,
        clock: Optional[Clock] = None
    ):
        self.storage = storage
        self.config = config or settings
        self._clock = clock or _now_ms

        self.content_index = new_index_document(self.config.default_sources, self._clock())
        self.analytics = AnalyticsDocument()
        self.cache = LRUCache(self.config.cache_capacity)

        self.load_errors: Dict[str, StorageError] = {}
        self.last_storage_error: Optional[StorageError] = None

        self._lock = asyncio.Lock()
        self._last_ingest = 0

    async def __aenter__(self) -> "SynapseEngine":
        await self.load()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _now(self) -> int:
        return self._clock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    async def _load_document(self, name: str, model, salvage=None):
        """
        Load and validate one document; None means use the default.

        If validation fails and `salvage` can rebuild the document from its
        valid entries, the rebuilt document is used and the dropped entries
        are reported in `load_errors`.
        """
        try:
            raw = await self.storage.load(name)
        except StorageError as e:
            logger.warning(f"Resetting {name} after load failure: {e}")
            self.load_errors[name] = e
            return None

        if raw is None:
            return None

        try:
            return model.model_validate(raw)
        except ValidationError as e:
            salvaged = salvage(raw) if salvage else None
            if salvaged is not None:
                document, dropped = salvaged
                error = StorageError(name, f"dropped {dropped} invalid entries")
                error.__cause__ = e
                logger.warning(f"Loaded {name} without its invalid entries: {error}")
                self.load_errors[name] = error
                return document

            error = StorageError(name, f"invalid document: {e.error_count()} validation error(s)")
            error.__cause__ = e
            logger.warning(f"Resetting {name}, stored document is corrupt: {error}")
            self.load_errors[name] = error
            return None

    async def load(self) -> Dict[str, StorageError]:
        """
        Load both documents from storage.

        Missing documents start empty. Unreadable or invalid documents reset
        to empty defaults, except that an analytics document with a few bad
        entries keeps the rest. Errors are returned and kept in `load_errors`.
        """
        async with self._lock:
            self.load_errors = {}

            index = await self._load_document("index", IndexDocument)
            if index is None:
                index = new_index_document(self.config.default_sources, self._now())
            for source in self.config.default_sources:
                index.sources.setdefault(source, [])
            index.refresh_totals()
            self.content_index = index

            analytics = await self._load_document("analytics", AnalyticsDocument, salvage_analytics)
            self.analytics = analytics or AnalyticsDocument()

            if self.content_index.chunks:
                self._last_ingest = max(chunk.indexed_at for chunk in self.content_index.chunks)

            logger.info(f"Loaded {len(self.content_index.chunks)} chunks and {len(self.content_index.links)} links")
            return dict(self.load_errors)

    async def _persist(self) -> Optional[StorageError]:
        """Write both documents. Returns the last write error, if any."""
        error = None
        for name, document in (("index", self.content_index), ("analytics", self.analytics)):
            try:
                await self.storage.save(name, document.to_document())
            except StorageError as e:
                logger.warning(f"Failed to save {name}: {e}")
                error = e

        self.last_storage_error = error
        return error

    async def close(self) -> None:
        await self.storage.close()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def _ingest_timestamp(self) -> int:
        """Current time, bumped past the previous ingestion so chunk ids stay unique."""
        timestamp = max(self._now(), self._last_ingest + 1)
        self._last_ingest = timestamp
        return timestamp

    @with_request_id
    async def index(
        self,
        source: str,
        content_type: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Index content from any source.

        Args:
            source: Origin tag (zenith, canvas, chat, chronos, ...)
            content_type: Kind of content (markdown, code, conversation, ...)
            content: Text to index
            metadata: Opaque key-value data stored on every chunk

        Returns:
            Dict with status, the new chunks, the new links and whether the
            result was persisted
        """
        if _is_blank(content):
            return {"status": "skipped", "chunks": [], "links": []}

        config = self.config
        pieces = smart_chunk(
            content,
            chunk_size=config.chunk_size,
            overlap=config.chunk_overlap,
            lookahead=config.sentence_lookahead,
        )

        async with self._lock:
            timestamp = self._ingest_timestamp()
            new_chunks: List[Chunk] = []

            for i, text in enumerate(pieces):
                embedding = embed(text, config.max_embedding_terms)
                chunk = Chunk(
                    id=f"{source}_{content_type}_{timestamp}_{i}",
                    source=source,
                    content_type=content_type,
                    content=text,
                    embedding=embedding,
                    keywords=list(embedding)[:config.max_keywords],
                    metadata={
                        **(metadata or {}),
                        "chunkIndex": i,
                        "totalChunks": len(pieces),
                        "timestamp": timestamp,
                    },
                    indexed_at=timestamp,
                )
                self.content_index.chunks.append(chunk)
                self.content_index.sources.setdefault(source, []).append(chunk.id)
                init_usage(self.analytics, chunk.id, source)
                new_chunks.append(chunk)

            new_links = discover_links(
                new_chunks,
                self.content_index.chunks,
                self.content_index.links,
                now=self._now(),
                min_shared=config.min_shared_keywords,
            )

            self.content_index.refresh_totals(timestamp)
            error = await self._persist()

        logger.info(
            f"Indexed {len(new_chunks)} chunk(s) from {source} with {len(new_links)} new link(s)",
            extra={"source": source, "chunk_count": len(new_chunks), "link_count": len(new_links)}
        )

        return {
            "status": "indexed",
            "chunks": [chunk.model_dump() for chunk in new_chunks],
            "links": [link.model_dump() for link in new_links],
            "persisted": error is None,
        }

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------
    def _resolve_options(
        self,
        options: Union[SearchOptions, Dict[str, Any], None],
        overrides: Dict[str, Any]
    ) -> SearchOptions:
        """Configured defaults, then `options`, then keyword overrides."""
        if isinstance(options, SearchOptions):
            given = options.model_dump(by_alias=True, exclude_unset=True)
        else:
            given = dict(options or {})

        merged = {"limit": self.config.default_limit, "threshold": self.config.default_threshold}
        for layer in (given, overrides):
            layer = dict(layer)
            if "content_type" in layer:
                layer["type"] = layer.pop("content_type")
            merged.update(layer)

        return SearchOptions.model_validate(merged)

    async def _search(self, query: str, options: SearchOptions) -> List[Dict[str, Any]]:
        """Ranked search. Must be called with the lock held."""
        cache_key = make_cache_key(
            query=query,
            source=options.source,
            type=options.content_type,
            limit=options.limit,
            threshold=options.threshold,
        )
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for {query!r}")
            return cached

        now = self._now()
        entry = log_search(self.analytics, query, options.source, now)

        query_vec = embed(query, self.config.max_embedding_terms)
        terms = query_terms(query)
        date_range = options.date_range
        results = []

        for chunk in self.content_index.chunks:
            if options.source and chunk.source != options.source:
                continue
            if options.content_type and chunk.content_type != options.content_type:
                continue
            if date_range and not (date_range.start <= chunk.indexed_at <= date_range.end):
                continue

            sim = similarity(query_vec, chunk.embedding, terms)
            if sim < options.threshold:
                continue

            recency = recency_score(chunk.indexed_at, now)
            interaction = interaction_score(clicks_for(self.analytics, chunk.id))
            matched = match_keywords(chunk.keywords, terms)
            score = sim * recency * interaction * keyword_boost(matched)

            results.append({
                "id": chunk.id,
                "source": chunk.source,
                "type": chunk.content_type,
                "content": chunk.content,
                "metadata": chunk.metadata,
                "relevance": min(score * 100, 100.0),
                "explanation": explain_relevance(sim, recency, interaction, matched),
                "keywords": matched,
                "indexed_at": chunk.indexed_at,
            })

        results.sort(key=lambda r: r["relevance"], reverse=True)
        limited = results[:options.limit]
        logger.debug(
            f"Search for {query!r} matched {len(results)} chunk(s)",
            extra={"source": options.source or "all", "result_count": len(limited)}
        )

        entry.result_count = len(limited)
        count_terms(self.analytics, terms)

        await self._persist()
        self.cache.set(cache_key, limited)

        return limited

    @with_request_id
    async def search(
        self,
        query: Optional[str],
        options: Union[SearchOptions, Dict[str, Any], None] = None,
        **overrides: Any
    ) -> List[Dict[str, Any]]:
        """
        Search indexed content with multi-factor ranking.

        Options may be given as a SearchOptions, a dict, keyword arguments,
        or a mix (keywords win). Identical parameters are served from the
        cache, including the relevance numbers computed the first time.

        Returns:
            Result dicts sorted by relevance (0-100), best first
        """
        if _is_blank(query):
            return []

        resolved = self._resolve_options(options, overrides)
        async with self._lock:
            return await self._search(query, resolved)

    @with_request_id
    async def get_active_context(self, query: Optional[str], source: str = "chat") -> List[Dict[str, Any]]:
        """
        Top context chunks for a consumer, with usage tracking.

        Searches every source with the context limit and threshold, then
        records that each returned chunk was used by `source`.
        """
        if _is_blank(query):
            return []

        options = SearchOptions(
            limit=self.config.context_limit,
            threshold=self.config.context_threshold,
        )

        async with self._lock:
            results = await self._search(query, options)
            record_context_use(self.analytics, [r["id"] for r in results], source, self._now())
            await self._persist()

        return results

    @with_request_id
    async def record_interaction(self, chunk_id: str) -> bool:
        """
        Record a click on a chunk.

        Returns:
            False (and changes nothing) if the chunk id is unknown
        """
        async with self._lock:
            if not record_click(self.analytics, chunk_id, self._now()):
                logger.debug(f"Ignoring interaction with unknown chunk {chunk_id}")
                return False
            await self._persist()
        return True

    def get_smart_suggestions(self, source: str = "chat", recent_terms: Sequence[str] = ()) -> List[Dict[str, Any]]:
        """
        Most-clicked chunks, annotated with keywords matching recent terms.

        `source` names the module asking. It is reserved for per-module
        suggestions and does not filter or reorder the result yet; every
        source sees the same suggestions.
        """
        return smart_suggestions(self.content_index, self.analytics, recent_terms)

    def get_linked_sources(self, chunk_id: str) -> List[Dict[str, Any]]:
        """Links touching a chunk, each with the chunk on the other end."""
        return linked_sources(chunk_id, self.content_index.links, self.content_index.chunks)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    @with_request_id
    async def delete_source(self, chunk_id: str) -> Dict[str, Any]:
        """
        Remove a chunk with its links and usage record.

        Returns:
            Status dict with the number of links removed
        """
        async with self._lock:
            before = len(self.content_index.chunks)
            self.content_index.chunks = [c for c in self.content_index.chunks if c.id != chunk_id]
            removed = before - len(self.content_index.chunks)

            for source, ids in self.content_index.sources.items():
                self.content_index.sources[source] = [i for i in ids if i != chunk_id]

            links_before = len(self.content_index.links)
            self.content_index.links = [link for link in self.content_index.links if not link.touches(chunk_id)]
            removed_links = links_before - len(self.content_index.links)

            self.analytics.context_usage.pop(chunk_id, None)
            self.content_index.refresh_totals()
            await self._persist()

        if removed:
            logger.info(f"Deleted chunk {chunk_id} and {removed_links} link(s)")

        return {
            "status": "deleted" if removed else "not_found",
            "chunk_id": chunk_id,
            "removed_links": removed_links,
        }

    def stats(self) -> Dict[str, Any]:
        """Statistics about indexed content. Never raises."""
        try:
            return build_stats(self.content_index, self.analytics, len(self.cache))
        except Exception as e:
            logger.error(f"Stats generation failed: {e}")
            return empty_stats()

    @with_request_id
    async def clear(self) -> None:
        """Drop all indexed content, analytics and cached results."""
        async with self._lock:
            self.content_index = new_index_document(self.config.default_sources, self._now())
            self.analytics = AnalyticsDocument()
            self.cache.clear()
            await self._persist()

        logger.info("Cleared index and analytics")


async def open_engine(
    config: Optional[Settings] = None,
    storage: Optional[SnapshotStorage] = None,
    clock: Optional[Clock] = None
) -> SynapseEngine:
    """Create an engine for the configured storage location and load it."""
    config = config or settings
    engine = SynapseEngine(storage or create_storage(config), config, clock)
    await engine.load()
    return engine
