"""
SynapseIndex Models - Schema for the persisted index and analytics documents.

Documents:
- index: chunks, per-source chunk ids, links, summary metadata
- analytics: search log, popular terms, per-chunk usage

Fields are snake_case in Python and camelCase on disk.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

INDEX_VERSION = "3.0.0"


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize with on-disk field names."""
        return self.model_dump(mode="json", by_alias=True)


class Chunk(_Document):
    """
    A retrievable unit of indexed text.

    The id is `{source}_{type}_{timestamp}_{sequence}`, unique per ingestion.
    """
    id: str
    source: str
    content_type: str = Field(alias="type")
    content: str
    embedding: Dict[str, float] = Field(default_factory=dict)
    keywords: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    indexed_at: int


class Link(_Document):
    """An undirected relationship between two chunks sharing keywords."""
    id: str
    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    strength: float = Field(ge=0.0, le=1.0)
    shared_keywords: List[str] = Field(default_factory=list)
    discovered_at: int

    def touches(self, chunk_id: str) -> bool:
        return self.from_id == chunk_id or self.to_id == chunk_id

    def other_end(self, chunk_id: str) -> str:
        return self.to_id if self.from_id == chunk_id else self.from_id


class IndexMetadata(_Document):
    last_update: int = 0
    total_chunks: int = 0
    total_links: int = 0


class IndexDocument(_Document):
    """All chunks, per-source groupings and links."""
    version: str = INDEX_VERSION
    chunks: List[Chunk] = Field(default_factory=list)
    sources: Dict[str, List[str]] = Field(default_factory=dict)
    links: List[Link] = Field(default_factory=list)
    metadata: IndexMetadata = Field(default_factory=IndexMetadata)

    def refresh_totals(self, now: Optional[int] = None) -> None:
        """Re-sync summary counters with the chunk and link lists."""
        if now is not None:
            self.metadata.last_update = now
        self.metadata.total_chunks = len(self.chunks)
        self.metadata.total_links = len(self.links)

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        for chunk in self.chunks:
            if chunk.id == chunk_id:
                return chunk
        return None


class UsageRecord(_Document):
    clicks: int = 0
    times_used: int = 0
    last_accessed: Optional[int] = None
    sources: List[str] = Field(default_factory=list)


class SearchLogEntry(_Document):
    query: str
    timestamp: int
    source: str = "all"
    result_count: int = 0


class AnalyticsDocument(_Document):
    """Search log, popular query terms and per-chunk usage."""
    searches: List[SearchLogEntry] = Field(default_factory=list)
    popular_terms: Dict[str, int] = Field(default_factory=dict)
    context_usage: Dict[str, UsageRecord] = Field(default_factory=dict)


class DateRange(BaseModel):
    """Inclusive range of index timestamps (ms since epoch)."""
    start: int
    end: int

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("date range end is before start")
        return self


class SearchOptions(BaseModel):
    """
    Search configuration.

    Attributes:
        source: Only chunks from this source tag (None = all)
        content_type: Only chunks of this content type (None = all)
        limit: Maximum results
        threshold: Minimum similarity for a chunk to qualify
        date_range: Only chunks indexed within this range
    """
    model_config = ConfigDict(populate_by_name=True)

    source: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="type")
    limit: int = Field(default=10, ge=1)
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    date_range: Optional[DateRange] = None


def new_index_document(sources: List[str], now: int) -> IndexDocument:
    """A fresh, empty index with the default source tags."""
    return IndexDocument(
        sources={source: [] for source in sources},
        metadata=IndexMetadata(last_update=now),
    )
