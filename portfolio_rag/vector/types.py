"""
Value types shared by the vector store adapters.
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class IndexedDocument:
    """A content record as stored in the vector index."""

    document_id: str
    """`type:recordId`, unique in the index"""

    text: str
    """Formatted text that was embedded"""

    metadata: Dict[str, object]
    """Flat scalar metadata, always carrying source_type, source_id and indexed_at"""

    embedding: List[float] = field(default_factory=list)
    """Embedding vector (empty when listed without vectors)"""


@dataclass
class SearchResult:
    """One similarity hit, ordered by ascending distance."""

    document_id: str
    text: str
    metadata: Dict[str, object]
    distance: float

    @property
    def similarity(self) -> float:
        """1 - distance, meaningful for cosine space."""
        return 1.0 - self.distance

    @property
    def source_type(self) -> str:
        return str(self.metadata.get("source_type", ""))
