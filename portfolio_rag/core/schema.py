"""
Indexable type schemas and shared value types.

Type schemas are validated once at startup; an unknown watched type or a
relation formatter on an undeclared field is a configuration error, not a
sync-time failure.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .errors import UnknownContentType


class IndexableTypeSchema(BaseModel):
    """How one content type becomes an indexed document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str
    fields: List[str]
    metadata_fields: List[str] = []
    # field -> template such as "{coding.name} ({level})"
    relation_formats: Dict[str, str] = {}
    # relations the content store must resolve before notifying
    populate: List[str] = []

    @field_validator('fields')
    @classmethod
    def fields_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('at least one searchable field is required')
        return v

    @model_validator(mode='after')
    def relation_formats_must_target_metadata(self):
        unknown = set(self.relation_formats) - set(self.metadata_fields)
        if unknown:
            raise ValueError(f'relation_formats declared for non-metadata fields: {sorted(unknown)}')
        return self


class IndexableTypesConfig(BaseModel):
    """Process-wide indexing configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    types: Dict[str, IndexableTypeSchema]
    watched: List[str]

    @model_validator(mode='after')
    def watched_types_must_be_indexable(self):
        unknown = [t for t in self.watched if t not in self.types]
        if unknown:
            raise ValueError(f'watched types are not indexable: {unknown}')
        return self

    def schema_for(self, content_type: str) -> IndexableTypeSchema:
        schema = self.types.get(content_type)
        if schema is None:
            raise UnknownContentType(content_type)
        return schema

    def is_watched(self, content_type: str) -> bool:
        return content_type in self.watched

    def label_for(self, content_type: str) -> str:
        schema = self.types.get(content_type)
        return schema.label if schema else content_type


DEFAULT_INDEXABLE_TYPES = {
    "project": {
        "label": "Project",
        "fields": ["title", "description"],
        "metadata_fields": ["github_link", "link_demo", "link_npm", "ranking", "codings"],
        "relation_formats": {"codings": "{name}"},
        "populate": ["codings"],
    },
    "me": {
        "label": "Profile",
        "fields": ["firstName", "lastName", "postName"],
        "metadata_fields": [
            "email", "phoneNumber", "website", "github", "linkedin",
            "coding_skills", "languages", "diplomas", "experiences",
        ],
        "relation_formats": {
            "coding_skills": "{coding.name} ({level})",
            "languages": "{name} ({level})",
        },
        "populate": ["coding_skills.coding", "languages", "diplomas", "experiences"],
    },
    "coding": {
        "label": "Technology",
        "fields": ["name", "category"],
        "metadata_fields": ["category", "project"],
        "populate": ["project"],
    },
    "experience": {
        "label": "Experience",
        "fields": ["title", "business", "descriptions"],
        "metadata_fields": ["businessWebsite", "startDate", "endDate"],
    },
}


def load_indexable_types(path: Optional[str] = None, watched: Optional[List[str]] = None) -> IndexableTypesConfig:
    """
    Load and validate the indexable type configuration.

    Args:
        path: Optional JSON file with a {"types": {...}, "watched": [...]} document
        watched: Optional override of the watched type list

    Raises:
        pydantic.ValidationError: when the configuration is inconsistent
    """
    if path:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        types = raw.get("types", {})
        default_watched = raw.get("watched", list(types))
    else:
        types = DEFAULT_INDEXABLE_TYPES
        default_watched = ["project", "me"]

    return IndexableTypesConfig(
        types=types,
        watched=watched if watched is not None else default_watched,
    )


@dataclass
class RelevanceDecision:
    """Whether a question warrants retrieval, and with which keywords."""
    should_retrieve: bool
    confidence: float
    keywords: List[str]
    reasoning: str
    source: str = "llm"  # llm | fast_path | fallback


@dataclass
class SyncStats:
    """Counters of a batch sync pass."""
    synced: int = 0
    errors: int = 0
    skipped: int = 0
    total: int = 0
    failed_ids: List[str] = field(default_factory=list)

    def merge(self, other: "SyncStats") -> None:
        self.synced += other.synced
        self.errors += other.errors
        self.skipped += other.skipped
        self.total += other.total
        self.failed_ids.extend(other.failed_ids)

    def as_dict(self) -> Dict:
        return {
            "synced": self.synced,
            "errors": self.errors,
            "skipped": self.skipped,
            "total": self.total,
            "failed_ids": list(self.failed_ids),
        }


@dataclass
class LifecycleEvent:
    """Notification emitted by the content store after a committed write."""
    event: str  # created | updated | deleted
    type: str
    record: Dict
    occurred_at: datetime = field(default_factory=datetime.now)
