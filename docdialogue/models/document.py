"""Document models for the ingestion pipeline."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class VersionStatus(str, Enum):
    """Lifecycle of an ingested document version."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class JobStatus(str, Enum):
    """Outcome recorded in the jobs ledger."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Document(BaseModel):
    """Logical source document."""

    id: str
    title: str
    slug: str


class DocumentVersion(BaseModel):
    """One ingested revision of a document."""

    id: str
    document_id: str
    status: VersionStatus = VersionStatus.PROCESSING
    source_uri: str
    version: int = Field(default=1, ge=1)


class ShareSurface(BaseModel):
    """Public binding from a page slug to the live version of a document."""

    document_id: str
    live_version_id: str
    page_slug: str
    page_url: str
    mode: str = "development"
    privacy: str = "private"


class Chunk(BaseModel):
    """Contiguous span of sanitized document text."""

    index: int
    text: str
    path: str = "root"
    heading: Optional[str] = None


class EmbeddingVector(BaseModel):
    """Embedding of one chunk, with a snippet kept for citations."""

    values: List[float]
    index: int
    path: str = "root"
    snippet: str = ""


class JobRecord(BaseModel):
    """Status ledger entry for one pipeline job."""

    document_id: str
    doc_version_id: str
    type: str = "ingest"
    status: JobStatus
    error: Optional[str] = None


class VectorMatch(BaseModel):
    """Scored match returned from a namespace query."""

    id: str
    score: float
    metadata: dict = Field(default_factory=dict)

    @property
    def idx(self) -> Optional[int]:
        value = self.metadata.get("idx")
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def path(self) -> str:
        return str(self.metadata.get("path") or "root")

    @property
    def snippet(self) -> str:
        return str(self.metadata.get("text_snippet") or "")


class VectorRecord(BaseModel):
    """Record written to a vector index namespace."""

    id: str
    values: List[float]
    metadata: dict = Field(default_factory=dict)
