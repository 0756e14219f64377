"""Pydantic models for the HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IngestRequest(BaseModel):
    """Body of ``POST /api/jobs/ingest``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    slug: Optional[str] = None
    object_path: Optional[str] = Field(default=None, alias="objectPath")
    document_id: Optional[str] = None
    doc_version_id: Optional[str] = None


class IngestResponse(BaseModel):
    ok: bool = True
    document_id: str
    doc_version_id: str
    page_slug: str
    page_url: str
    chunks: int


class DialogueCreateRequest(BaseModel):
    """Body of ``POST /api/dialogues/create``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    page_slug_base: Optional[str] = Field(default=None, alias="pageSlugBase")
    object_path: Optional[str] = Field(default=None, alias="objectPath")
    mode: str = "development"
    privacy: str = "private"


class DialogueCreateResponse(BaseModel):
    ok: bool = True
    document_id: str
    doc_version_id: str
    page_slug: str
    page_url: str
    status: str


class DocumentRef(BaseModel):
    """Question plus the document it is about, as sent by widgets and agents."""

    model_config = ConfigDict(extra="ignore")

    q: Optional[object] = None
    question: Optional[object] = None
    prompt: Optional[object] = None
    topK: Optional[object] = None
    topk: Optional[object] = None
    document_id: Optional[str] = None
    doc_version_id: Optional[str] = None
    slug: Optional[str] = None

    @property
    def query_text(self) -> str:
        for value in (self.q, self.question, self.prompt):
            if value is not None and not isinstance(value, dict):
                return str(value).strip()
        return ""

    @property
    def top_k_raw(self) -> object:
        return self.topK if self.topK is not None else self.topk


class RetrieveHit(BaseModel):
    score: float
    idx: Optional[int] = None
    path: str = "root"
    snippet: str = ""


class RetrieveResponse(BaseModel):
    ok: bool = True
    hits: List[RetrieveHit]


class Citation(BaseModel):
    tag: str
    idx: Optional[int] = None
    path: str = "root"
    excerpt: str = ""
    score: float


class AnswerResponse(BaseModel):
    ok: bool = True
    text: str
    citations: List[Citation]


class SignedUrlResponse(BaseModel):
    signedUrl: str
