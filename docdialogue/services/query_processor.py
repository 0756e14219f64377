"""Query processing: raw retrieval and grounded answers for one document version."""

import logging
from typing import List, Optional, Sequence, Tuple

from docdialogue.core.config import QUERY_REQUIRED, Settings, settings
from docdialogue.core.exceptions import InputError, NotFoundError
from docdialogue.models.api import (
    AnswerResponse,
    Citation,
    DocumentRef,
    RetrieveHit,
    RetrieveResponse,
)
from docdialogue.models.document import VectorMatch
from docdialogue.monitoring.tracing import RequestTrace
from docdialogue.services.database import DatabaseService
from docdialogue.services.embedding import EmbeddingService
from docdialogue.services.llm import LLMService
from docdialogue.services.sanitizer import truncate_codepoints
from docdialogue.services.vector_db import VectorDBService, namespace_for

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTEXT = "I don't have enough context from the document to answer that."
NO_ANSWER = "I don't know."

SYSTEM_PROMPT = " ".join([
    "You are a careful assistant answering strictly from the provided document context.",
    "If the answer is not clearly supported, say you don't know.",
    "Cite sources inline like [#1], [#2] based on the tags in the context.",
    "Be concise and avoid speculation.",
])


def clamp_int(value: object, low: int, high: int) -> int:
    """Coerce to an int within ``[low, high]``; unparsable values give ``low``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if number != number or number in (float("inf"), float("-inf")):
        return low
    return max(low, min(int(number), high))


def context_tag(position: int) -> str:
    return f"#{position + 1}"


class QueryProcessor:
    """Embeds a question and searches the namespace of one document version."""

    def __init__(
        self,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        database: DatabaseService,
        config: Settings = settings,
        required_settings: Sequence[str] = QUERY_REQUIRED,
    ) -> None:
        """
        Initialize query processor.

        Args:
            vector_db: Vector database service.
            embedding_service: Embedding generation service; must use the
                same model as ingest or scores are meaningless.
            llm_service: LLM service.
            database: Relational store used to resolve slugs.
            config: Settings providing context limits.
            required_settings: Settings that must be present per request.
        """
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.llm_service = llm_service
        self.database = database
        self.config = config
        self.required_settings = tuple(required_settings)

    async def resolve(
        self, ref: DocumentRef, trace: RequestTrace
    ) -> Tuple[str, str]:
        """
        Resolve the (document id, version id) a request refers to.

        Explicit ids win; otherwise the slug's live version is used.

        Raises:
            NotFoundError: For an unknown slug.
            InputError: When neither ids nor a slug are given.
        """
        if ref.document_id and ref.doc_version_id:
            return ref.document_id, ref.doc_version_id

        if ref.slug:
            self.config.require("postgres_url")
            started = trace.clock()
            resolved = await self.database.resolve_slug(ref.slug)
            trace.latency("lookup_slug", started, slug=ref.slug)
            if not resolved:
                raise NotFoundError("Unknown slug")
            return resolved

        raise InputError("Provide slug or (document_id + doc_version_id)")

    async def search(
        self, ref: DocumentRef, top_k: int, trace: RequestTrace
    ) -> List[VectorMatch]:
        """
        Validate the request, embed the question and query its namespace.

        Returns:
            Matches sorted by descending score.
        """
        question = ref.query_text
        if not question:
            raise InputError("q required")
        self.config.require(*self.required_settings)

        document_id, doc_version_id = await self.resolve(ref, trace)

        started = trace.clock()
        vector = await self.embedding_service.embed_query(question)
        trace.latency("embed", started, q_len=len(question))

        started = trace.clock()
        namespace = namespace_for(document_id, doc_version_id)
        matches = await self.vector_db.query(namespace, vector, top_k)
        trace.latency("vector_query", started, hits=len(matches), namespace=namespace)

        return sorted(matches, key=lambda m: m.score, reverse=True)

    async def retrieve(
        self, ref: DocumentRef, trace: RequestTrace, max_top_k: int = 10
    ) -> RetrieveResponse:
        """Ranked raw snippets, no language-model step."""
        top_k = clamp_int(5 if ref.top_k_raw is None else ref.top_k_raw, 1, max_top_k)
        matches = await self.search(ref, top_k, trace)
        return RetrieveResponse(
            hits=[
                RetrieveHit(
                    score=match.score,
                    idx=match.idx,
                    path=match.path,
                    snippet=match.snippet,
                )
                for match in matches
            ]
        )

    def build_context(self, matches: List[VectorMatch]) -> Tuple[str, List[VectorMatch]]:
        """
        Concatenate tagged snippets up to ``max_context_chars``.

        Matches are appended in rank order, so the cap cuts the lowest
        ranked first. A match counts as used when its tag made it in.

        Returns:
            Tuple of (context string, used matches).
        """
        limit = self.config.max_context_chars
        context = ""
        used_matches: List[VectorMatch] = []

        for position, match in enumerate(matches):
            idx = match.idx if match.idx is not None else "?"
            block = f"[{context_tag(position)} | idx {idx}]\n{match.snippet}"
            separator = "\n\n" if context else ""
            remaining = limit - len(context) - len(separator)
            header_len = block.index("\n")
            if remaining <= header_len:
                break
            context += separator + truncate_codepoints(block, remaining)
            used_matches.append(match)

        return context, used_matches

    def build_citations(self, matches: List[VectorMatch]) -> List[Citation]:
        excerpt_chars = self.config.citation_excerpt_chars
        return [
            Citation(
                tag=context_tag(position),
                idx=match.idx,
                path=match.path,
                excerpt=truncate_codepoints(match.snippet, excerpt_chars),
                score=match.score,
            )
            for position, match in enumerate(matches)
        ]

    async def answer(
        self, ref: DocumentRef, trace: RequestTrace, max_top_k: int = 8
    ) -> AnswerResponse:
        """
        Answer a question grounded in the retrieved context, with citations.

        With no matches the canned insufficient-context reply is returned
        and the language model is not called.
        """
        top_k = clamp_int(5 if ref.top_k_raw is None else ref.top_k_raw, 1, max_top_k)
        matches = await self.search(ref, top_k, trace)

        if not matches:
            trace.latency("total", note="no_hits")
            return AnswerResponse(text=INSUFFICIENT_CONTEXT, citations=[])

        context, used_matches = self.build_context(matches)
        user_message = f"Question:\n{ref.query_text}\n\nContext:\n{context}"

        started = trace.clock()
        text = await self.llm_service.complete(SYSTEM_PROMPT, user_message)
        trace.latency(
            "llm", started,
            model=self.llm_service.model,
            chars_in=len(user_message),
            chars_out=len(text),
        )

        trace.latency("total", hits=len(matches), topK=top_k)
        return AnswerResponse(
            text=text or NO_ANSWER,
            citations=self.build_citations(used_matches),
        )
