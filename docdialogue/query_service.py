"""Query Service: retrieval, grounded answers and voice session URLs."""

import hmac
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from docdialogue.api.errors import parse_model, read_json_body, register_error_handlers
from docdialogue.api.health import check_all_dependencies, check_readiness
from docdialogue.core.config import settings
from docdialogue.core.dependencies import (
    get_query_processor,
    get_voice_agent,
    services,
)
from docdialogue.core.exceptions import AuthError
from docdialogue.models.api import (
    AnswerResponse,
    DocumentRef,
    RetrieveResponse,
    SignedUrlResponse,
)
from docdialogue.monitoring.metrics import (
    queries_total,
    query_errors_total,
    query_latency_seconds,
)
from docdialogue.monitoring.tracing import RequestTrace
from docdialogue.services.query_processor import QueryProcessor
from docdialogue.services.voice_agent import VoiceAgentService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

TOOL_SECRET_HEADER = "x-eleven-tool-secret"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Query Service started")
    yield
    await services.shutdown()
    logger.info("Query Service stopped")


app = FastAPI(title="Query Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


def unwrap_tool_payload(body: dict) -> dict:
    """Voice agents may nest the arguments under question/query/input."""
    for key in ("question", "query", "input"):
        if isinstance(body.get(key), dict):
            return body[key]
    return body


def check_tool_secret(request: Request) -> None:
    """Require the shared secret header when one is configured."""
    if not settings.tool_secret:
        return
    supplied = request.headers.get(TOOL_SECRET_HEADER, "")
    if not hmac.compare_digest(supplied.encode(), settings.tool_secret.encode()):
        raise AuthError("unauthorized")


@app.post("/api/retrieve", response_model=RetrieveResponse)
async def retrieve(
    request: Request,
    processor: QueryProcessor = Depends(get_query_processor),
) -> RetrieveResponse:
    """
    Return the top ranked snippets for a question about one document version.

    Body: ``{q|question|prompt, topK?, document_id?, doc_version_id?, slug?}``.
    """
    trace = RequestTrace("retrieve")
    request.state.trace = trace
    queries_total.labels(endpoint="retrieve").inc()
    start_time = time.time()

    try:
        ref = parse_model(DocumentRef, await read_json_body(request))
        response = await processor.retrieve(ref, trace)
    except Exception:
        query_errors_total.labels(endpoint="retrieve").inc()
        raise

    query_latency_seconds.labels(endpoint="retrieve").observe(time.time() - start_time)
    return response


@app.post("/api/agent/tools/answer_from_doc", response_model=AnswerResponse)
async def answer_from_doc(
    request: Request,
    processor: QueryProcessor = Depends(get_query_processor),
) -> AnswerResponse:
    """
    Answer a question strictly from a document, with inline citations.

    Called as a tool by the voice agent; guarded by a shared secret when set.
    """
    trace = RequestTrace("answer_from_doc")
    request.state.trace = trace
    queries_total.labels(endpoint="answer").inc()
    start_time = time.time()

    try:
        check_tool_secret(request)
        body = unwrap_tool_payload(await read_json_body(request))
        ref = parse_model(DocumentRef, body)
        response = await processor.answer(ref, trace)
    except Exception:
        query_errors_total.labels(endpoint="answer").inc()
        raise

    query_latency_seconds.labels(endpoint="answer").observe(time.time() - start_time)
    return response


@app.get("/api/eleven/get-signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    agent_id: Optional[str] = Query(default=None),
    voice_agent: VoiceAgentService = Depends(get_voice_agent),
) -> SignedUrlResponse:
    """Exchange an agent id for a signed voice conversation URL."""
    signed_url = await voice_agent.get_signed_url(agent_id)
    return SignedUrlResponse(signedUrl=signed_url)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(services)
    return {"status": result["status"], "service": "query-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services)
    return {"service": "query-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
