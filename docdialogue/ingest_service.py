"""Ingest Service: turns uploaded documents into versioned, searchable vectors."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from docdialogue.api.errors import parse_model, read_json_body, register_error_handlers
from docdialogue.api.health import check_all_dependencies, check_readiness
from docdialogue.core.config import settings
from docdialogue.core.dependencies import (
    get_dialogue_service,
    get_ingest_pipeline,
    services,
)
from docdialogue.models.api import (
    DialogueCreateRequest,
    DialogueCreateResponse,
    IngestRequest,
    IngestResponse,
)
from docdialogue.monitoring.metrics import ingest_stage_seconds
from docdialogue.monitoring.tracing import RequestTrace
from docdialogue.services.dialogues import DialogueService
from docdialogue.services.ingest_pipeline import IngestPipeline

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Ingest Service started")
    yield
    await services.shutdown()
    logger.info("Ingest Service stopped")


app = FastAPI(title="Ingest Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


@app.post("/api/jobs/ingest", response_model=IngestResponse)
async def ingest(
    request: Request,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> IngestResponse:
    """
    Ingest an uploaded object as a document version.

    Body: ``{title?, slug?, objectPath, document_id?, doc_version_id?}``.
    """
    trace = RequestTrace("ingest", histogram=ingest_stage_seconds)
    request.state.trace = trace
    body = await read_json_body(request)
    result = await pipeline.run(parse_model(IngestRequest, body), trace)
    logger.info(
        f"Ingested {result.document_id}/{result.doc_version_id} "
        f"({result.chunks} chunks) trace={trace.trace_id}")
    return result


@app.post("/api/dialogues/create", response_model=DialogueCreateResponse)
async def create_dialogue(
    request: Request,
    dialogues: DialogueService = Depends(get_dialogue_service),
) -> DialogueCreateResponse:
    """Register a shareable dialogue page for an uploaded object."""
    request.state.trace = RequestTrace("dialogues")
    body = await read_json_body(request)
    return await dialogues.create(parse_model(DialogueCreateRequest, body))


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(services)
    return {"status": result["status"], "service": "ingest-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services)
    return {"service": "ingest-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
