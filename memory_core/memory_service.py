"""Memory Service: chunk storage, scoped search and context retrieval."""

import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from memory_core.api.health import check_all_dependencies, check_readiness
from memory_core.core.config import Settings, settings as default_settings
from memory_core.core.dependencies import ServiceContainer
from memory_core.core.exceptions import (
    MemoryCoreError,
    NotFoundError,
    StoreUnavailableError,
    UpstreamEmbeddingError,
    ValidationError,
)
from memory_core.models.api import (
    ChunkResponse,
    ChunkWrite,
    ContextRequest,
    ContextResponse,
    DocumentCreate,
    DocumentCreated,
    DocumentIngest,
    DocumentListResponse,
    DocumentSearchRequest,
    DocumentStatusUpdate,
    SearchResponse,
    SessionSearchRequest,
    StatsResponse,
    SweepResponse,
)
from memory_core.models.document import Document
from memory_core.services.context_aggregator import format_context

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def http_error(error: MemoryCoreError) -> HTTPException:
    """Translate a domain error into an HTTP error."""
    if isinstance(error, ValidationError):
        status_code = 422
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, StoreUnavailableError):
        status_code = 503
    elif isinstance(error, UpstreamEmbeddingError):
        status_code = 502
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(error))


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def resolve_query(
    services: ServiceContainer,
    query_vector: Optional[List[float]],
    query_text: Optional[str],
    query_model: Optional[str],
) -> Tuple[List[float], Optional[str]]:
    """
    Return the query vector and model filter for a search request.

    A given vector is used as is. Otherwise *query_text* is embedded and
    the search is limited to chunks from the embedding model.

    Raises:
        ValidationError: If neither a vector nor text is given.
        UpstreamEmbeddingError: If the provider fails.
    """
    if query_vector is not None:
        return query_vector, query_model
    if not query_text:
        raise ValidationError("Either query_vector or query_text is required")

    model = query_model or services.embedding_service.model
    vector = await services.embedding_service.embed(query_text, model=model)
    return vector, model


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the memory service application.

    Args:
        settings: Application settings; defaults to the environment.
        container: Prebuilt service container; built from settings when
            omitted. Its lifecycle is managed by the app lifespan.

    Returns:
        FastAPI application.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        services = container or ServiceContainer(settings)
        await services.initialize()
        app.state.container = services
        logger.info(f"{settings.service_name} started")
        yield
        await services.shutdown()
        logger.info(f"{settings.service_name} stopped")

    app = FastAPI(title="Memory Service", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Documents ────────────────────────────────────────────

    @app.post("/api/documents", response_model=DocumentCreated, status_code=201)
    async def create_document(
        document: DocumentCreate,
        services: ServiceContainer = Depends(get_container),
    ) -> DocumentCreated:
        try:
            document_id = await services.registry.create_document(
                session_id=document.session_id,
                name=document.name,
                file_ref=document.file_ref,
                file_type=document.file_type,
                file_size=document.file_size,
            )
            return DocumentCreated(id=document_id)
        except MemoryCoreError as e:
            logger.error(f"Failed to create document: {str(e)}")
            raise http_error(e) from e

    @app.get("/api/documents", response_model=DocumentListResponse)
    async def list_documents(
        session_id: Optional[str] = None,
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        services: ServiceContainer = Depends(get_container),
    ) -> DocumentListResponse:
        """
        List documents, newest first.

        Args:
            session_id: Only documents uploaded in this session.
            limit: Maximum number of documents to return.
            offset: Number of documents to skip.
        """
        try:
            documents, total = await services.registry.list_documents(
                session_id=session_id, limit=limit, offset=offset)
            return DocumentListResponse(
                documents=documents, total=total, limit=limit, offset=offset)
        except MemoryCoreError as e:
            logger.error(f"Failed to list documents: {str(e)}")
            raise http_error(e) from e

    @app.get("/api/documents/{document_id}", response_model=Document)
    async def get_document(
        document_id: str, services: ServiceContainer = Depends(get_container)
    ) -> Document:
        try:
            return await services.registry.get_document(document_id)
        except MemoryCoreError as e:
            raise http_error(e) from e

    @app.patch("/api/documents/{document_id}/status", response_model=Document)
    async def update_document_status(
        document_id: str,
        update: DocumentStatusUpdate,
        services: ServiceContainer = Depends(get_container),
    ) -> Document:
        try:
            return await services.registry.update_document_status(
                document_id,
                update.status,
                chunk_count=update.chunk_count,
                error_message=update.error_message,
            )
        except MemoryCoreError as e:
            logger.warning(
                f"Status update for document {document_id} rejected: {str(e)}")
            raise http_error(e) from e

    @app.delete("/api/documents/{document_id}", status_code=204)
    async def delete_document(
        document_id: str, services: ServiceContainer = Depends(get_container)
    ) -> None:
        """Delete a document and its chunks. Unknown ids are accepted."""
        try:
            await services.registry.delete_document(document_id)
        except MemoryCoreError as e:
            logger.error(f"Failed to delete document {document_id}: {str(e)}")
            raise http_error(e) from e

    @app.get("/api/documents/{document_id}/chunks", response_model=List[ChunkResponse])
    async def get_document_chunks(
        document_id: str, services: ServiceContainer = Depends(get_container)
    ) -> List[ChunkResponse]:
        try:
            chunks = await services.registry.get_chunks_by_document(document_id)
            return [ChunkResponse.from_chunk(c) for c in chunks]
        except MemoryCoreError as e:
            raise http_error(e) from e

    @app.post("/api/documents/{document_id}/ingest", response_model=Document)
    async def ingest_document(
        document_id: str,
        body: DocumentIngest,
        services: ServiceContainer = Depends(get_container),
    ) -> Document:
        """Split, embed and store the extracted text of a document."""
        try:
            return await services.ingestor.ingest_text(
                document_id, body.text, model=body.model)
        except MemoryCoreError as e:
            raise http_error(e) from e

    # ── Chunks and search ────────────────────────────────────

    @app.post("/api/chunks", response_model=ChunkResponse, status_code=201)
    async def write_chunk(
        body: ChunkWrite, services: ServiceContainer = Depends(get_container)
    ) -> ChunkResponse:
        try:
            chunk = await services.writer.write(
                session_id=body.session_id,
                source_type=body.source_type,
                text=body.text,
                vector=body.vector,
                model=body.model,
                provenance=body.provenance,
            )
            return ChunkResponse.from_chunk(chunk)
        except MemoryCoreError as e:
            raise http_error(e) from e

    @app.post("/api/search/session", response_model=SearchResponse)
    async def search_session(
        body: SessionSearchRequest,
        services: ServiceContainer = Depends(get_container),
    ) -> SearchResponse:
        start_time = time.time()
        try:
            query_vector, query_model = await resolve_query(
                services, body.query_vector, body.query_text, body.query_model)
            results = await services.retriever.search_session(
                body.session_id,
                query_vector,
                source_type=body.source_type,
                top_k=body.top_k,
                min_score=body.min_score,
                query_model=query_model,
            )
        except MemoryCoreError as e:
            raise http_error(e) from e
        latency_ms = (time.time() - start_time) * 1000
        return SearchResponse(results=results, latency_ms=latency_ms)

    @app.post("/api/search/documents", response_model=SearchResponse)
    async def search_documents(
        body: DocumentSearchRequest,
        services: ServiceContainer = Depends(get_container),
    ) -> SearchResponse:
        start_time = time.time()
        try:
            query_vector, query_model = await resolve_query(
                services, body.query_vector, body.query_text, body.query_model)
            results = await services.retriever.search_global_documents(
                query_vector,
                top_k=body.top_k,
                min_score=body.min_score,
                query_model=query_model,
            )
        except MemoryCoreError as e:
            raise http_error(e) from e
        latency_ms = (time.time() - start_time) * 1000
        return SearchResponse(results=results, latency_ms=latency_ms)

    @app.post("/api/context", response_model=ContextResponse)
    async def retrieve_context(
        body: ContextRequest, services: ServiceContainer = Depends(get_container)
    ) -> ContextResponse:
        """
        Assemble memory context for one agent turn.

        Args:
            body: Session plus a query vector or query text.

        Returns:
            Provenance-tagged fragments and a rendered prompt block.
        """
        start_time = time.time()
        try:
            if body.query_vector is None and body.query_text:
                result = await services.aggregator.retrieve_context_for_text(
                    body.session_id, body.query_text, model=body.query_model)
            else:
                result = await services.aggregator.retrieve_context(
                    body.session_id, body.query_vector, query_model=body.query_model)
        except MemoryCoreError as e:
            logger.error(f"Context retrieval failed: {str(e)}")
            raise http_error(e) from e

        latency_ms = (time.time() - start_time) * 1000
        logger.info(f"Context assembled in {latency_ms:.2f}ms")
        return ContextResponse(
            session_id=result.session_id,
            fragments=result.fragments,
            degraded=result.degraded,
            degraded_reason=result.degraded_reason,
            formatted=format_context(result),
            latency_ms=latency_ms,
        )

    # ── Admin ────────────────────────────────────────────────

    @app.get("/api/stats", response_model=StatsResponse)
    async def stats(services: ServiceContainer = Depends(get_container)) -> StatsResponse:
        try:
            return StatsResponse(**await services.registry.stats())
        except MemoryCoreError as e:
            raise http_error(e) from e

    @app.post("/api/maintenance/sweep", response_model=SweepResponse)
    async def sweep(services: ServiceContainer = Depends(get_container)) -> SweepResponse:
        """Remove document chunks whose document no longer exists."""
        try:
            removed = await services.registry.sweep_orphans()
            return SweepResponse(removed=removed)
        except MemoryCoreError as e:
            raise http_error(e) from e

    # ── Health ───────────────────────────────────────────────

    @app.get("/health")
    async def health(services: ServiceContainer = Depends(get_container)) -> dict:
        """
        Health check endpoint with dependency verification.

        Returns:
            Health status with service dependencies.
        """
        result = await check_all_dependencies(
            services.store, services.embedding_service)
        return {"service": settings.service_name, **result}

    @app.get("/ready")
    async def readiness(services: ServiceContainer = Depends(get_container)) -> dict:
        result = await check_readiness(services.store)
        return {"service": settings.service_name, **result}

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
