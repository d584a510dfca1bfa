"""
FastAPI dependencies that assemble services for a request.

Process-wide objects (LLM client, search cache) live on ``app.state`` and
are created by `create_app()` / the lifespan; everything else is built per
request around the request's database session.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kgrag.db import get_db
from kgrag.db.repositories import Repositories
from kgrag.services.classifier import CategoryClassifier
from kgrag.services.embedding import EmbeddingService
from kgrag.services.extraction import KgExtractionService
from kgrag.services.ingestion import DocumentIngestionService
from kgrag.services.ingestion_job import KgIngestionJob
from kgrag.services.knowledge_graph import KnowledgeGraphService
from kgrag.services.llm_client import BaseLLMClient
from kgrag.services.query import QueryService
from kgrag.services.router import IntentRouter
from kgrag.services.vector_store import SearchCache, VectorStoreService


def get_llm(request: Request) -> BaseLLMClient:
    return request.app.state.llm_client


def get_search_cache(request: Request) -> SearchCache | None:
    return getattr(request.app.state, "search_cache", None)


def get_repositories(db: AsyncSession = Depends(get_db)) -> Repositories:
    return Repositories.for_session(db)


def get_knowledge_graph(repos: Repositories = Depends(get_repositories)) -> KnowledgeGraphService:
    return KnowledgeGraphService(repos.graph, repos.documents)


def get_query_service(
    repos: Repositories = Depends(get_repositories),
    llm: BaseLLMClient = Depends(get_llm),
    cache: SearchCache | None = Depends(get_search_cache),
) -> QueryService:
    return QueryService(
        router=IntentRouter(llm),
        knowledge_graph=KnowledgeGraphService(repos.graph, repos.documents),
        embedding=EmbeddingService(llm),
        vector_store=VectorStoreService(repos.chunks, cache),
        llm_client=llm,
    )


def get_ingestion_service(
    repos: Repositories = Depends(get_repositories),
    llm: BaseLLMClient = Depends(get_llm),
    cache: SearchCache | None = Depends(get_search_cache),
) -> DocumentIngestionService:
    return DocumentIngestionService(
        repos=repos,
        embedding=EmbeddingService(llm),
        vector_store=VectorStoreService(repos.chunks, cache),
        classifier=CategoryClassifier(llm),
    )


def get_ingestion_job(llm: BaseLLMClient = Depends(get_llm)) -> KgIngestionJob:
    """The job opens its own sessions so claims commit independently of the request."""
    return KgIngestionJob(extractor=KgExtractionService(llm))
