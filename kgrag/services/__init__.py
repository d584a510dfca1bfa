"""
Services package - ingestion, knowledge-graph and query logic.

This package contains:
- LLM client abstraction (OpenAI-compatible and mock)
- Chunking, embedding batching and the pgvector store
- Knowledge extraction, entity resolution and the ingestion job
- Knowledge-graph count queries, intent routing and query orchestration
- Upload pipeline helpers (text extraction, category classification)
"""

from kgrag.services.chunking import ChunkData, chunk_text, normalize_text
from kgrag.services.classifier import CategoryClassifier
from kgrag.services.embedding import EmbeddingService
from kgrag.services.extraction import (
    ExtractedEntity,
    ExtractedEvent,
    ExtractedParticipant,
    ExtractedRelation,
    ExtractionResult,
    KgExtractionService,
)
from kgrag.services.graph_upsert import EntityResolver, GraphUpsertService, UpsertSummary
from kgrag.services.ingestion import DocumentIngestionService, IngestResult
from kgrag.services.ingestion_job import KgIngestionJob, KgIngestionStatus, KgRunResult
from kgrag.services.knowledge_graph import KgCountAnswer, KnowledgeGraphService
from kgrag.services.llm_client import (
    BaseLLMClient,
    EmbeddingError,
    LLMAPIError,
    LLMError,
    LLMMessage,
    LLMProvider,
    LLMRateLimitError,
    LLMResponse,
    MockLLMClient,
    OpenAIClient,
    get_llm_client,
)
from kgrag.services.llm_json import LLMJsonResult, ParseStatus, parse_llm_json
from kgrag.services.query import NO_MATCH_MESSAGE, QueryAnswer, QueryService, QuerySource
from kgrag.services.router import IntentRouter, RoutedIntent
from kgrag.services.text_extraction import TextExtractionError, extract_text
from kgrag.services.vector_store import ChunkSearchResult, SearchCache, VectorStoreService

__all__ = [
    # LLM Client
    "BaseLLMClient",
    "OpenAIClient",
    "MockLLMClient",
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "LLMError",
    "LLMAPIError",
    "LLMRateLimitError",
    "EmbeddingError",
    "get_llm_client",
    "LLMJsonResult",
    "ParseStatus",
    "parse_llm_json",
    # Ingestion
    "ChunkData",
    "chunk_text",
    "normalize_text",
    "EmbeddingService",
    "ChunkSearchResult",
    "SearchCache",
    "VectorStoreService",
    "CategoryClassifier",
    "TextExtractionError",
    "extract_text",
    "DocumentIngestionService",
    "IngestResult",
    # Knowledge Graph
    "KgExtractionService",
    "ExtractedEntity",
    "ExtractedEvent",
    "ExtractedParticipant",
    "ExtractedRelation",
    "ExtractionResult",
    "EntityResolver",
    "GraphUpsertService",
    "UpsertSummary",
    "KgIngestionJob",
    "KgIngestionStatus",
    "KgRunResult",
    "KgCountAnswer",
    "KnowledgeGraphService",
    # Query
    "IntentRouter",
    "RoutedIntent",
    "QueryService",
    "QueryAnswer",
    "QuerySource",
    "NO_MATCH_MESSAGE",
]
