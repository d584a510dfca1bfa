"""API routers for the knowledge-graph RAG service."""

from kgrag.api.categories import router as categories_router
from kgrag.api.graph import router as graph_router
from kgrag.api.kg_admin import router as kg_admin_router
from kgrag.api.query import router as query_router
from kgrag.api.upload import router as upload_router

__all__ = [
    "categories_router",
    "graph_router",
    "kg_admin_router",
    "query_router",
    "upload_router",
]
