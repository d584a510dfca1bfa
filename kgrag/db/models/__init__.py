"""
Database models.

- Document: uploaded source material with knowledge-graph status
- Chunk: embedded text segment
- GraphEntity / EntityAlias: graph nodes and their alternative names
- Event / EventParticipant: extracted events and who took part
- Relation: graph edges (entity or free-text object)
- KgRunHistory: one row per ingestion job run
"""

from kgrag.db.models.chunk import Chunk
from kgrag.db.models.document import Document
from kgrag.db.models.entity import EntityAlias, GraphEntity
from kgrag.db.models.event import Event, EventParticipant
from kgrag.db.models.kg_run import KgRunHistory
from kgrag.db.models.relation import Relation

__all__ = [
    "Document",
    "Chunk",
    "GraphEntity",
    "EntityAlias",
    "Event",
    "EventParticipant",
    "Relation",
    "KgRunHistory",
]
