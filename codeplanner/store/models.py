# FILE: codeplanner/store/models.py
"""
SQLAlchemy model for chunk + embedding storage.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from codeplanner.db import Base


class ChunkRecord(Base):
    """
    One indexed chunk within an (owner, project) scope.

    kind: "function", "class", "file"
    embedding: JSON-encoded float array
    id: autoincrement, so ordering by id is insertion order (search tie-break)
    """
    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(128), nullable=False)
    project_id = Column(String(128), nullable=False)
    chunk_id = Column(String(512), nullable=False)

    kind = Column(String(20), nullable=False)
    source_path = Column(String(1024), nullable=False)
    name = Column(String(256), nullable=True)
    content = Column(Text, nullable=False)

    embedding = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "project_id", "chunk_id", name="uq_chunks_scope_chunk"),
        Index("ix_chunks_scope", "owner_id", "project_id"),
    )
