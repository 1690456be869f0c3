"""
SQLAlchemy models for the document store
"""
from sqlalchemy import Column, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .connection import Base


class Document(Base):
    """One JSON document, addressed by (collection, key)"""
    __tablename__ = 'documents'

    collection = Column(String(100), primary_key=True)
    key = Column(String(255), primary_key=True)
    data = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # Containment queries (data @> {...}) on approval requests
        Index('ix_documents_data_gin', 'data', postgresql_using='gin'),
    )
