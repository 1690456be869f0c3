"""
Database package initialization
"""
from .connection import Base, DatabaseConnection, build_database_url
from .models import Document
from .document_store import DocumentStore, MemoryDocumentStore, SqlDocumentStore, open_document_store

__all__ = [
    'Base',
    'DatabaseConnection',
    'build_database_url',
    'Document',
    'DocumentStore',
    'MemoryDocumentStore',
    'SqlDocumentStore',
    'open_document_store',
]
