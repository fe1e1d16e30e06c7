"""
Core database access
"""
from .database import StoreConnection, DocumentSource
