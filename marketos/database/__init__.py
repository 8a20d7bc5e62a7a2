"""
Database Module
"""
from .connection import Database
from .models import Base
from .store import Store

__all__ = [
    "Database",
    "Base",
    "Store",
]
