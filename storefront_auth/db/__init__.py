"""
Database package with a small public API.

This makes `from storefront_auth.db import Base, Database` work and keeps
imports consistent.
"""

from .session import Base, Database

__all__ = [
    "Base",
    "Database",
]
