"""
Neo4j database access.
"""

from rpgf.database.client import Neo4jClient
from rpgf.database.schema import SchemaManager

__all__ = ["Neo4jClient", "SchemaManager"]
