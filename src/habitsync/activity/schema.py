"""
Local Store Schema Definition

The durable client cache is a namespaced key-value table. Keeping the schema
here, apart from the store logic, keeps schema evolution in one place.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List


class SchemaVersion(Enum):
    """Local store schema versions for migration support."""
    V1_0_0 = "1.0.0"
    CURRENT = V1_0_0


@dataclass
class TableDefinition:
    """Definition of a database table."""
    name: str
    sql: str
    description: str
    primary_key: List[str]
    indexes: List[str]


@dataclass
class StoreSchema:
    """Complete local store schema."""
    version: SchemaVersion
    tables: List[TableDefinition]

    def get_all_sql_statements(self) -> List[str]:
        """Get all SQL statements needed to create the schema."""
        statements = [table.sql for table in self.tables]
        for table in self.tables:
            statements.extend(table.indexes)
        return statements

    def get_table_names(self) -> List[str]:
        return [table.name for table in self.tables]


KV_STORE = TableDefinition(
    name="kv_store",
    description="Namespaced key-value entries; values are JSON documents",
    primary_key=["key"],
    sql="""
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    indexes=[],
)

LOCAL_STORE_SCHEMA = StoreSchema(
    version=SchemaVersion.CURRENT,
    tables=[KV_STORE],
)
