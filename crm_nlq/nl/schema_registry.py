# crm_nlq/nl/schema_registry.py
"""
Read-only description of the CRM schema used by the query engine.

The registry is built once from the SQLAlchemy metadata of the ORM models,
so the tables the engine can query and the joins it can make always match
the models the service itself uses. Nothing mutates it after import.
"""
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import MetaData
from sqlalchemy import types as sqltypes

log = logging.getLogger(__name__)

RelationshipType = str  # "one-to-one" | "one-to-many" | "many-to-one" | "many-to-many"


@dataclass(frozen=True)
class ColumnSchema:
    name: str
    type: str
    nullable: bool = True


@dataclass(frozen=True)
class TableSchema:
    table_name: str
    columns: Tuple[ColumnSchema, ...]
    primary_key: str = "id"

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def column(self, name: str) -> Optional[ColumnSchema]:
        return next((c for c in self.columns if c.name == name), None)


@dataclass(frozen=True)
class TableRelationship:
    """Directed FK edge: `from_table.foreign_key` references `to_table.references`."""
    from_table: str
    to_table: str
    foreign_key: str
    relationship_type: RelationshipType = "many-to-one"
    references: str = "id"

    def other(self, table: str) -> str:
        return self.to_table if table == self.from_table else self.from_table


def normalize_name(name: str) -> str:
    return name.strip().lower()


def _type_label(col_type) -> str:
    """Map a SQLAlchemy column type onto the registry's small type vocabulary."""
    # order matters: Text subclasses String, DateTime is checked before Date
    if isinstance(col_type, sqltypes.Boolean):
        return "boolean"
    if isinstance(col_type, sqltypes.Integer):
        return "integer"
    if isinstance(col_type, sqltypes.Numeric):
        return "number"
    if isinstance(col_type, sqltypes.DateTime):
        return "timestamp"
    if isinstance(col_type, sqltypes.Date):
        return "date"
    if isinstance(col_type, sqltypes.Text):
        return "text"
    if isinstance(col_type, sqltypes.String):
        return "string"
    if isinstance(col_type, sqltypes.JSON):
        return "json"
    return "string"


class SchemaRegistry:
    """Immutable lookup of tables, columns and the relationship graph."""

    def __init__(self, tables: Iterable[TableSchema], relationships: Iterable[TableRelationship]):
        self._tables: Mapping[str, TableSchema] = MappingProxyType(
            {normalize_name(t.table_name): t for t in tables}
        )
        self._relationships: Tuple[TableRelationship, ...] = tuple(relationships)
        adjacency: Dict[str, List[TableRelationship]] = {}
        for rel in self._relationships:
            adjacency.setdefault(rel.from_table, []).append(rel)
            adjacency.setdefault(rel.to_table, []).append(rel)
        self._adjacency: Mapping[str, Tuple[TableRelationship, ...]] = MappingProxyType(
            {t: tuple(rels) for t, rels in adjacency.items()}
        )

    @classmethod
    def from_metadata(cls, metadata: MetaData) -> "SchemaRegistry":
        tables: List[TableSchema] = []
        relationships: List[TableRelationship] = []
        for table in metadata.sorted_tables:
            cols = tuple(
                ColumnSchema(c.name, _type_label(c.type), bool(c.nullable)) for c in table.columns
            )
            pk_cols = [c.name for c in table.primary_key.columns]
            tables.append(TableSchema(table.name, cols, pk_cols[0] if pk_cols else "id"))
            for col in table.columns:
                for fk in col.foreign_keys:
                    relationships.append(
                        TableRelationship(
                            from_table=table.name,
                            to_table=fk.column.table.name,
                            foreign_key=col.name,
                            relationship_type="one-to-one" if col.unique else "many-to-one",
                            references=fk.column.name,
                        )
                    )
        # sorted_tables is dependency ordered; keep the registry alphabetical instead
        tables.sort(key=lambda t: t.table_name)
        return cls(tables, relationships)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, table_name: str) -> Optional[TableSchema]:
        return self._tables.get(normalize_name(table_name))

    def lookup(self, table_names: Sequence[str]) -> Dict[str, TableSchema]:
        """Schemas for the given tables; unknown names are skipped, never raised."""
        found: Dict[str, TableSchema] = {}
        for name in table_names:
            schema = self.get(name)
            if schema is None:
                log.warning("table %r not found in schema registry (known: %s)",
                            name, ", ".join(self._tables))
                continue
            found[schema.table_name] = schema
        return found

    def relationships_involving(self, table_names: Sequence[str]) -> List[TableRelationship]:
        wanted = {normalize_name(n) for n in table_names}
        return [r for r in self._relationships if r.from_table in wanted or r.to_table in wanted]

    def neighbours(self, table_name: str) -> Tuple[TableRelationship, ...]:
        """Every edge touching `table_name`, usable in either direction."""
        return self._adjacency.get(normalize_name(table_name), ())

    def all_tables(self) -> List[str]:
        return list(self._tables)

    @property
    def relationships(self) -> Tuple[TableRelationship, ...]:
        return self._relationships

    def has_table(self, table_name: str) -> bool:
        return normalize_name(table_name) in self._tables

    def has_column(self, table_name: str, column: str) -> bool:
        schema = self.get(table_name)
        return schema is not None and column in schema.column_names

    def describe(self) -> str:
        """Compact textual schema (tables, typed columns, FK edges) for prompts."""
        out = []
        for t in self._tables.values():
            cols = ", ".join(f"{c.name} {c.type}" for c in t.columns)
            out.append(f"- {t.table_name}({cols})")
        if self._relationships:
            out.append("\nForeign keys:")
            out.extend(
                f"  - {r.from_table}.{r.foreign_key} -> {r.to_table}.{r.references} ({r.relationship_type})"
                for r in self._relationships
            )
        return "\n".join(out)


def _build_default_registry() -> SchemaRegistry:
    from crm_nlq.db import Base
    import crm_nlq.models  # noqa: F401  (registers the tables on Base.metadata)
    return SchemaRegistry.from_metadata(Base.metadata)


# Process-wide registry, loaded once
REGISTRY = _build_default_registry()
