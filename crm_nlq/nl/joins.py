# crm_nlq/nl/joins.py
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from crm_nlq.nl.schema_registry import REGISTRY, SchemaRegistry, TableRelationship, normalize_name

log = logging.getLogger(__name__)


class UnresolvedJoin(ValueError):
    """A requested table cannot be connected to the rest of the query."""

    def __init__(self, table: str, connected: Sequence[str]):
        self.table = table
        self.connected = list(connected)
        super().__init__(
            f"cannot join table {table!r} to {', '.join(self.connected)}: "
            "no relationship path within one hop"
        )


@dataclass(frozen=True)
class Join:
    table: str
    on_left: str    # qualified column of the table being joined
    on_right: str   # qualified column of a table already in the plan

    def sql(self) -> str:
        return f"INNER JOIN {self.table} ON {self.on_left} = {self.on_right}"


@dataclass
class JoinPlan:
    driving: str
    joins: List[Join] = field(default_factory=list)

    @property
    def tables(self) -> List[str]:
        return [self.driving] + [j.table for j in self.joins]


def dedupe_tables(tables: Sequence[str]) -> List[str]:
    """Normalize names and drop repeats, keeping the first occurrence."""
    seen: List[str] = []
    for t in tables:
        name = normalize_name(t)
        if name and name not in seen:
            seen.append(name)
    return seen


def _join_for(rel: TableRelationship, new_table: str, registry: SchemaRegistry) -> Join:
    """Build the ON condition for joining `new_table` over `rel` (FK side = PK side)."""
    target = registry.get(rel.to_table)
    pk = rel.references or (target.primary_key if target else "id")
    fk_side = f"{rel.from_table}.{rel.foreign_key}"
    pk_side = f"{rel.to_table}.{pk}"
    if new_table == rel.from_table:
        return Join(new_table, fk_side, pk_side)
    return Join(new_table, pk_side, fk_side)


def _direct_edge(table: str, connected: Sequence[str], registry: SchemaRegistry) -> Optional[TableRelationship]:
    # plan order decides between several candidate edges, so the result is deterministic
    for anchor in connected:
        for rel in registry.neighbours(table):
            if rel.other(table) == anchor and rel.from_table != rel.to_table:
                return rel
    return None


def _one_hop(table: str, connected: Sequence[str],
             registry: SchemaRegistry) -> Optional[Tuple[str, TableRelationship, TableRelationship]]:
    """Find an intermediate table linking `table` to the plan: (via, via->plan edge, via->table edge)."""
    for rel_to_new in registry.neighbours(table):
        via = rel_to_new.other(table)
        if via in connected or via == table:
            continue
        rel_to_plan = _direct_edge(via, connected, registry)
        if rel_to_plan is not None:
            return via, rel_to_plan, rel_to_new
    return None


def resolve_plan(tables: Sequence[str], registry: SchemaRegistry = REGISTRY) -> JoinPlan:
    """
    Connect `tables` into an INNER JOIN plan driven by the first table.
    Each further table joins over a direct FK edge to any table already in the
    plan, or through one intermediate table. Tables that cannot be reached yet
    are retried after every successful join, so the result does not depend on
    the order they were requested in. Raises UnresolvedJoin when a full pass
    over the pending tables connects none of them.
    """
    ordered = dedupe_tables(tables) or ["contacts"]
    plan = JoinPlan(driving=ordered[0])
    connected = [plan.driving]
    pending = ordered[1:]

    while pending:
        waiting: List[str] = []
        for table in pending:
            if table in connected:
                # already pulled in as an intermediate
                continue
            if not _connect(table, plan, connected, registry):
                waiting.append(table)

        if len(waiting) == len(pending):
            log.warning("join resolution failed: tables=%s plan=%s", waiting, connected)
            raise UnresolvedJoin(waiting[0], connected)
        pending = waiting

    return plan


def _connect(table: str, plan: JoinPlan, connected: List[str], registry: SchemaRegistry) -> bool:
    """Join `table` into the plan if it is reachable now; False leaves the plan untouched."""
    rel = _direct_edge(table, connected, registry)
    if rel is not None:
        plan.joins.append(_join_for(rel, table, registry))
        connected.append(table)
        return True

    hop = _one_hop(table, connected, registry)
    if hop is None:
        return False

    via, rel_to_plan, rel_to_new = hop
    log.info("joining %s through intermediate table %s", table, via)
    plan.joins.append(_join_for(rel_to_plan, via, registry))
    connected.append(via)
    plan.joins.append(_join_for(rel_to_new, table, registry))
    connected.append(table)
    return True
