# crm_nlq/nl/compiler.py
"""
QueryIntent -> parameterized Postgres SELECT.

Values never reach the SQL text: every filter value, time-range date and
ownership id is bound as a positional parameter ($1, $2, ...). Identifiers
are only emitted after they have been resolved against the schema registry
(table names in FROM/JOIN are the one exception, see _normalize_tables).
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from crm_nlq.nl.joins import JoinPlan, dedupe_tables, resolve_plan
from crm_nlq.nl.schema_registry import REGISTRY, SchemaRegistry, TableSchema
from crm_nlq.nl.security import ROW_SECURITY_POLICY, OwnershipRule, ownership_predicates
from crm_nlq.nl.time_range import is_iso_date, relative_predicate
from crm_nlq.nl.types import CompiledQuery, QueryIntent, QueryOptions, UserContext

log = logging.getLogger(__name__)

DEFAULT_TABLE = "contacts"

# aggregation type -> (SQL function, result alias)
AGGREGATES: Dict[str, Tuple[str, str]] = {
    "count":   ("COUNT", "count"),
    "sum":     ("SUM", "total"),
    "average": ("AVG", "average"),
    "max":     ("MAX", "max_value"),
    "min":     ("MIN", "min_value"),
}
_ALIAS_TO_AGG = {alias: kind for kind, (_, alias) in AGGREGATES.items()}

_COMPARISONS = {"$eq": "=", "$ne": "<>", "$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")
_TIME_TYPES = ("timestamp", "date")


class _Params:
    """Accumulates bound values and hands out their $n placeholders."""

    def __init__(self):
        self.values: List[Any] = []

    def bind(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


class QueryCompiler:
    def __init__(self, registry: SchemaRegistry = REGISTRY,
                 policy: Mapping[Tuple[str, str], OwnershipRule] = ROW_SECURITY_POLICY):
        self.registry = registry
        self.policy = policy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def compile(self, intent: QueryIntent, user_context: Optional[UserContext] = None,
                options: Optional[QueryOptions] = None) -> CompiledQuery:
        """
        Compile an intent into SQL + params.
        Clause order (and so parameter order): WHERE filters, ownership
        predicates, time range, then HAVING.
        Raises UnresolvedJoin if the tables cannot be connected.
        """
        options = options or QueryOptions()
        plan = resolve_plan(self._normalize_tables(intent.tables, user_context), self.registry)
        planned = plan.tables
        driving = self.registry.get(plan.driving)
        params = _Params()

        aggregate = self._aggregate(intent.aggregation_type, plan.driving, driving)
        group_cols = self._resolve_fields(options.group_by, planned, "GROUP BY")

        where: List[str] = []
        deferred: List[Tuple[str, Any]] = []
        for key, value in intent.filters.items():
            name = key.strip().lower()
            if aggregate is not None and name in _ALIAS_TO_AGG:
                deferred.append((name, value))
                continue
            column = self._resolve_column(name, planned)
            if column is None:
                log.warning("dropping filter on unknown field %r (tables=%s)", key, planned)
                continue
            where.extend(self._predicates(column, value, params))

        where.extend(self._ownership(planned, user_context, params))

        if intent.time_range is not None:
            where.extend(self._time_range(intent.time_range.start, intent.time_range.end,
                                          plan.driving, driving, params))

        having: List[str] = []
        for alias, value in deferred:
            expr = self._aggregate_expr(_ALIAS_TO_AGG[alias], plan.driving, driving)
            if expr is None:
                log.warning("dropping HAVING filter %r: %s has no measure column", alias, plan.driving)
                continue
            having.extend(self._predicates(expr, value, params))

        clauses = [
            "SELECT " + ", ".join(self._projection(aggregate, group_cols, plan, driving)),
            f"FROM {plan.driving}",
        ]
        clauses.extend(j.sql() for j in plan.joins)
        if where:
            clauses.append("WHERE " + " AND ".join(where))
        if group_cols:
            clauses.append("GROUP BY " + ", ".join(group_cols))
        if having:
            clauses.append("HAVING " + " AND ".join(having))
        order = self._order_by(options, planned, aggregate)
        if order:
            clauses.append("ORDER BY " + ", ".join(order))
        if options.limit is not None:
            clauses.append(f"LIMIT {int(options.limit)}")
        if options.offset:
            clauses.append(f"OFFSET {int(options.offset)}")

        sql = " ".join(clauses)
        explanation = self._explain(intent, planned, where, having, user_context)
        log.info("compiled query: tables=%s params=%d sql=%s", planned, len(params.values), sql)
        return CompiledQuery(sql=sql, params=params.values, affected_tables=planned,
                             explanation=explanation)

    # ------------------------------------------------------------------
    # Tables and identifiers
    # ------------------------------------------------------------------
    def _normalize_tables(self, tables: Sequence[str], ctx: Optional[UserContext] = None) -> List[str]:
        """
        Dedupe and lower-case table names, defaulting to contacts.
        Unregistered names are tolerated only when they are plain identifiers,
        and never for a caller whose rows are restricted.
        """
        restricted = ctx is not None and ctx.role != "admin"
        out: List[str] = []
        for table in dedupe_tables(tables):
            if self.registry.has_table(table):
                out.append(table)
            elif restricted:
                log.warning("dropping unregistered table %r for role %s", table, ctx.role)
            elif _IDENTIFIER.match(table):
                log.warning("table %r is not in the schema registry; compiling it as-is", table)
                out.append(table)
            else:
                log.warning("dropping table name %r: not a registered table or identifier", table)
        return out or [DEFAULT_TABLE]

    def _resolve_column(self, field: str, planned: Sequence[str]) -> Optional[str]:
        """Map `col` or `table.col` onto a qualified registry column of a planned table."""
        field = field.strip().lower()
        if "." in field:
            table, _, col = field.partition(".")
            if table in planned and self.registry.has_column(table, col):
                return f"{table}.{col}"
            return None
        for table in planned:
            if self.registry.has_column(table, field):
                return f"{table}.{field}"
        return None

    def _resolve_fields(self, fields: Sequence[str], planned: Sequence[str], clause: str) -> List[str]:
        out: List[str] = []
        for f in fields:
            col = self._resolve_column(f, planned)
            if col is None:
                log.warning("dropping %s field %r: unknown column", clause, f)
            elif col not in out:
                out.append(col)
        return out

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------
    @staticmethod
    def _measure_column(schema: Optional[TableSchema]) -> Optional[str]:
        if schema is None:
            return None
        return next((c.name for c in schema.columns if c.type == "number"), None)

    def _aggregate_expr(self, kind: str, table: str, schema: Optional[TableSchema]) -> Optional[str]:
        func, _ = AGGREGATES[kind]
        if kind == "count":
            return "COUNT(*)"
        measure = self._measure_column(schema)
        if measure is None:
            return None
        return f"{func}({table}.{measure})"

    def _aggregate(self, kind: Optional[str], table: str,
                   schema: Optional[TableSchema]) -> Optional[Tuple[str, str]]:
        """(expression, alias) of the projected aggregate, or None."""
        if kind is None:
            return None
        expr = self._aggregate_expr(kind, table, schema)
        if expr is None:
            log.warning("%s of %s has no numeric column to aggregate; counting rows instead", kind, table)
            return "COUNT(*)", "count"
        return expr, AGGREGATES[kind][1]

    def _projection(self, aggregate: Optional[Tuple[str, str]], group_cols: List[str],
                    plan: JoinPlan, driving: Optional[TableSchema]) -> List[str]:
        if aggregate is not None:
            expr, alias = aggregate
            return [f"{expr} AS {alias}"] + group_cols
        if group_cols:
            return list(group_cols)
        if driving is None:
            return ["*"]
        return [f"{plan.driving}.{c}" for c in driving.column_names]

    # ------------------------------------------------------------------
    # WHERE / HAVING
    # ------------------------------------------------------------------
    def _in_list(self, column: str, values: Any, params: _Params) -> str:
        if not isinstance(values, (list, tuple, set)):
            values = [values]
        if not values:
            return "FALSE"
        return f"{column} IN ({', '.join(params.bind(v) for v in values)})"

    def _predicates(self, column: str, value: Any, params: _Params) -> List[str]:
        """Turn one filter value (scalar, list or operator object) into SQL conditions."""
        if isinstance(value, dict):
            out: List[str] = []
            for op, operand in value.items():
                op = op.strip().lower() if isinstance(op, str) else op
                if op == "$in":
                    out.append(self._in_list(column, operand, params))
                elif op == "$nin":
                    cond = self._in_list(column, operand, params)
                    # NOT IN () excludes nothing
                    if cond != "FALSE":
                        out.append(cond.replace(" IN (", " NOT IN (", 1))
                elif op == "$like":
                    out.append(f"{column} LIKE {params.bind(operand)}")
                elif op == "$between":
                    if isinstance(operand, (list, tuple)) and len(operand) == 2:
                        out.append(f"{column} BETWEEN {params.bind(operand[0])} AND {params.bind(operand[1])}")
                    else:
                        log.warning("ignoring $between on %s: expected [low, high], got %r", column, operand)
                elif op in ("$null", "$notnull"):
                    is_null = bool(operand) == (op == "$null")
                    out.append(f"{column} IS {'' if is_null else 'NOT '}NULL")
                elif op in _COMPARISONS:
                    if operand is None:
                        if op in ("$eq", "$ne"):
                            out.append(f"{column} IS {'NOT ' if op == '$ne' else ''}NULL")
                        else:
                            log.warning("ignoring %s null comparison on %s", op, column)
                        continue
                    out.append(f"{column} {_COMPARISONS[op]} {params.bind(operand)}")
                else:
                    log.warning("ignoring unsupported operator %r on %s", op, column)
            return out
        if isinstance(value, (list, tuple)):
            return [self._in_list(column, list(value), params)]
        if value is None:
            return [f"{column} IS NULL"]
        return [f"{column} = {params.bind(value)}"]

    def _ownership(self, planned: Sequence[str], ctx: Optional[UserContext], params: _Params) -> List[str]:
        if ctx is None:
            log.warning("no user context; row security not applied to %s", list(planned))
            return []
        return [f"{column} = {params.bind(value)}"
                for column, value in ownership_predicates(planned, ctx, self.policy)]

    @staticmethod
    def _time_column(schema: Optional[TableSchema]) -> Optional[str]:
        if schema is None:
            return None
        if "created_at" in schema.column_names:
            return "created_at"
        return next((c.name for c in schema.columns if c.type in _TIME_TYPES), None)

    def _time_range(self, start: Optional[str], end: Optional[str], table: str,
                    schema: Optional[TableSchema], params: _Params) -> List[str]:
        col = self._time_column(schema)
        if col is None:
            log.warning("time range ignored: %s has no date/timestamp column", table)
            return []
        column = f"{table}.{col}"
        out: List[str] = []
        for bound, op, as_end in ((start, ">=", False), (end, "<=", True)):
            if not bound:
                continue
            if is_iso_date(bound):
                out.append(f"{column} {op} {params.bind(bound.strip())}")
                continue
            pred = relative_predicate(bound, column, as_end=as_end)
            if pred is None:
                log.warning("ignoring unrecognized time bound %r", bound)
            else:
                out.append(pred)
        return out

    # ------------------------------------------------------------------
    # ORDER BY / explanation
    # ------------------------------------------------------------------
    def _order_by(self, options: QueryOptions, planned: Sequence[str],
                  aggregate: Optional[Tuple[str, str]]) -> List[str]:
        out: List[str] = []
        for o in options.order_by:
            name = o.field.strip().lower()
            if aggregate is not None and name == aggregate[1]:
                target = aggregate[1]
            else:
                target = self._resolve_column(name, planned)
            if target is None:
                log.warning("dropping ORDER BY field %r: unknown column", o.field)
                continue
            out.append(f"{target} {o.direction}")
        return out

    @staticmethod
    def _explain(intent: QueryIntent, planned: Sequence[str], where: Sequence[str],
                 having: Sequence[str], ctx: Optional[UserContext]) -> str:
        parts = [f"Querying {', '.join(planned)}"]
        if intent.aggregation_type:
            parts.append(f"with {intent.aggregation_type} aggregation")
        if where:
            parts.append(f"filtered by: {', '.join(where)}")
        if having:
            parts.append(f"with post-aggregation filters: {', '.join(having)}")
        if intent.time_range is not None:
            parts.append(f"for time range: {intent.time_range.start or 'start'} to "
                         f"{intent.time_range.end or 'end'}")
        if ctx is not None and ctx.role != "admin":
            parts.append("(scoped to current user)")
        return " ".join(parts)


_default_compiler = QueryCompiler()


def compile_query(intent: QueryIntent, user_context: Optional[UserContext] = None,
                  options: Optional[QueryOptions] = None) -> CompiledQuery:
    """Compile with the process-wide schema registry and row-security policy."""
    return _default_compiler.compile(intent, user_context, options)
