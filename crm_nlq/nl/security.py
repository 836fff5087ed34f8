# crm_nlq/nl/security.py
"""
Row-level visibility rules for compiled queries.

A rule says which column of a table holds the owner of the row and which
field of the caller's UserContext that column must equal. Admins have no
rules (full visibility). Employees and data analysts only see rows they own.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from crm_nlq.nl.types import UserContext


@dataclass(frozen=True)
class OwnershipRule:
    column: str
    context_field: str = "employee_id"


_OWNED_ROWS = {
    "activities":   OwnershipRule("created_by"),
    "leads":        OwnershipRule("assigned_to"),
    "sub_accounts": OwnershipRule("assigned_employee_id"),
    "follow_ups":   OwnershipRule("assigned_to"),
}

# (table, role) -> rule. Roles without an entry for a table see every row of it.
ROW_SECURITY_POLICY: Mapping[Tuple[str, str], OwnershipRule] = MappingProxyType({
    **{(table, "employee"): rule for table, rule in _OWNED_ROWS.items()},
    **{(table, "data_analyst"): rule for table, rule in _OWNED_ROWS.items()},
})


def ownership_rule(table: str, role: str,
                   policy: Mapping[Tuple[str, str], OwnershipRule] = ROW_SECURITY_POLICY
                   ) -> Optional[OwnershipRule]:
    if role == "admin":
        return None
    return policy.get((table, role))


def ownership_predicates(tables: Sequence[str], ctx: Optional[UserContext],
                         policy: Mapping[Tuple[str, str], OwnershipRule] = ROW_SECURITY_POLICY
                         ) -> List[Tuple[str, object]]:
    """
    Return (qualified_column, bound_value) pairs to AND into the WHERE clause.
    No context means no predicates; enforcing visibility then is up to the caller.
    """
    if ctx is None or ctx.role == "admin":
        return []
    out: List[Tuple[str, object]] = []
    for table in tables:
        rule = ownership_rule(table, ctx.role, policy)
        if rule is None:
            continue
        # a missing id binds NULL, which matches no row
        out.append((f"{table}.{rule.column}", getattr(ctx, rule.context_field, None)))
    return out
