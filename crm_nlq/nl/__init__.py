from .classifier import classify, decode_response
from .compiler import QueryCompiler, compile_query
from .joins import JoinPlan, UnresolvedJoin, resolve_plan
from .oracle import IntentOracle, PromptPayload, get_oracle
from .schema_registry import REGISTRY, SchemaRegistry
from .security import ROW_SECURITY_POLICY, ownership_predicates
from .types import CompiledQuery, IntentCategory, QueryIntent, QueryIntentResult, QueryOptions, UserContext

__all__ = [
    "classify",
    "decode_response",
    "QueryCompiler",
    "compile_query",
    "JoinPlan",
    "UnresolvedJoin",
    "resolve_plan",
    "IntentOracle",
    "PromptPayload",
    "get_oracle",
    "REGISTRY",
    "SchemaRegistry",
    "ROW_SECURITY_POLICY",
    "ownership_predicates",
    "CompiledQuery",
    "IntentCategory",
    "QueryIntent",
    "QueryIntentResult",
    "QueryOptions",
    "UserContext",
]
