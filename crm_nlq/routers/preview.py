from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from crm_nlq.nl.classifier import classify
from crm_nlq.nl.compiler import compile_query
from crm_nlq.nl.joins import UnresolvedJoin
from crm_nlq.nl.oracle import IntentOracle, get_oracle
from crm_nlq.nl.types import CompiledQuery, IntentCategory, QueryIntent, QueryOptions, UserContext

# --------------------------------------------------------------------
# Router setup: look at what a question would do without running it
# --------------------------------------------------------------------
router = APIRouter(prefix="/ai", tags=["ai"])


class PreviewRequest(BaseModel):
    question: str
    user: Optional[UserContext] = None


class ExplainRequest(PreviewRequest):
    options: Optional[QueryOptions] = None


_CATEGORY_WEIGHT = {
    IntentCategory.CONTACT_QUERY: 1,
    IntentCategory.ACCOUNT_QUERY: 1,
    IntentCategory.ACTIVITY_QUERY: 1,
    IntentCategory.LEAD_QUERY: 1,
    IntentCategory.QUOTATION_QUERY: 2,
    IntentCategory.AGGREGATION_QUERY: 2,
    IntentCategory.PERFORMANCE_QUERY: 3,
    IntentCategory.COMPARISON_QUERY: 3,
    IntentCategory.TREND_QUERY: 3,
    IntentCategory.PREDICTION_QUERY: 4,
}

# Tables small enough that aggregating over them is never a concern
_SMALL_TABLES = {"users"}


def estimate_complexity(intent: QueryIntent) -> str:
    """SIMPLE / MODERATE / COMPLEX from category, table count, aggregation, time range and filters."""
    score = _CATEGORY_WEIGHT.get(intent.category, 2)
    score += max(0, len(intent.tables) - 1)
    if intent.aggregation_type:
        score += 1
    if intent.time_range is not None:
        score += 1
    if len(intent.filters) > 2:
        score += len(intent.filters) - 2

    if score <= 2:
        return "SIMPLE"
    if score <= 4:
        return "MODERATE"
    return "COMPLEX"


def query_warnings(compiled: CompiledQuery, intent: QueryIntent) -> List[str]:
    """Advisory notes about how expensive a compiled query might be."""
    sql = compiled.sql.upper()
    tables = compiled.affected_tables
    has_where, has_limit = " WHERE " in sql, " LIMIT " in sql
    out: List[str] = []

    if not has_where and not has_limit:
        out.append("No WHERE clause - this may scan the whole table")
    if not has_limit and not intent.aggregation_type:
        out.append("No LIMIT clause - the query may return a large number of rows")
    if len(tables) > 2 and not has_where:
        out.append("Multiple table joins without filters - may be expensive")
    if " GROUP BY " in sql and len(tables) > 1:
        out.append("GROUP BY across multiple tables - may be computationally expensive")
    if intent.aggregation_type and tables and tables[0] not in _SMALL_TABLES:
        out.append("Aggregation on a potentially large table - may take time")
    return out


@router.post("/intent-preview")
async def intent_preview(req: PreviewRequest,
                         oracle: IntentOracle = Depends(get_oracle)) -> Dict[str, Any]:
    """Classify a question and estimate its complexity. Nothing is compiled or executed."""
    question = (req.question or "").strip()
    if not question:
        raise HTTPException(400, "Question is required and must be a non-empty string")

    result = await classify(question, req.user, oracle=oracle)
    return {
        "question": question,
        "intent": result.intent.model_dump(mode="json", by_alias=True),
        "confidence": result.confidence,
        "explanation": result.explanation,
        "estimated_complexity": estimate_complexity(result.intent),
    }


@router.post("/query-explain")
async def query_explain(req: ExplainRequest,
                        oracle: IntentOracle = Depends(get_oracle)) -> Dict[str, Any]:
    """Classify and compile a question, returning the SQL it would run plus advisory warnings."""
    question = (req.question or "").strip()
    if not question:
        raise HTTPException(400, "Question is required and must be a non-empty string")

    result = await classify(question, req.user, oracle=oracle)
    try:
        compiled = compile_query(result.intent, req.user, req.options)
    except UnresolvedJoin as e:
        raise HTTPException(422, str(e))

    return {
        "question": question,
        "intent": result.intent.model_dump(mode="json", by_alias=True),
        "confidence": result.confidence,
        "sql": compiled.sql,
        "params": compiled.params,
        "explanation": compiled.explanation,
        "affected_tables": compiled.affected_tables,
        "warnings": query_warnings(compiled, result.intent),
    }
