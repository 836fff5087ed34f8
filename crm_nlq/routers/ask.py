import logging
import re
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from sqlalchemy import text

from crm_nlq.db import get_db
from crm_nlq.nl.classifier import classify
from crm_nlq.nl.compiler import compile_query
from crm_nlq.nl.joins import UnresolvedJoin
from crm_nlq.nl.oracle import IntentOracle, get_oracle
from crm_nlq.nl.types import QueryOptions, UserContext

log = logging.getLogger(__name__)

# --------------------------------------------------------------------
# Router setup
# --------------------------------------------------------------------
router = APIRouter(prefix="", tags=["ask"])

MAX_LIMIT = 200


# Request schema: question + optional row cap + optional caller identity
class AskRequest(BaseModel):
    q: str                          # natural-language question
    limit: int | None = 100         # optional row cap (defaults to 100)
    user: UserContext | None = None  # who is asking; drives row security


_PLACEHOLDER = re.compile(r"\$(\d+)")


def to_named_binds(sql: str, params: List[Any]) -> Tuple[str, Dict[str, Any]]:
    """Rewrite $n placeholders as :pn so SQLAlchemy text() can bind them."""
    named = _PLACEHOLDER.sub(lambda m: f":p{m.group(1)}", sql)
    return named, {f"p{i}": v for i, v in enumerate(params, start=1)}


@router.post("/ask")
async def ask(req: AskRequest, db: Session = Depends(get_db),
              oracle: IntentOracle = Depends(get_oracle)) -> Dict[str, Any]:
    """
    Answer a natural-language question about the CRM data.
    classify -> compile -> execute, returning the intent, the compiled SQL and the rows.

    Request body:
      {"q": "How many contacts do I have?", "limit": 100,
       "user": {"userId": 7, "employeeId": 7, "role": "employee"}}

    Response JSON:
      {
        "ok": True,
        "intent": {...}, "confidence": 0.9, "explanation": "...",
        "sql": "<compiled SELECT with $n placeholders>",
        "params": [...], "affected_tables": [...],
        "rows": [ {column: value, ...}, ... ]
      }
    """
    question = (req.q or "").strip()
    if not question:
        raise HTTPException(400, "Missing 'q'")

    # Clamp limit to 1–200 for safety
    lim = 1 if not req.limit else max(1, min(int(req.limit), MAX_LIMIT))

    result = await classify(question, req.user, oracle=oracle)

    try:
        compiled = compile_query(result.intent, req.user, QueryOptions(limit=lim))
    except UnresolvedJoin as e:
        raise HTTPException(422, str(e))

    try:
        sql, binds = to_named_binds(compiled.sql, compiled.params)
        rows: List[Dict[str, Any]] = [dict(m) for m in db.execute(text(sql), binds).mappings().all()]
    except Exception as e:
        # The compiled SQL targets Postgres; other engines may reject parts of it
        log.warning("query execution failed: %s", e)
        db.rollback()
        raise HTTPException(400, f"Could not answer: {e}")

    return {
        "ok": True,
        "intent": result.intent.model_dump(mode="json", by_alias=True),
        "confidence": result.confidence,
        "explanation": result.explanation,
        "sql": compiled.sql,
        "params": compiled.params,
        "affected_tables": compiled.affected_tables,
        "rows": rows,
    }
