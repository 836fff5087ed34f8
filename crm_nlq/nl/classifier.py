# crm_nlq/nl/classifier.py
import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from crm_nlq.nl.examples import format_examples
from crm_nlq.nl.oracle import IntentOracle, PromptPayload, get_oracle
from crm_nlq.nl.schema_registry import REGISTRY
from crm_nlq.nl.types import (
    IntentCategory, IntentCheck, QueryIntent, QueryIntentResult, UserContext,
)
from crm_nlq.settings import ORACLE_TIMEOUT_S

log = logging.getLogger(__name__)

DEFAULT_TABLES = ["contacts"]
DEFAULT_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.3

# ---------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------

_CATEGORY_HELP = """\
CONTACT_QUERY - contacts, their details or contact information
ACCOUNT_QUERY - accounts and sub-accounts, their status, value or engagement
ACTIVITY_QUERY - activities such as calls, meetings, emails and tasks
QUOTATION_QUERY - quotations (quotes_mbcb, quotes_signages, quotes_paint), pricing, quote status
LEAD_QUERY - leads, lead status, source or score
PERFORMANCE_QUERY - employee performance, rankings, KPIs
AGGREGATION_QUERY - counts, sums, averages, minimums or maximums
COMPARISON_QUERY - comparing entities, metrics or time periods
TREND_QUERY - changes over time, historical patterns
PREDICTION_QUERY - forecasts, win probabilities, future estimates"""

SYSTEM = (
    "You classify questions for a CRM analytics query engine.\n"
    "Pick exactly one category:\n"
    f"{_CATEGORY_HELP}\n\n"
    "Use ONLY these tables and columns:\n"
    f"{REGISTRY.describe()}\n\n"
    "Rules:\n"
    "- tables: relevant tables, the main one first.\n"
    "- filters: column -> value, or column -> {\"$gt\"|\"$gte\"|\"$lt\"|\"$lte\"|\"$ne\"|\"$in\"|\"$nin\"|"
    "\"$like\"|\"$between\"|\"$null\"|\"$notNull\": value}.\n"
    "- aggregationType: one of count, sum, average, max, min, or null.\n"
    "- timeRange: start/end as ISO dates or phrases like \"today\", \"last 7 days\", "
    "\"this month\", \"last quarter\", \"now\"; null if no period is mentioned.\n"
    "- confidence between 0.0 and 1.0.\n"
    "Respond with a single JSON object only. No markdown, no extra text.\n"
)

_RESPONSE_SHAPE = """\
{
  "intent": {
    "category": "<category>",
    "tables": ["<table>", ...],
    "filters": {"<column>": <value>},
    "aggregationType": "<count|sum|average|max|min|null>",
    "timeRange": {"start": "<date or phrase or null>", "end": "<date or phrase or null>"}
  },
  "confidence": <0.0-1.0>,
  "explanation": "<one sentence>"
}"""


def normalize_question(question: str) -> str:
    """Collapse whitespace and case-fold, so case variants give the same prompt."""
    return re.sub(r"\s+", " ", (question or "").strip()).casefold()


def build_prompt(question: str, user_context: Optional[UserContext] = None) -> PromptPayload:
    parts = [f'Question: "{normalize_question(question)}"']
    if user_context is not None:
        parts.append(f"User role: {user_context.role}")
    parts.append(f"Examples:\n{format_examples()}")
    parts.append(f"Return JSON with this structure:\n{_RESPONSE_SHAPE}")
    return PromptPayload(system=SYSTEM, user="\n\n".join(parts))


# ---------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------

_INTENT_KEYS = ("category", "tables", "filters", "aggregationType", "aggregation_type",
                "timeRange", "time_range")


def extract_json(raw: Any) -> Any:
    """
    Pull a JSON value out of an oracle answer: a dict as-is, else JSON text that
    is bare, fenced (```json ... ```) or embedded in prose. Raises ValueError.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None:
        raise ValueError("empty response")
    if not isinstance(raw, str):
        raise ValueError(f"unexpected response type {type(raw).__name__}")

    text = raw.strip()
    candidates = [text]
    m = re.search(r"```(?:json)?\s*(.*?)```", text, flags=re.S | re.I)
    if m:
        candidates.append(m.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for c in candidates:
        try:
            return json.loads(c)
        except json.JSONDecodeError:
            continue
    raise ValueError("response is not JSON")


def _clamp_confidence(value: Any) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if conf != conf:  # NaN
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, conf))


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the documented defaults to a decoded answer before strict validation."""
    intent = data.get("intent")
    if not isinstance(intent, dict):
        # flat answers put the intent fields at the top level
        intent = {k: data[k] for k in _INTENT_KEYS if k in data}

    tables = intent.get("tables")
    if isinstance(tables, str):
        tables = [tables]
    if isinstance(tables, list):
        tables = [t.strip().lower() for t in tables if isinstance(t, str) and t.strip()]
    if not tables:
        tables = list(DEFAULT_TABLES)

    category = intent.get("category")
    if isinstance(category, str):
        category = category.strip().upper()

    agg = intent.get("aggregationType", intent.get("aggregation_type"))
    if isinstance(agg, str):
        agg = agg.strip().lower()
        agg = {"avg": "average", "none": None, "null": None, "": None}.get(agg, agg)

    time_range = intent.get("timeRange", intent.get("time_range"))
    if isinstance(time_range, dict):
        time_range = {"start": time_range.get("start") or None, "end": time_range.get("end") or None}
        if time_range["start"] is None and time_range["end"] is None:
            time_range = None
    else:
        time_range = None

    filters = intent.get("filters")
    explanation = data.get("explanation")
    return {
        "intent": {
            "category": category,
            "tables": tables,
            "filters": filters if isinstance(filters, dict) else {},
            "aggregationType": agg,
            "timeRange": time_range,
        },
        "confidence": _clamp_confidence(data.get("confidence")),
        "explanation": explanation if isinstance(explanation, str) and explanation.strip()
        else "Intent classified based on question analysis",
    }


def decode_response(raw: Any) -> IntentCheck:
    """Strictly decode an oracle answer into a QueryIntentResult, or say why it can't be."""
    try:
        data = extract_json(raw)
    except ValueError as e:
        return IntentCheck(False, f"unparseable response: {e}")
    if not isinstance(data, dict):
        return IntentCheck(False, "response is not a JSON object")
    try:
        result = QueryIntentResult.model_validate(_normalize(data))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return IntentCheck(False, f"response does not match the intent shape ({fields})")
    return IntentCheck(True, result=result)


def fallback_result(explanation: str) -> QueryIntentResult:
    return QueryIntentResult(
        intent=QueryIntent(category=IntentCategory.CONTACT_QUERY, tables=list(DEFAULT_TABLES)),
        confidence=FALLBACK_CONFIDENCE,
        explanation=explanation,
    )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def _log_result(question: str, result: QueryIntentResult, fallback: bool = False) -> None:
    intent = result.intent
    log.info(
        "intent%s: q=%r category=%s tables=%s aggregation=%s confidence=%.2f explanation=%s",
        " (fallback)" if fallback else "", question, intent.category.value, intent.tables,
        intent.aggregation_type, result.confidence, result.explanation,
    )


async def classify(question: str, user_context: Optional[UserContext] = None,
                   oracle: Optional[IntentOracle] = None,
                   timeout_s: float = ORACLE_TIMEOUT_S) -> QueryIntentResult:
    """
    Classify a natural-language question into a QueryIntent.
    1. Build a schema-aware prompt
    2. Ask the oracle once, bounded by the timeout
    3. Decode and validate its answer
    Never raises: any failure returns the low-confidence CONTACT_QUERY fallback.
    """
    try:
        # a misconfigured backend fails here, and is handled like any oracle error
        oracle = oracle or get_oracle()
        payload = build_prompt(question, user_context)
        raw = await asyncio.wait_for(oracle.classify_raw(payload), timeout=timeout_s)
    except asyncio.TimeoutError:
        log.warning("intent oracle timed out after %.1fs", timeout_s)
        result = fallback_result(
            f"Failed to classify intent: oracle timed out after {timeout_s:g}s. Defaulting to CONTACT_QUERY."
        )
        _log_result(question, result, fallback=True)
        return result
    except Exception as e:
        log.exception("intent oracle call failed")
        result = fallback_result(f"Failed to classify intent: {e}. Defaulting to CONTACT_QUERY.")
        _log_result(question, result, fallback=True)
        return result

    check = decode_response(raw)
    if not check.ok:
        log.warning("discarding oracle answer: %s", check.reason)
        result = fallback_result(
            f"Could not use the classification ({check.reason}). Defaulting to CONTACT_QUERY."
        )
        _log_result(question, result, fallback=True)
        return result

    _log_result(question, check.result)
    return check.result
