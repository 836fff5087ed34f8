from conftest import intent_answer
from crm_nlq.routers.preview import estimate_complexity
from crm_nlq.nl.types import QueryIntent


def test_intent_preview_simple(client, fake_oracle):
    fake_oracle.answer = intent_answer("CONTACT_QUERY", ["contacts"], confidence=0.95)
    r = client.post("/ai/intent-preview", json={"question": "Show me all contacts"})
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["intent"]["category"] == "CONTACT_QUERY"
    assert out["confidence"] == 0.95
    assert out["estimated_complexity"] == "SIMPLE"


def test_intent_preview_complex(client, fake_oracle):
    fake_oracle.answer = intent_answer(
        "TREND_QUERY", ["leads", "users"], aggregationType="count",
        timeRange={"start": "last 6 months", "end": "now"},
    )
    r = client.post("/ai/intent-preview", json={"question": "lead trend by employee"})
    assert r.json()["estimated_complexity"] == "COMPLEX"


def test_intent_preview_requires_question(client):
    assert client.post("/ai/intent-preview", json={"question": ""}).status_code == 400
    assert client.post("/ai/intent-preview", json={}).status_code == 422


def test_estimate_complexity_scores():
    def level(**kw):
        return estimate_complexity(QueryIntent(**kw))

    assert level(category="LEAD_QUERY", tables=["leads"]) == "SIMPLE"
    # 2 (quotation) + 1 (aggregation) = 3
    assert level(category="QUOTATION_QUERY", tables=["quotes_mbcb"], aggregationType="count") == "MODERATE"
    # 1 + 2 extra tables + 2 extra filters = 5
    assert level(category="CONTACT_QUERY", tables=["contacts", "accounts", "sub_accounts"],
                 filters={"a": 1, "b": 2, "c": 3, "d": 4}) == "COMPLEX"
    assert level(category="PREDICTION_QUERY", tables=["quotes_paint"]) == "MODERATE"


def test_query_explain_returns_sql_without_running_it(client, fake_oracle):
    fake_oracle.answer = intent_answer("ACTIVITY_QUERY", ["activities"], filters={"type": "call"})
    r = client.post("/ai/query-explain", json={
        "question": "Show all calls I made",
        "user": {"employeeId": 2, "role": "employee"},
        "options": {"limit": 25, "orderBy": [{"field": "created_at", "direction": "desc"}]},
    })
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["sql"].endswith(
        "WHERE activities.type = $1 AND activities.created_by = $2 "
        "ORDER BY activities.created_at DESC LIMIT 25"
    )
    assert out["params"] == ["call", 2]
    assert out["affected_tables"] == ["activities"]
    assert "scoped to current user" in out["explanation"]
    assert out["warnings"] == []


def test_query_explain_warns_about_expensive_queries(client, fake_oracle):
    fake_oracle.answer = intent_answer("PERFORMANCE_QUERY", ["activities", "quotes_mbcb"],
                                       aggregationType="count")
    r = client.post("/ai/query-explain", json={
        "question": "activities vs quotes", "options": {"groupBy": ["sub_accounts.name"]},
    })
    assert r.status_code == 200, r.text
    warnings = " | ".join(r.json()["warnings"])
    assert "No WHERE clause" in warnings
    assert "Multiple table joins without filters" in warnings
    assert "GROUP BY across multiple tables" in warnings
    assert "Aggregation on a potentially large table" in warnings


def test_query_explain_unresolved_join(client, fake_oracle):
    fake_oracle.answer = intent_answer(tables=["contacts", "invoices"])
    r = client.post("/ai/query-explain", json={"question": "contacts with invoices"})
    assert r.status_code == 422
