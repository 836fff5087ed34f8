# crm_nlq/nl/examples.py
"""
Worked question -> intent examples shown to the oracle in the classifier prompt.
Every table and column used here exists in crm_nlq/models.py.
"""
import json
from typing import Any, Dict, List, Sequence, Tuple

IntentExample = Tuple[str, Dict[str, Any]]

INTENT_EXAMPLES: List[IntentExample] = [
    # contacts
    ("How many contacts do I have?",
     {"category": "CONTACT_QUERY", "tables": ["contacts"], "aggregationType": "count"}),
    ("Show me all contacts for account ABC Corp",
     {"category": "CONTACT_QUERY", "tables": ["contacts", "accounts"],
      "filters": {"accounts.name": "ABC Corp"}}),
    ("Find contacts with email addresses",
     {"category": "CONTACT_QUERY", "tables": ["contacts"], "filters": {"email": {"$ne": None}}}),

    # accounts
    ("Show accounts with engagement score below 50",
     {"category": "ACCOUNT_QUERY", "tables": ["sub_accounts"],
      "filters": {"engagement_score": {"$lt": 50}}}),
    ("List all accounts in the manufacturing industry",
     {"category": "ACCOUNT_QUERY", "tables": ["accounts"], "filters": {"industry": "manufacturing"}}),
    ("What is the highest potential value of any account?",
     {"category": "ACCOUNT_QUERY", "tables": ["accounts"], "aggregationType": "max"}),

    # activities
    ("What's my activity count this week?",
     {"category": "ACTIVITY_QUERY", "tables": ["activities"], "aggregationType": "count",
      "timeRange": {"start": "this week", "end": None}}),
    ("Show all calls I made last month",
     {"category": "ACTIVITY_QUERY", "tables": ["activities"], "filters": {"type": "call"},
      "timeRange": {"start": "last month", "end": None}}),

    # quotations
    ("How many MBCB quotations did I send this quarter?",
     {"category": "QUOTATION_QUERY", "tables": ["quotes_mbcb"], "aggregationType": "count",
      "filters": {"status": "sent"}, "timeRange": {"start": "this quarter", "end": None}}),
    ("Show me all accepted paint quotations",
     {"category": "QUOTATION_QUERY", "tables": ["quotes_paint"], "filters": {"status": "accepted"}}),

    # leads
    ("Which leads are still new or contacted?",
     {"category": "LEAD_QUERY", "tables": ["leads"], "filters": {"status": ["new", "contacted"]}}),

    # aggregation / performance / trend
    ("What is the average engagement score of my sub-accounts?",
     {"category": "AGGREGATION_QUERY", "tables": ["sub_accounts"], "aggregationType": "average"}),
    ("How many activities did each employee log in the last 30 days?",
     {"category": "PERFORMANCE_QUERY", "tables": ["activities", "users"], "aggregationType": "count",
      "timeRange": {"start": "last 30 days", "end": "now"}}),
    ("How has lead volume changed over the past 6 months?",
     {"category": "TREND_QUERY", "tables": ["leads"], "aggregationType": "count",
      "timeRange": {"start": "last 6 months", "end": "now"}}),
]


def format_examples(examples: Sequence[IntentExample] = INTENT_EXAMPLES) -> str:
    """Render examples as `- "question" -> {intent json}` lines."""
    return "\n".join(
        f'- "{question}" -> {json.dumps(intent, sort_keys=True)}' for question, intent in examples
    )
