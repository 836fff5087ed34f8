# crm_nlq/nl/time_range.py
"""
Time-range bounds -> SQL predicates.

ISO dates are bound as parameters by the caller. Relative phrases become fixed
Postgres expressions built only from CURRENT_DATE, INTERVAL and DATE_TRUNC;
the only variable part is the integer N of "last N days", which is parsed as
an int before it is formatted in.
"""
import re
from datetime import date, datetime
from typing import Optional

_STEP = {"day": "1 day", "week": "1 week", "month": "1 month", "quarter": "3 months", "year": "1 year"}

_LAST_N = re.compile(r"^(?:last|past)\s+(\d{1,4})\s+(day|week|month|year)s?$")
_THIS_LAST = re.compile(r"^(this|last)\s+(week|month|quarter|year)$")

_TOMORROW = "CURRENT_DATE + INTERVAL '1 day'"


def _norm(phrase: str) -> str:
    return re.sub(r"\s+", " ", phrase.strip().lower())


def is_iso_date(value: str) -> bool:
    """True for ISO dates/datetimes ("2024-01-31", "2024-01-31T08:00:00Z")."""
    v = value.strip()
    try:
        if len(v) == 10:
            date.fromisoformat(v)
        else:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def _window(phrase: str) -> Optional[tuple]:
    """(lower_expr, upper_expr) of the half-open window a phrase names, or None."""
    p = _norm(phrase)
    if p == "today":
        return "CURRENT_DATE", _TOMORROW
    if p == "yesterday":
        return "CURRENT_DATE - INTERVAL '1 day'", "CURRENT_DATE"
    if p == "now":
        return None, _TOMORROW

    m = _THIS_LAST.match(p)
    if m:
        which, unit = m.groups()
        trunc = f"DATE_TRUNC('{unit}', CURRENT_DATE)"
        step = f"INTERVAL '{_STEP[unit]}'"
        if which == "this":
            return trunc, f"{trunc} + {step}"
        return f"{trunc} - {step}", trunc

    m = _LAST_N.match(p)
    if m:
        n, unit = int(m.group(1)), m.group(2)
        if unit == "day":
            return f"CURRENT_DATE - INTERVAL '{n} days'", _TOMORROW
        trunc = f"DATE_TRUNC('{unit}', CURRENT_DATE)"
        return f"{trunc} - INTERVAL '{n} {unit}s'", _TOMORROW
    return None


def relative_predicate(phrase: str, column: str, as_end: bool = False) -> Optional[str]:
    """
    SQL condition for a relative phrase on `column`.
    As a start bound the whole window is used; as an end bound only its upper edge.
    """
    win = _window(phrase)
    if win is None:
        return None
    lower, upper = win
    if as_end or lower is None:
        return f"{column} < {upper}"
    return f"{column} >= {lower} AND {column} < {upper}"
