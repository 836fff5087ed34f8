import pytest

from crm_nlq.nl.security import ROW_SECURITY_POLICY, OwnershipRule, ownership_predicates, ownership_rule
from crm_nlq.nl.types import UserContext


def test_employee_rules():
    assert ownership_rule("activities", "employee") == OwnershipRule("created_by")
    assert ownership_rule("leads", "employee").column == "assigned_to"
    assert ownership_rule("sub_accounts", "employee").column == "assigned_employee_id"
    assert ownership_rule("follow_ups", "employee").column == "assigned_to"
    assert ownership_rule("contacts", "employee") is None


def test_admin_sees_everything():
    assert all(ownership_rule(table, "admin") is None for table, _ in ROW_SECURITY_POLICY)


def test_data_analyst_restricted_like_employee():
    for table in ("activities", "leads", "sub_accounts", "follow_ups"):
        assert ownership_rule(table, "data_analyst") == ownership_rule(table, "employee")


def test_predicates_bind_employee_id():
    ctx = UserContext(userId="u-9", employeeId=9, role="employee")
    preds = ownership_predicates(["contacts", "sub_accounts", "activities"], ctx)
    assert preds == [("sub_accounts.assigned_employee_id", 9), ("activities.created_by", 9)]


def test_no_context_or_admin_gives_no_predicates():
    assert ownership_predicates(["activities"], None) == []
    assert ownership_predicates(["activities"], UserContext(role="admin", employee_id=1)) == []


def test_missing_employee_id_binds_null():
    ctx = UserContext(role="Employee")
    assert ownership_predicates(["leads"], ctx) == [("leads.assigned_to", None)]


def test_policy_is_read_only():
    with pytest.raises(TypeError):
        ROW_SECURITY_POLICY[("contacts", "employee")] = OwnershipRule("id")
