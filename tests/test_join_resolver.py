import pytest

from crm_nlq.nl.joins import UnresolvedJoin, resolve_plan


def _sql(plan):
    return " ".join(j.sql() for j in plan.joins)


def test_single_table_has_no_joins():
    plan = resolve_plan(["leads"])
    assert plan.driving == "leads"
    assert plan.joins == []


def test_empty_request_defaults_to_contacts():
    assert resolve_plan([]).tables == ["contacts"]


def test_direct_join_from_fk_holder():
    plan = resolve_plan(["contacts", "accounts"])
    assert _sql(plan) == "INNER JOIN accounts ON accounts.id = contacts.account_id"


def test_direct_join_towards_fk_holder():
    plan = resolve_plan(["accounts", "contacts"])
    assert _sql(plan) == "INNER JOIN contacts ON contacts.account_id = accounts.id"


def test_duplicates_collapse_to_one_join():
    plan = resolve_plan(["contacts", "accounts", "ACCOUNTS", " accounts "])
    assert plan.tables == ["contacts", "accounts"]
    assert _sql(plan).count("JOIN accounts") == 1


def test_one_hop_join_goes_through_intermediate():
    plan = resolve_plan(["contacts", "users"])
    assert plan.tables == ["contacts", "sub_accounts", "users"]
    assert _sql(plan) == (
        "INNER JOIN sub_accounts ON sub_accounts.id = contacts.sub_account_id "
        "INNER JOIN users ON users.id = sub_accounts.assigned_employee_id"
    )


def test_intermediate_is_not_joined_twice():
    plan = resolve_plan(["contacts", "users", "sub_accounts"])
    assert plan.tables == ["contacts", "sub_accounts", "users"]
    assert _sql(plan).count("JOIN sub_accounts") == 1


def test_quotes_join_activities_through_sub_accounts():
    plan = resolve_plan(["activities", "quotes_mbcb"])
    assert plan.tables == ["activities", "sub_accounts", "quotes_mbcb"]


def test_later_tables_may_anchor_on_any_planned_table():
    plan = resolve_plan(["activities", "sub_accounts", "accounts"])
    # accounts only reaches sub_accounts via contacts
    assert plan.tables == ["activities", "sub_accounts", "contacts", "accounts"]


def test_table_waits_for_a_later_table_to_connect_it():
    plan = resolve_plan(["accounts", "users", "contacts"])
    assert plan.tables == ["accounts", "contacts", "sub_accounts", "users"]
    assert _sql(plan) == (
        "INNER JOIN contacts ON contacts.account_id = accounts.id "
        "INNER JOIN sub_accounts ON sub_accounts.id = contacts.sub_account_id "
        "INNER JOIN users ON users.id = sub_accounts.assigned_employee_id"
    )


def test_resolution_does_not_depend_on_request_order():
    a = resolve_plan(["accounts", "contacts", "users"])
    b = resolve_plan(["accounts", "users", "contacts"])
    assert set(a.tables) == set(b.tables)


def test_unconnectable_table_still_fails_after_retries():
    with pytest.raises(UnresolvedJoin) as exc:
        resolve_plan(["accounts", "mystery", "contacts"])
    assert exc.value.table == "mystery"
    assert exc.value.connected == ["accounts", "contacts"]


def test_unknown_table_cannot_be_joined():
    with pytest.raises(UnresolvedJoin) as exc:
        resolve_plan(["contacts", "mystery"])
    assert exc.value.table == "mystery"
    assert exc.value.connected == ["contacts"]


def test_resolution_is_deterministic():
    a = resolve_plan(["leads", "activities", "contacts"])
    b = resolve_plan(["leads", "activities", "contacts"])
    assert a == b
