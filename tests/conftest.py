# tests/conftest.py
import os
import tempfile

# Keep the app from loading the local model or writing next to the sources.
os.environ["NLQ_ORACLE_PRELOAD"] = "false"
os.environ.setdefault(
    "NLQ_DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'crm_nlq_app.sqlite3')}"
)

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from crm_nlq.main import app
from crm_nlq.db import Base, get_db
from crm_nlq.models import Account, Activity, Contact, FollowUp, Lead, QuoteMBCB, SubAccount, User
from crm_nlq.nl.oracle import get_oracle


class FakeOracle:
    """Stands in for the language model: returns a canned answer (or raises) and records prompts."""
    name = "fake"

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.payloads = []

    async def classify_raw(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.answer


def intent_answer(category="CONTACT_QUERY", tables=("contacts",), confidence=0.9,
                  explanation="test classification", **intent):
    """Oracle answer in the documented nested shape."""
    return {
        "intent": {"category": category, "tables": list(tables), **intent},
        "confidence": confidence,
        "explanation": explanation,
    }


# --- Temporary SQLite DB file for the whole test session ---
@pytest.fixture(scope="session")
def tmp_db_url():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(tmp_db_url):
    eng = create_engine(tmp_db_url, connect_args={"check_same_thread": False}, future=True)
    Base.metadata.create_all(bind=eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    db = TestingSession()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def fake_oracle():
    return FakeOracle(answer=intent_answer())


# --- Override FastAPI's DB and oracle dependencies ---
@pytest.fixture(autouse=True)
def override_dependencies(db_session, fake_oracle):
    def _get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_oracle] = lambda: fake_oracle
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


# --- Utility: clear tables in FK-safe order ---
def _clear_all(db):
    # child → parent order
    for table in ("quotes_mbcb", "quotes_signages", "quotes_paint", "follow_ups", "activities",
                  "contacts", "leads", "sub_accounts", "accounts", "users"):
        db.execute(text(f"DELETE FROM {table}"))
    db.commit()


@pytest.fixture
def seed_sample(db_session):
    """
    Seeds a small CRM:
      - Alice (1) is an admin, Bob (2) and Carol (3) are employees
      - Bob owns sub-accounts 1 and 3, Carol owns sub-account 2
      - Bob logged two calls, Carol one meeting
    """
    _clear_all(db_session)

    db_session.add_all([
        User(id=1, name="Alice Admin", email="alice@example.com", role="admin"),
        User(id=2, name="Bob Sales", email="bob@example.com", role="employee"),
        User(id=3, name="Carol Field", email="carol@example.com", role="employee"),
    ])
    db_session.add_all([
        Account(id=1, name="ABC Corp", industry="manufacturing", potential_value=50000),
        Account(id=2, name="Globex", industry="retail", potential_value=12000),
    ])
    db_session.commit()

    db_session.add_all([
        SubAccount(id=1, name="ABC North", engagement_score=40, assigned_employee_id=2),
        SubAccount(id=2, name="ABC South", engagement_score=75, assigned_employee_id=3),
        SubAccount(id=3, name="Globex Main", engagement_score=55, assigned_employee_id=2),
    ])
    db_session.commit()

    db_session.add_all([
        Contact(id=1, name="Dana Buyer", email="dana@abc.example", account_id=1, sub_account_id=1),
        Contact(id=2, name="Eli Engineer", email=None, account_id=1, sub_account_id=2),
        Contact(id=3, name="Fay Owner", email="fay@globex.example", account_id=2, sub_account_id=3),
        Activity(id=1, type="call", description="intro call", sub_account_id=1, created_by=2),
        Activity(id=2, type="meeting", description="site visit", sub_account_id=2, created_by=3),
        Activity(id=3, type="call", description="pricing follow-up", sub_account_id=3, created_by=2),
        FollowUp(id=1, title="send brochure", due_date=date(2030, 1, 15), status="pending",
                 sub_account_id=1, assigned_to=2),
        QuoteMBCB(id=1, total_price=1200, status="sent", sub_account_id=1),
        Lead(id=1, name="Initech", status="New", score=60, source="website", assigned_to=2),
        Lead(id=2, name="Umbrella", status="Converted", score=90, source="referral", assigned_to=2),
        Lead(id=3, name="Hooli", status="New", score=30, source="cold call", assigned_to=3),
    ])
    db_session.commit()
