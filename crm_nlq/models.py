from sqlalchemy import Column, String, Integer, Numeric, Text, Date, DateTime, JSON, ForeignKey, func
from .db import Base

# -----------------------------
# ORM models (tables) of the CRM.
# These are also the source of the query engine's schema registry,
# so every ForeignKey here becomes a joinable edge.
# -----------------------------
class User(Base):
    __tablename__ = "users"
    # Employees and admins who own CRM records
    id    = Column(Integer, primary_key=True)
    name  = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role  = Column(String, nullable=False)                     # admin / employee / data_analyst


class Account(Base):
    __tablename__ = "accounts"
    id              = Column(Integer, primary_key=True)
    name            = Column(String, nullable=False)
    industry        = Column(String)
    potential_value = Column(Numeric(14, 2))                   # estimated revenue


class SubAccount(Base):
    __tablename__ = "sub_accounts"
    # A site/branch of an account, assigned to one employee
    id                   = Column(Integer, primary_key=True)
    name                 = Column(String, nullable=False)
    engagement_score     = Column(Numeric(5, 2))               # 0-100, AI computed
    ai_insights          = Column(JSON)
    assigned_employee_id = Column(Integer, ForeignKey("users.id"), index=True)


class Contact(Base):
    __tablename__ = "contacts"
    id             = Column(Integer, primary_key=True)
    name           = Column(String, nullable=False)
    email          = Column(String)
    phone          = Column(String)
    account_id     = Column(Integer, ForeignKey("accounts.id"), index=True)
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)
    created_at     = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Activity(Base):
    __tablename__ = "activities"
    # Calls, meetings, emails logged by an employee
    id             = Column(Integer, primary_key=True)
    type           = Column(String, nullable=False)
    description    = Column(Text)
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)
    created_by     = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at     = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FollowUp(Base):
    __tablename__ = "follow_ups"
    id             = Column(Integer, primary_key=True)
    title          = Column(String, nullable=False)
    due_date       = Column(Date, nullable=False)
    status         = Column(String, nullable=False)            # pending / completed / cancelled
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)
    assigned_to    = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)


class _QuoteColumns:
    # Shared shape of the three product-line quotation tables
    id                          = Column(Integer, primary_key=True)
    total_price                 = Column(Numeric(14, 2), nullable=False)
    status                      = Column(String, nullable=False)   # draft / sent / accepted / rejected
    ai_suggested_price_per_unit = Column(Numeric(14, 2))
    ai_win_probability          = Column(Numeric(5, 2))
    created_at                  = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class QuoteMBCB(_QuoteColumns, Base):
    __tablename__ = "quotes_mbcb"
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)


class QuoteSignages(_QuoteColumns, Base):
    __tablename__ = "quotes_signages"
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)


class QuotePaint(_QuoteColumns, Base):
    __tablename__ = "quotes_paint"
    sub_account_id = Column(Integer, ForeignKey("sub_accounts.id"), index=True)


class Lead(Base):
    __tablename__ = "leads"
    id          = Column(Integer, primary_key=True)
    name        = Column(String, nullable=False)
    status      = Column(String, nullable=False)               # New / In Progress / Converted / Lost ...
    score       = Column(Numeric(5, 2))
    source      = Column(String)                               # website / referral / cold call
    assigned_to = Column(Integer, ForeignKey("users.id"), index=True)
    created_at  = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Lead(id={self.id}, name={self.name}, status={self.status})>"
