"""Treasury models: CashAccount (connected-account balances) and Transaction."""
from sqlalchemy import Column, String, DateTime, Date, Numeric, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.models.base import generate_id


class CashAccount(Base):
    """A connected bank or brokerage account and its latest balance."""

    __tablename__ = "cash_accounts"

    id = Column(String, primary_key=True, default=lambda: generate_id("acct"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_name = Column(String, nullable=False)
    institution = Column(String, nullable=True)
    balance = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String, nullable=False, default="USD")
    as_of_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="cash_accounts")


class Transaction(Base):
    """A single ledger line, entered manually, synced, or imported from CSV."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=lambda: generate_id("txn"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    transaction_date = Column(Date, nullable=False)
    amount = Column(Numeric(precision=15, scale=2), nullable=False)  # positive = inflow
    merchant = Column(String, nullable=True)
    category = Column(String, nullable=False, default="uncategorized")
    is_recurring = Column(Boolean, nullable=False, default=False)
    source = Column(String, nullable=False, default="manual")  # "manual" | "csv_import" | "sync"

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
    )
