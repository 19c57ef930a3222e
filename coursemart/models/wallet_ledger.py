"""Wallet ledger model."""
import enum
from sqlalchemy import Column, Numeric, DateTime, String, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class WalletEntryReason(enum.Enum):
    """Why a wallet balance moved."""
    GROUP_CASHBACK_CREDIT = "GROUP_CASHBACK_CREDIT"
    GROUP_CASHBACK_DEBIT = "GROUP_CASHBACK_DEBIT"


class WalletLedgerEntry(Base):
    """Audit row for a single wallet balance movement (signed amount)."""

    __tablename__ = 'wallet_ledger'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(40), nullable=False)
    group_purchase_id = Column(BigId, ForeignKey('group_purchase.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser')

    def __repr__(self):
        return f"<WalletLedgerEntry(user_id={self.user_id}, amount={self.amount}, reason='{self.reason}')>"
