from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String

from ..db import Base


# Libros de solo-anexar: nunca se actualizan ni se borran filas.
class CreditLedgerEntry(Base):
    __tablename__ = "credit_ledger"
    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sale.id"), nullable=True, index=True)
    kind = Column(String(10), nullable=False)  # debit | credit
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)


class LoyaltyLedgerEntry(Base):
    __tablename__ = "loyalty_ledger"
    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sale.id"), nullable=True, index=True)
    kind = Column(String(12), nullable=False)  # accrual | redemption | adjustment | expiration
    points = Column(Integer, nullable=False)  # con signo
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    sale_value = Column(Numeric(12, 2))
    expires_on = Column(Date, nullable=True)
    reverses_id = Column(Integer, ForeignKey("loyalty_ledger.id"), nullable=True)
    description = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)
