from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from ..db import Base


class CashSession(Base):
    __tablename__ = "cash_session"
    id = Column(Integer, primary_key=True, index=True)
    terminal_id = Column(String(20), nullable=False, index=True)
    status = Column(String(10), default="open")  # open | closed
    opened_at = Column(DateTime, default=datetime.utcnow)
    opened_by = Column(String(60), nullable=True)
    opening_float = Column(Numeric(12, 2), default=0)
    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(String(60), nullable=True)
    counted_amount = Column(Numeric(12, 2), nullable=True)
    expected_amount = Column(Numeric(12, 2), nullable=True)
    difference = Column(Numeric(12, 2), nullable=True)


class CashMovement(Base):
    __tablename__ = "cash_movement"
    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("cash_session.id"), nullable=False, index=True)
    kind = Column(String(16), nullable=False)  # saleInflow | manualInflow | manualOutflow
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), default="")
    sale_id = Column(Integer, ForeignKey("sale.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
