from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from ..db import Base


class Sale(Base):
    __tablename__ = "sale"
    id = Column(Integer, primary_key=True)
    client_id = Column(String(64), unique=True, index=True, nullable=False)  # idempotencia
    number = Column(String(20), unique=True, index=True)
    terminal_id = Column(String(20))
    operator_id = Column(String(60))
    customer_id = Column(Integer, ForeignKey("customer.id"))
    cash_session_id = Column(Integer, ForeignKey("cash_session.id"))
    subtotal = Column(Numeric(12, 2), default=0)
    discount = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), default=0)
    status = Column(String(12), default="finalized")  # finalized | cancelled
    origin = Column(String(12), default="pdv")  # pdv | pdv_offline
    document_type = Column(String(12), default="none")  # nfce | none
    fiscal_access_key = Column(String(60))
    fiscal_protocol = Column(String(40))
    cancel_reason = Column(String(255))
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship("SaleItem", order_by="SaleItem.id")
    payments = relationship("SalePayment", order_by="SalePayment.id")


class SaleItem(Base):
    __tablename__ = "sale_item"
    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sale.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), default=0)


class SalePayment(Base):
    __tablename__ = "sale_payment"
    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sale.id"), nullable=False, index=True)
    method = Column(String(20), nullable=False)  # cash | creditCard | debitCard | instantTransfer | storeCredit
    amount = Column(Numeric(12, 2), nullable=False)
