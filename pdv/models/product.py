from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String

from ..db import Base


class Product(Base):
    __tablename__ = "product"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(40), unique=True, index=True, nullable=False)
    barcode = Column(String(50), unique=True, index=True, nullable=True)
    name = Column(String(120), nullable=False)
    unit = Column(String(10), default="UN")  # UN | KG | L ...
    price = Column(Numeric(12, 2), nullable=False)
    stock_qty = Column(Numeric(12, 3), default=0)
    ncm = Column(String(10), nullable=True)
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StockMove(Base):
    __tablename__ = "stock_move"
    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=False)
    qty = Column(Numeric(12, 3), nullable=False)  # signo: + entrada, - salida
    reason = Column(String(20))  # 'sale' | 'cancellation'
    ref_type = Column(String(20))  # 'sale'
    ref_id = Column(Integer, index=True)  # sale.id
    note = Column(String(255))
    at = Column(DateTime, default=datetime.utcnow)
    by_user = Column(String(60))
