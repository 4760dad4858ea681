from sqlalchemy import Column, ForeignKey, Integer, Numeric, String

from ..db import Base


class Customer(Base):
    __tablename__ = "customer"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=True)
    tax_id = Column(String(20), nullable=True)
    phone = Column(String(40), nullable=True)
    credit_limit = Column(Numeric(12, 2), default=0)
    credit_balance = Column(Numeric(12, 2), default=0)  # saldo adeudado (crediario)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class LoyaltyAccount(Base):
    __tablename__ = "loyalty_account"
    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), unique=True, nullable=False)
    points_balance = Column(Integer, default=0)
    total_accrued = Column(Integer, default=0)
    total_redeemed = Column(Integer, default=0)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
