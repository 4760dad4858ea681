from decimal import Decimal

from sqlalchemy.orm import Session

from pdv.db import SessionLocal, init_db
from pdv.models.customer import Customer, LoyaltyAccount
from pdv.models.product import Product


def get_or_create(session: Session, model, defaults=None, **kwargs):
    inst = session.query(model).filter_by(**kwargs).first()
    if inst:
        return inst, False
    params = dict(kwargs)
    if defaults:
        params.update(defaults)
    inst = model(**params)
    session.add(inst)
    session.commit()
    session.refresh(inst)
    return inst, True


def main():
    init_db()
    db: Session = SessionLocal()
    try:
        # Productos demo: uno por unidad, uno pesable
        arroz, _ = get_or_create(
            db,
            Product,
            code="ARZ-001",
            defaults={
                "name": "Arroz 5kg",
                "barcode": "7891234567895",
                "unit": "UN",
                "price": Decimal("10.00"),
                "stock_qty": Decimal("100"),
                "ncm": "10063021",
            },
        )
        queijo, _ = get_or_create(
            db,
            Product,
            code="QJO-001",
            defaults={
                "name": "Queijo minas",
                "barcode": "2000000000015",
                "unit": "KG",
                "price": Decimal("42.90"),
                "stock_qty": Decimal("25.000"),
                "ncm": "04069090",
            },
        )

        # Cliente con crediario y fidelidad
        cli, _ = get_or_create(
            db,
            Customer,
            tax_id="12345678909",
            defaults={"name": "Cliente Demo", "credit_limit": Decimal("50.00"), "credit_balance": Decimal("10.00")},
        )
        get_or_create(db, LoyaltyAccount, customer_id=cli.id, defaults={"points_balance": 100})

        print(f"Seed OK | products={arroz.id},{queijo.id} customer_id={cli.id}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
