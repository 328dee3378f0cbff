"""Seed database with demo data."""
from sigrap.database import SessionLocal
from sigrap.models import User, Supplier, Product
from sigrap.auth import get_password_hash
from sigrap.permissions import ADMINISTRATOR, EMPLOYEE
from sigrap.schemas import PurchaseOrderCreate, PurchaseOrderItemCreate
from sigrap.security import subject_from_user
from sigrap.use_cases.purchase_orders import create_purchase_order_use_case
from sigrap.use_cases.roles import sync_policy_permissions
from datetime import date, timedelta
from decimal import Decimal
import uuid


def seed():
    """Seed database with demo data."""
    db = SessionLocal()

    try:
        roles = sync_policy_permissions(db)

        users_data = [
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000101'),
                'email': 'admin@sigrap.local',
                'password': 'admin123',
                'name': 'Administrador',
                'role': ADMINISTRATOR,
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000102'),
                'email': 'empleado@sigrap.local',
                'password': 'empleado123',
                'name': 'Laura Gómez',
                'role': EMPLOYEE,
            },
        ]

        users = []
        for user_data in users_data:
            user = User(
                id=user_data['id'],
                email=user_data['email'],
                name=user_data['name'],
                password_hash=get_password_hash(user_data['password']),
            )
            user.roles.append(roles[user_data['role']])
            db.add(user)
            users.append(user)

        suppliers = [
            Supplier(
                name="Distribuidora Andina",
                tax_id="900123456-7",
                contact_person="Carlos Ruiz",
                email="ventas@andina.co",
                payment_method="BANK_TRANSFER",
                payment_terms="30 días",
            ),
            Supplier(
                name="Papelería Mayorista del Centro",
                tax_id="800765432-1",
                payment_method="CASH",
                payment_terms="Contado",
            ),
        ]
        db.add_all(suppliers)

        products = [
            Product(name="Resma papel carta", sku="PAP-CARTA-500", cost_price=Decimal("14500.00"),
                    sale_price=Decimal("18900.00"), stock=40),
            Product(name="Cuaderno cuadriculado 100 hojas", sku="CUA-100", cost_price=Decimal("3200.00"),
                    sale_price=Decimal("4500.00"), stock=120),
            Product(name="Bolígrafo negro x12", sku="BOL-NEG-12", cost_price=Decimal("9800.50"),
                    sale_price=Decimal("13000.00"), stock=25),
        ]
        db.add_all(products)
        db.commit()

        today = date.today()
        create_purchase_order_use_case(
            db=db,
            current_subject=subject_from_user(users[0]),
            data=PurchaseOrderCreate(
                supplier_id=suppliers[0].id,
                order_date=today,
                expected_delivery_date=today + timedelta(days=7),
                notes="Reposición mensual",
                items=[
                    PurchaseOrderItemCreate(product_id=products[0].id, quantity=20),
                    PurchaseOrderItemCreate(product_id=products[2].id, quantity=10, unit_price=Decimal("9500")),
                ],
            ),
        )

        print("✅ Database seeded successfully!")
        print("\nDemo users:")
        print("  admin@sigrap.local/admin123 (Administrator)")
        print("  empleado@sigrap.local/empleado123 (Employee)")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
