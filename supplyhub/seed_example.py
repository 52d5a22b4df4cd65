from decimal import Decimal

from sqlalchemy import select

from supplyhub.db import SessionLocal, engine
from supplyhub.models import (
    ApprovalRule,
    Base,
    InventoryItem,
    Order,
    OrderItem,
    Restaurant,
    Supplier,
    SupplierProduct,
    SupplierStatus,
    User,
    UserRole,
)
from supplyhub.security.sessions import create_web_session
from supplyhub.services.money import order_total


def _user(db, *, email: str, role: UserRole, restaurant_id=None, supplier_id=None, first_name=None) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        user = User(
            email=email,
            first_name=first_name,
            role=role,
            restaurant_id=restaurant_id,
            supplier_id=supplier_id,
            active=True,
        )
        db.add(user)
        db.flush()
    return user


def seed() -> dict[str, str]:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        restaurant = db.execute(select(Restaurant).where(Restaurant.name == 'Harbor Bistro')).scalar_one_or_none()
        if not restaurant:
            restaurant = Restaurant(name='Harbor Bistro', email='kitchen@harborbistro.test', active=True)
            db.add(restaurant)
            db.flush()

        supplier = db.execute(select(Supplier).where(Supplier.name == 'Coastal Produce')).scalar_one_or_none()
        if not supplier:
            supplier = Supplier(
                name='Coastal Produce',
                email='orders@coastalproduce.test',
                status=SupplierStatus.ACTIVE,
                minimum_order=Decimal('50.00'),
                lead_time_days=2,
            )
            db.add(supplier)
            db.flush()

        owner = _user(db, email='owner@harborbistro.test', role=UserRole.OWNER, restaurant_id=restaurant.id, first_name='Olive')
        manager = _user(db, email='manager@harborbistro.test', role=UserRole.MANAGER, restaurant_id=restaurant.id, first_name='Marco')
        staff = _user(db, email='staff@harborbistro.test', role=UserRole.STAFF, restaurant_id=restaurant.id, first_name='Sam')
        rep = _user(db, email='rep@coastalproduce.test', role=UserRole.STAFF, supplier_id=supplier.id, first_name='Rita')

        rule = db.execute(select(ApprovalRule).where(ApprovalRule.restaurant_id == restaurant.id)).scalars().first()
        if not rule:
            db.add(ApprovalRule(restaurant_id=restaurant.id, min_amount=Decimal('500.00'), required_role=UserRole.MANAGER))

        product = db.execute(
            select(SupplierProduct).where(SupplierProduct.supplier_id == supplier.id, SupplierProduct.name == 'San Marzano tomatoes')
        ).scalar_one_or_none()
        if not product:
            product = SupplierProduct(supplier_id=supplier.id, name='San Marzano tomatoes', unit='case', price=Decimal('30.00'))
            db.add(product)
            db.flush()

        draft = db.execute(select(Order).where(Order.order_number == 'ORD-DEMO-0001')).scalar_one_or_none()
        if not draft:
            subtotal, tax, fee = Decimal('720.00'), Decimal('57.60'), Decimal('15.00')
            draft = Order(
                order_number='ORD-DEMO-0001',
                subtotal=subtotal,
                tax=tax,
                delivery_fee=fee,
                discount=Decimal('0.00'),
                total=order_total(subtotal=subtotal, tax=tax, delivery_fee=fee, discount=0),
                restaurant_id=restaurant.id,
                supplier_id=supplier.id,
                created_by_id=staff.id,
            )
            db.add(draft)
            db.flush()
            db.add(
                OrderItem(
                    order_id=draft.id,
                    supplier_product_id=product.id,
                    quantity=Decimal('24'),
                    unit_price=product.price,
                    subtotal=subtotal,
                )
            )

        tomatoes = db.execute(
            select(InventoryItem).where(InventoryItem.restaurant_id == restaurant.id, InventoryItem.name == 'Roma tomatoes')
        ).scalar_one_or_none()
        if not tomatoes:
            db.add(
                InventoryItem(
                    restaurant_id=restaurant.id,
                    name='Roma tomatoes',
                    category='Produce',
                    unit='kg',
                    current_quantity=Decimal('0'),
                    par_level=Decimal('10'),
                )
            )

        tokens = {user.email: create_web_session(db, user.id) for user in (owner, manager, staff, rep)}
        db.commit()
        return tokens


if __name__ == '__main__':
    for email, token in seed().items():
        print(f'{email}: {token}')
    print('Seed data inserted/verified.')
