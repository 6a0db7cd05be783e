"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    producer = ProducerFactory.create(display_name="Ferme des Lilas")
    db_session.add(producer)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex[:8]}@test.com"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def make_customer_user(user_id=None, **overrides):
    from libs.auth.models import AuthUser, Role

    return AuthUser(
        user_id=user_id or _uuid(),
        role=Role.CUSTOMER,
        email=overrides.get("email", _unique_email()),
    )


def make_producer_user(user_id=None, **overrides):
    from libs.auth.models import AuthUser, Role

    return AuthUser(
        user_id=user_id or _uuid(),
        role=Role.PRODUCER,
        email=overrides.get("email", _unique_email()),
    )


def bearer(user) -> dict:
    """Authorization header carrying a token the service will accept."""
    from libs.common.config import get_settings

    settings = get_settings()
    payload = {
        "sub": str(user.user_id),
        "role": user.role.value,
        "email": user.email,
        "exp": _now() + timedelta(minutes=5),
    }
    token = jwt.encode(
        payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM
    )
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ProducerFactory:
    @staticmethod
    def create(**overrides):
        from services.market_service.models import Producer

        defaults = {
            "id": _uuid(),
            "display_name": "Test Producer",
            "email": _unique_email(),
            "phone": "+33 6 00 00 00 00",
        }
        defaults.update(overrides)
        return Producer(**defaults)


class CustomerFactory:
    @staticmethod
    def create(**overrides):
        from services.market_service.models import Customer

        defaults = {
            "id": _uuid(),
            "first_name": "Test",
            "last_name": "Customer",
            "email": _unique_email(),
            "phone": "+33 6 11 11 11 11",
        }
        defaults.update(overrides)
        return Customer(**defaults)


class ShopFactory:
    @staticmethod
    def create(producer_id=None, **overrides):
        from services.market_service.models import Shop

        defaults = {
            "id": _uuid(),
            "producer_id": producer_id or _uuid(),
            "name": "Test Shop",
            "pickup_location": "Farm gate",
            "is_active": True,
        }
        defaults.update(overrides)
        return Shop(**defaults)


class ProductFactory:
    @staticmethod
    def create(shop_id=None, **overrides):
        from services.market_service.models import Product

        defaults = {
            "id": _uuid(),
            "shop_id": shop_id or _uuid(),
            "name": "Test Product",
            "category": "vegetables",
            "unit": "kg",
            "price_cents": 350,
            "stock": 10,
            "is_available": True,
        }
        defaults.update(overrides)
        return Product(**defaults)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


async def seed_producer(db, *, shop_name="Test Shop", pickup_location="Farm gate"):
    """Insert a producer with one active shop; returns (AuthUser, Shop)."""
    producer = ProducerFactory.create(display_name=f"{shop_name} owner")
    shop = ShopFactory.create(
        producer_id=producer.id, name=shop_name, pickup_location=pickup_location
    )
    db.add_all([producer, shop])
    await db.commit()
    return make_producer_user(user_id=producer.id), shop


async def seed_customer(db, **overrides):
    """Insert a customer profile; returns its AuthUser."""
    customer = CustomerFactory.create(**overrides)
    db.add(customer)
    await db.commit()
    return make_customer_user(user_id=customer.id, email=customer.email)


async def seed_product(db, shop, **overrides):
    product = ProductFactory.create(shop_id=shop.id, **overrides)
    db.add(product)
    await db.commit()
    return product
