from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from roastery.app.db.session import SessionLocal
from roastery.app.db.models.models_v1 import Coffee, Shop, ShopUser, User
from roastery.app.db.models.core_types import CoffeeGrade, Role

logger = logging.getLogger(__name__)


def run_seed(db: Session) -> dict[str, int]:
    # 1) Admin
    admin = db.scalar(select(User).where(User.username == "admin"))
    if not admin:
        admin = User(username="admin", email="admin@roastery.local", role=Role.admin, active=True)
        db.add(admin)
        db.flush()

    # 2) Boutique de démo + un retailer rattaché
    shop = db.scalar(select(Shop).where(Shop.name == "Main Street"))
    if not shop:
        shop = Shop(
            name="Main Street",
            address="1 Main Street",
            min_small_bags=20,
            min_medium_bags=10,
            min_large_bags=5,
        )
        db.add(shop)
        db.flush()

    retailer = db.scalar(select(User).where(User.username == "retailer"))
    if not retailer:
        retailer = User(username="retailer", role=Role.retailer, active=True)
        db.add(retailer)
        db.flush()
        db.add(ShopUser(shop_id=shop.id, user_id=retailer.id))

    # 3) Un café vert en stock
    coffee = db.scalar(select(Coffee).where(Coffee.name == "Yirgacheffe"))
    if not coffee:
        coffee = Coffee(
            name="Yirgacheffe",
            origin="Ethiopia",
            process="washed",
            grade=CoffeeGrade.specialty,
            quantity_kg=Decimal("50.000"),
            active=True,
        )
        db.add(coffee)
        db.flush()

    db.commit()
    logger.info("Seed OK: admin=%s shop=%s coffee=%s", admin.id, shop.id, coffee.id)
    return {"admin_id": admin.id, "retailer_id": retailer.id, "shop_id": shop.id, "coffee_id": coffee.id}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    session = SessionLocal()
    try:
        run_seed(session)
    finally:
        session.close()
