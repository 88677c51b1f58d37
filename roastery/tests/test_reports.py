from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from roastery.app.db.models.core_types import OrderStatus, PackageType
from roastery.services.errors import NotFoundError, ValidationError
from roastery.services.reports import pending_demand, shop_order_history


def test_pending_demand_aggregates_by_coffee(db_session, services, shop, make_coffee, admin, line):
    kenya = make_coffee(name="Kenya AA")
    brazil = make_coffee(name="brazil")
    services.orders.create_order(
        db_session,
        shop_id=shop.id,
        actor_id=admin.id,
        items=[line(kenya.id, small_espresso=2, medium_filter=1), line(brazil.id, large=1)],
    )
    services.orders.create_order(
        db_session, shop_id=shop.id, actor_id=admin.id, items=[line(kenya.id, small_filter=3, large=2)]
    )
    confirmed = services.orders.create_order(
        db_session, shop_id=shop.id, actor_id=admin.id, items=[line(kenya.id, large=4)]
    )
    services.orders.transition_status(
        db_session, order_id=confirmed.id, new_status=OrderStatus.confirmed, actor_id=admin.id
    )

    demand = pending_demand(db_session)

    # tri par nom, insensible à la casse
    assert [d.coffee_name for d in demand] == ["brazil", "Kenya AA"]
    ken = demand[1]
    assert ken.item_count == 2
    assert ken.bags[PackageType.small_espresso] == 2
    assert ken.bags[PackageType.small_filter] == 3
    assert ken.bags[PackageType.large] == 2
    assert ken.espresso_kg == Decimal("0.40")
    assert ken.filter_kg == Decimal("1.10")
    assert ken.total_kg == Decimal("3.50")

    confirmed_demand = pending_demand(db_session, OrderStatus.confirmed)
    assert [(d.coffee_name, d.total_kg) for d in confirmed_demand] == [("Kenya AA", Decimal("4"))]


def test_pending_demand_empty(db_session):
    assert pending_demand(db_session) == []


def test_shop_order_history_window_and_totals(db_session, services, make_shop, coffee, admin, line):
    """
    GIVEN
    - une commande ancienne (120 jours) et deux récentes, dont une annulée
    - une commande d'une autre boutique

    THEN
    - seules les commandes récentes de la boutique, plus récente d'abord
    - totaux sacs / retail / vert par commande
    """
    shop = make_shop(name="Harbour")
    other = make_shop(name="Station")
    old = services.orders.create_order(db_session, shop_id=shop.id, actor_id=admin.id, items=[line(coffee.id, large=1)])
    old.created_at = datetime.utcnow() - timedelta(days=120)
    db_session.commit()

    first = services.orders.create_order(
        db_session, shop_id=shop.id, actor_id=admin.id, items=[line(coffee.id, small_filter=2, medium_espresso=1)]
    )
    second = services.orders.create_order(db_session, shop_id=shop.id, actor_id=admin.id, items=[line(coffee.id, large=2)])
    services.orders.transition_status(
        db_session, order_id=second.id, new_status=OrderStatus.cancelled, actor_id=admin.id
    )
    services.orders.create_order(db_session, shop_id=other.id, actor_id=admin.id, items=[line(coffee.id, large=1)])

    history = shop_order_history(db_session, shop.id)

    assert [h.order_id for h in history] == [second.id, first.id]
    assert history[0].status == OrderStatus.cancelled
    entry = history[1]
    assert entry.item_count == 1
    assert entry.total_bags == 3
    assert entry.ordered_by_id == admin.id
    assert entry.retail_kg == Decimal("0.90")
    assert entry.green_kg == Decimal("1.035")

    assert [h.order_id for h in shop_order_history(db_session, shop.id, days=365)][-1] == old.id


def test_shop_order_history_errors(db_session, shop):
    assert shop_order_history(db_session, shop.id) == []
    with pytest.raises(NotFoundError):
        shop_order_history(db_session, 999)
    with pytest.raises(ValidationError):
        shop_order_history(db_session, shop.id, days=0)
