from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from roastery.app.db.models.models_v1 import AuditLog, Coffee, Order, OrderItem, RetailInventory
from roastery.app.db.models.core_types import OrderStatus
from roastery.services.errors import LedgerConsistencyError, ValidationError
from roastery.services.units import total_weight

T0 = datetime(2026, 3, 2, 9, 0, 0)


def _order(db, services, shop, admin, lines, minutes):
    order = services.orders.create_order(db, shop_id=shop.id, actor_id=admin.id, items=lines)
    order.created_at = T0 + timedelta(minutes=minutes)
    db.commit()
    return order.id


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_keeps_oldest_and_restores_single_order_inventory(db_session, services, shop, coffee, admin, line):
    """
    GIVEN
    - 3 commandes PENDING identiques (2 petits filtre) créées à t1 < t2 < t3
      (ids volontairement dans un autre ordre que created_at)

    THEN
    - seules les lignes t2 et t3 sont supprimées, t1 est gardée
    - l'inventaire est celui d'une seule commande
    """
    o_t2 = _order(db_session, services, shop, admin, [line(coffee.id, small_filter=2)], minutes=10)
    o_t1 = _order(db_session, services, shop, admin, [line(coffee.id, small_filter=2)], minutes=0)
    o_t3 = _order(db_session, services, shop, admin, [line(coffee.id, small_filter=2)], minutes=20)
    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("8.62")

    report = services.reconciler.reconcile(db_session, "PENDING", actor_id=admin.id)

    assert report.groups_found == 1
    assert report.items_deleted == 2
    assert report.orders_removed == 2
    assert not report.partial

    remaining = db_session.execute(select(OrderItem)).scalars().all()
    assert [item.order_id for item in remaining] == [o_t1]
    assert db_session.get(Order, o_t2) is None
    assert db_session.get(Order, o_t3) is None

    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("9.54")
    row = db_session.get(RetailInventory, (shop.id, coffee.id))
    assert row.small_bags_filter == 2
    assert row.total_quantity_kg == Decimal("0.40")

    [correction] = report.corrections
    assert correction.items_deleted == 2
    assert correction.retail_kg == Decimal("0.80")
    assert correction.green_kg == Decimal("0.92")

    audits = db_session.execute(select(AuditLog).where(AuditLog.action == "DELETE_DUPLICATE")).scalars().all()
    assert len(audits) == 2


def test_second_pass_is_a_no_op(db_session, services, shop, coffee, admin, line):
    for minutes in (0, 5):
        _order(db_session, services, shop, admin, [line(coffee.id, large=1)], minutes=minutes)

    services.reconciler.reconcile(db_session)
    pool = db_session.get(Coffee, coffee.id).quantity_kg

    again = services.reconciler.reconcile(db_session)

    assert again.groups_found == 0
    assert again.items_deleted == 0
    assert db_session.get(Coffee, coffee.id).quantity_kg == pool
    assert _count(db_session, OrderItem) == 1


def test_order_with_other_items_is_kept(db_session, services, shop, make_coffee, admin, line):
    a = make_coffee(name="A")
    b = make_coffee(name="B")
    first = _order(db_session, services, shop, admin, [line(a.id, medium_espresso=1)], minutes=0)
    later = _order(db_session, services, shop, admin, [line(a.id, medium_espresso=1), line(b.id, large=1)], minutes=1)

    report = services.reconciler.reconcile(db_session)

    assert report.items_deleted == 1
    assert report.orders_removed == 0
    assert [i.coffee_id for i in db_session.get(Order, later).items] == [b.id]
    assert len(db_session.get(Order, first).items) == 1


def test_only_identical_lines_of_same_shop_and_status(db_session, services, make_shop, coffee, admin, line):
    shop_a = make_shop(name="A")
    shop_b = make_shop(name="B")
    _order(db_session, services, shop_a, admin, [line(coffee.id, small_espresso=2)], minutes=0)
    _order(db_session, services, shop_a, admin, [line(coffee.id, small_espresso=3)], minutes=1)
    _order(db_session, services, shop_b, admin, [line(coffee.id, small_espresso=2)], minutes=2)
    confirmed = _order(db_session, services, shop_a, admin, [line(coffee.id, small_espresso=2)], minutes=3)
    services.orders.transition_status(
        db_session, order_id=confirmed, new_status=OrderStatus.confirmed, actor_id=admin.id
    )

    report = services.reconciler.reconcile(db_session)

    assert report.groups_found == 0
    assert _count(db_session, OrderItem) == 4


@pytest.mark.parametrize("status", ["CONFIRMED", "DELIVERED", "bogus"])
def test_only_pending_can_be_reconciled(db_session, services, status):
    with pytest.raises(ValidationError):
        services.reconciler.reconcile(db_session, status)


def test_failure_is_reported_and_batch_continues(db_session, services, shop, coffee, admin, line, monkeypatch):
    for minutes in (0, 1, 2):
        _order(db_session, services, shop, admin, [line(coffee.id, large=1)], minutes=minutes)

    real_reverse_item = services.ledger.reverse_item
    calls = []

    def flaky_reverse_item(db, **kwargs):
        calls.append(kwargs["item"].id)
        if len(calls) == 1:
            raise LedgerConsistencyError("simulated")
        return real_reverse_item(db, **kwargs)

    monkeypatch.setattr(services.ledger, "reverse_item", flaky_reverse_item)

    report = services.reconciler.reconcile(db_session)

    assert report.partial
    assert report.items_deleted == 1
    assert report.failures[0]["item_id"] == calls[0]
    assert _count(db_session, OrderItem) == 2
    # 3 * 1.15 débités, 1.15 rendu
    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("7.70")


def test_failed_order_delete_keeps_totals_consistent(db_session, services, shop, coffee, admin, line, monkeypatch):
    """
    GIVEN
    - 2 commandes identiques d'une seule ligne (le doublon vide sa commande)
    - la suppression de la commande vide échoue après reverse_item

    THEN
    - échec rapporté, transaction entière annulée
    - pool + Σ vert des lignes == pool initial, total retail == poids des compteurs
    """
    for minutes in (0, 1):
        _order(db_session, services, shop, admin, [line(coffee.id, small_espresso=1, medium_filter=1)], minutes=minutes)

    def failing_delete(instance):
        raise SQLAlchemyError("simulated delete failure")

    monkeypatch.setattr(db_session, "delete", failing_delete)

    report = services.reconciler.reconcile(db_session, actor_id=admin.id)

    assert report.partial
    assert report.items_deleted == 0
    assert report.orders_removed == 0
    assert report.corrections == []
    assert _count(db_session, Order) == 2
    assert _count(db_session, OrderItem) == 2

    pool = db_session.get(Coffee, coffee.id).quantity_kg
    green = sum(Decimal(i.green_quantity_kg) for i in db_session.execute(select(OrderItem)).scalars())
    assert pool + green == Decimal("10")
    assert pool == Decimal("8.39")

    row = db_session.get(RetailInventory, (shop.id, coffee.id))
    assert row.small_bags_espresso == 2
    assert row.medium_bags_filter == 2
    assert row.total_quantity_kg == total_weight(row.counts()) == Decimal("1.40")
    audits = db_session.execute(select(AuditLog).where(AuditLog.action == "DELETE_DUPLICATE")).scalars().all()
    assert audits == []
