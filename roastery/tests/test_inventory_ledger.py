from decimal import Decimal

import pytest
from sqlalchemy import select

from roastery.app.db.models.models_v1 import Coffee, CoffeeInventoryLog, OrderItem, RetailInventory
from roastery.app.db.models.core_types import PackageType
from roastery.services.errors import InsufficientStockError, LedgerConsistencyError, NotFoundError, ValidationError
from roastery.services.inventory import REASON_INTAKE, REASON_ORDER


def _retail_row(db, shop_id, coffee_id):
    return db.execute(
        select(RetailInventory)
        .where(RetailInventory.shop_id == shop_id)
        .where(RetailInventory.coffee_id == coffee_id)
    ).scalar_one_or_none()


def test_apply_order_moves_green_to_retail(db_session, services, shop, coffee, line):
    """
    GIVEN
    - haircut 15 %, pool vert 10 kg
    - 2 petits paquets filtre (0.40 kg retail)

    THEN
    - 0.46 kg débités, pool à 9.54
    - inventaire retail crédité de 2 paquets / 0.40 kg
    """
    effect = services.ledger.apply_order(db_session, shop_id=shop.id, lines=[line(coffee.id, small_filter=2)])
    db_session.commit()

    assert effect.retail_kg == Decimal("0.40")
    assert effect.green_kg == Decimal("0.46")
    assert effect.haircut_percentage == Decimal("15")

    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("9.54")
    row = _retail_row(db_session, shop.id, coffee.id)
    assert row.small_bags_filter == 2
    assert row.small_bags_espresso == 0
    assert row.total_quantity_kg == Decimal("0.40")
    assert row.last_order_date is not None

    log = db_session.execute(select(CoffeeInventoryLog)).scalar_one()
    assert log.reason == REASON_ORDER
    assert log.change_kg == Decimal("-0.46")
    assert log.balance_kg == Decimal("9.54")


def test_lines_on_same_coffee_see_decremented_balance(db_session, services, shop, make_coffee, line):
    coffee = make_coffee(quantity_kg="2")

    # 1.15 + 1.15 > 2 : la seconde ligne voit le solde de la première
    with pytest.raises(InsufficientStockError) as exc_info:
        services.ledger.apply_order(
            db_session,
            shop_id=shop.id,
            lines=[line(coffee.id, large=1), line(coffee.id, large=1)],
        )
    db_session.rollback()

    assert exc_info.value.available_kg == Decimal("0.85")
    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("2")
    assert _retail_row(db_session, shop.id, coffee.id) is None


def test_lines_on_same_coffee_accumulate(db_session, services, shop, coffee, line):
    services.ledger.apply_order(
        db_session,
        shop_id=shop.id,
        lines=[line(coffee.id, medium_espresso=2), line(coffee.id, medium_espresso=1, large=1)],
    )
    db_session.commit()

    row = _retail_row(db_session, shop.id, coffee.id)
    assert row.medium_bags_espresso == 3
    assert row.large_bags == 1
    assert row.total_quantity_kg == Decimal("2.50")
    # 1.00 * 1.15 + 1.50 * 1.15
    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("7.125")


def test_insufficient_stock_names_coffee_and_shortfall(db_session, services, shop, make_coffee, line):
    coffee = make_coffee(name="Sidamo", quantity_kg="1")

    with pytest.raises(InsufficientStockError) as exc_info:
        services.ledger.apply_order(db_session, shop_id=shop.id, lines=[line(coffee.id, large=1)])
    db_session.rollback()

    err = exc_info.value
    assert err.coffee_name == "Sidamo"
    assert err.requested_kg == Decimal("1.15")
    assert err.shortfall_kg == Decimal("0.15")
    assert "Sidamo" in str(err)


def test_unknown_coffee(db_session, services, shop, line):
    with pytest.raises(NotFoundError):
        services.ledger.apply_order(db_session, shop_id=shop.id, lines=[line(999, large=1)])


def test_reverse_item_refuses_negative_counts(db_session, services, shop, coffee):
    item = OrderItem(
        order_id=None,
        coffee_id=coffee.id,
        small_bags_espresso=0,
        small_bags_filter=0,
        medium_bags_espresso=0,
        medium_bags_filter=0,
        large_bags=3,
        total_quantity_kg=Decimal("3"),
        green_quantity_kg=Decimal("3.45"),
    )

    with pytest.raises(LedgerConsistencyError):
        services.ledger.reverse_item(db_session, shop_id=shop.id, item=item)
    db_session.rollback()

    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("10")


def test_add_green_stock_is_logged(db_session, services, coffee, admin):
    services.ledger.add_green_stock(db_session, coffee_id=coffee.id, amount_kg=Decimal("2.5"), actor_id=admin.id)
    db_session.commit()

    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("12.5")
    log = db_session.execute(select(CoffeeInventoryLog)).scalar_one()
    assert log.reason == REASON_INTAKE
    assert log.created_by == admin.id


def test_green_withdrawal_cannot_go_negative(db_session, services, coffee):
    with pytest.raises(InsufficientStockError):
        services.ledger.add_green_stock(db_session, coffee_id=coffee.id, amount_kg=Decimal("-10.001"))
    with pytest.raises(ValidationError):
        services.ledger.add_green_stock(db_session, coffee_id=coffee.id, amount_kg=Decimal("0"))


def test_stock_take_replaces_counts_and_recomputes_total(db_session, services, shop, coffee, line):
    services.ledger.apply_order(db_session, shop_id=shop.id, lines=[line(coffee.id, small_espresso=10, large=2)])
    db_session.commit()

    services.ledger.record_stock_take(
        db_session,
        shop_id=shop.id,
        coffee_id=coffee.id,
        counts={PackageType.small_espresso: 4, PackageType.large: 1},
    )
    db_session.commit()

    row = _retail_row(db_session, shop.id, coffee.id)
    assert row.small_bags_espresso == 4
    assert row.large_bags == 1
    assert row.total_quantity_kg == Decimal("1.80")
    # le comptage ne touche pas au pool vert
    assert db_session.get(Coffee, coffee.id).quantity_kg == Decimal("5.40")


def test_green_movements_newest_first_with_paging(db_session, services, shop, make_coffee, admin, line):
    """
    GIVEN
    - deux cafés, une commande puis un apport sur le premier

    THEN
    - le journal est lu du plus récent au plus ancien
    - filtre par café, limit / offset respectés
    """
    kenya = make_coffee(name="Kenya")
    brazil = make_coffee(name="Brazil")
    services.ledger.apply_order(db_session, shop_id=shop.id, lines=[line(kenya.id, large=1), line(brazil.id, large=2)])
    db_session.commit()
    services.ledger.add_green_stock(db_session, coffee_id=kenya.id, amount_kg=Decimal("3"), actor_id=admin.id)
    db_session.commit()

    moves = services.ledger.green_movements(db_session, coffee_id=kenya.id)
    assert [(m.reason, m.change_kg) for m in moves] == [
        (REASON_INTAKE, Decimal("3")),
        (REASON_ORDER, Decimal("-1.15")),
    ]
    assert moves[0].balance_kg == Decimal("11.85")

    assert len(services.ledger.green_movements(db_session)) == 3
    [page] = services.ledger.green_movements(db_session, coffee_id=kenya.id, limit=1, offset=1)
    assert page.reason == REASON_ORDER


def test_green_movements_rejects_bad_arguments(db_session, services, coffee):
    with pytest.raises(NotFoundError):
        services.ledger.green_movements(db_session, coffee_id=999)
    with pytest.raises(ValidationError):
        services.ledger.green_movements(db_session, limit=0)
    with pytest.raises(ValidationError):
        services.ledger.green_movements(db_session, offset=-1)
    assert services.ledger.green_movements(db_session, coffee_id=coffee.id) == []
