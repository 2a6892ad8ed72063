import pytest

from core import analytics_service, driver_service, order_service
from core.errors import Forbidden, NotFound


def deliver(db, world, order):
    order_service.confirm_order(db, world.owner, order.id)
    order_service.update_order_status(db, world.owner, order.id, "ready")
    driver_service.accept_order(db, world.driver, order.id)
    driver_service.complete_delivery(db, world.driver, order.id)


def test_order_stats(db, world, place_order):
    delivered = place_order()
    deliver(db, world, delivered)
    cancelled = place_order()
    order_service.cancel_order(db, world.customer, cancelled.id)
    place_order()

    stats = analytics_service.order_stats(db, world.owner)
    assert stats["total_orders"] == 3
    assert stats["completed_orders"] == 1
    assert stats["cancelled_orders"] == 1
    assert stats["pending_orders"] == 1
    assert stats["total_revenue"] == 62750
    assert stats["average_order_value"] == pytest.approx(62750 / 3)

    assert analytics_service.order_stats(db, world.other_owner)["total_orders"] == 0
    assert analytics_service.order_stats(db, world.other_customer)["total_revenue"] == 0
    by_driver = analytics_service.order_stats(db, world.owner, driver_id=world.driver_profile.id)
    assert by_driver["total_orders"] == 1


def test_order_item_stats(db, world, place_order):
    place_order()
    place_order(items=[{"menu_item_id": world.nasi.id, "quantity": 1}])

    stats = analytics_service.order_item_stats(db, world.owner)
    assert stats["total_quantity"] == 4
    assert stats["total_value"] == 75000
    assert stats["average_quantity_per_order"] == pytest.approx(4 / 3)
    popular = stats["popular_items"]
    assert [p["name"] for p in popular] == ["Nasi Goreng", "Mie Ayam"]
    assert popular[0]["order_count"] == 2
    assert popular[0]["quantity"] == 3

    empty = analytics_service.order_item_stats(db, world.other_owner)
    assert empty["popular_items"] == []
    assert empty["total_quantity"] == 0
    with pytest.raises(Forbidden):
        analytics_service.order_item_stats(db, world.customer)


def test_driver_stats(db, world, place_order):
    deliver(db, world, place_order())

    stats = analytics_service.driver_stats(db, world.driver, world.driver_profile.id)
    assert stats["total_deliveries"] == 1
    assert stats["total_earnings"] == 15000
    assert stats["completion_rate"] == 100

    assert analytics_service.driver_stats(db, world.owner, world.driver_profile.id)["total_deliveries"] == 1
    fresh = analytics_service.driver_stats(db, world.owner, world.driver2_profile.id)
    assert fresh["completion_rate"] == 0
    with pytest.raises(Forbidden):
        analytics_service.driver_stats(db, world.driver2, world.driver_profile.id)
    with pytest.raises(Forbidden):
        analytics_service.driver_stats(db, world.customer, world.driver_profile.id)
    with pytest.raises(NotFound):
        analytics_service.driver_stats(db, world.owner, 999)


def test_popular_order_items_rank_by_quantity(db, world, place_order):
    place_order()
    place_order(items=[{"menu_item_id": world.mie.id, "quantity": 3}])

    popular = analytics_service.popular_order_items(db, world.owner)
    assert [(p["name"], p["quantity"], p["order_count"]) for p in popular] == [
        ("Mie Ayam", 4, 2),
        ("Nasi Goreng", 2, 1),
    ]
    assert [p["name"] for p in analytics_service.popular_order_items(db, world.owner, limit=1)] == ["Mie Ayam"]
    assert analytics_service.popular_order_items(db, world.owner, restaurant_id=world.other_restaurant.id) == []
    assert analytics_service.popular_order_items(db, world.other_owner) == []
    with pytest.raises(Forbidden):
        analytics_service.popular_order_items(db, world.customer)
