from core import cart_service
from core.views import cart_view, order_view


def test_empty_cart_view_costs_delivery_only(db, world):
    cart = cart_service.get_or_create_cart(db, world.customer, world.restaurant.id)
    view = cart_view(cart)
    assert view.items == []
    assert view.item_count == 0
    assert view.subtotal == 0
    assert view.total_amount == 5000


def test_cart_view_flags_items_that_went_unavailable(db, world):
    cart_service.add_item(db, world.customer, world.restaurant.id, world.mie.id, 2)
    world.mie.is_available = False
    db.commit()
    db.expire_all()
    view = cart_view(cart_service.get_my_cart(db, world.customer))
    assert view.items[0].is_available is False
    assert view.to_dict()["items"][0]["total_price"] == 30000


def test_order_view(db, world, place_order):
    order = place_order()
    db.expire_all()
    view = order_view(order)
    assert view.total_items == 3
    assert view.total == 62750
    assert {i.name for i in view.items} == {"Nasi Goreng", "Mie Ayam"}
    assert view.to_dict()["status"] == "pending"
