import pytest

from core import driver_service, order_service
from core.errors import (
    EmptyCart, Forbidden, InvalidOrderStatus, InvalidState, MenuItemMismatch, MenuItemUnavailable,
    MissingAddress, NotFound, OrderNotFound, ValidationError,
)
from core.order_service import OrderFilter, can_transition
from models.audit_log import AuditLog
from models.enums import OrderStatus


def test_transition_table():
    assert can_transition("pending", "confirmed")
    assert can_transition("pending", "cancelled")
    assert can_transition("confirmed", "ready")
    assert not can_transition("pending", "ready")
    assert not can_transition("ready", "preparing")
    assert not can_transition("completed", "cancelled")
    for status in OrderStatus:
        assert not can_transition(status, "pending")


def test_create_order_prices_from_the_menu(db, world, place_order):
    order = place_order()
    assert order.status == "pending"
    assert (order.subtotal, order.service_fee, order.total) == (55000, 2750, 62750)
    assert len(order.items) == 2


def test_create_order_validation(db, world):
    lines = [{"menu_item_id": world.nasi.id, "quantity": 1}]
    with pytest.raises(MissingAddress):
        order_service.create_order(db, world.customer, world.restaurant.id, "", lines)
    with pytest.raises(EmptyCart):
        order_service.create_order(db, world.customer, world.restaurant.id, "Home", [])
    with pytest.raises(MenuItemMismatch):
        order_service.create_order(db, world.customer, world.restaurant.id, "Home",
                                   [{"menu_item_id": world.foreign.id, "quantity": 1}])
    with pytest.raises(MenuItemUnavailable):
        order_service.create_order(db, world.customer, world.restaurant.id, "Home",
                                   [{"menu_item_id": world.sold_out.id, "quantity": 1}])
    with pytest.raises(Forbidden):
        order_service.create_order(db, world.driver, world.restaurant.id, "Home", lines)
    with pytest.raises(ValidationError) as exc:
        order_service.create_order(db, world.customer, world.restaurant.id, "Home", lines, payment_method="cheque")
    assert exc.value.code == "INVALID_PAYMENT_METHOD"


def test_inactive_restaurant_takes_no_orders(db, world):
    world.restaurant.is_active = False
    db.commit()
    with pytest.raises(ValidationError) as exc:
        order_service.create_order(db, world.customer, world.restaurant.id, "Home",
                                   [{"menu_item_id": world.nasi.id, "quantity": 1}])
    assert exc.value.code == "RESTAURANT_UNAVAILABLE"


def test_full_lifecycle(db, world, place_order):
    order = place_order()
    order = order_service.confirm_order(db, world.owner, order.id, estimated_time="30 min")
    assert order.status == "confirmed"
    assert order.estimated_time == "30 min"
    order = order_service.update_order_status(db, world.owner, order.id, "preparing")
    order = order_service.update_order_status(db, world.owner, order.id, "ready")
    assert order.status == "ready"

    order = driver_service.accept_order(db, world.driver, order.id)
    assert order.status == "delivering"
    assert order.driver_id == world.driver_profile.id

    order = order_service.update_order_status(db, world.driver, order.id, "completed")
    assert order.status == "completed"
    db.refresh(world.driver_profile)
    assert world.driver_profile.status == "Online"
    assert world.driver_profile.total_deliveries == 1


def test_customer_cannot_cancel_confirmed_order(db, world, place_order):
    order = place_order()
    order_service.confirm_order(db, world.owner, order.id)
    with pytest.raises(InvalidState):
        order_service.cancel_order(db, world.customer, order.id)
    assert order_service.get_order(db, world.customer, order.id).status == "confirmed"


def test_restaurant_cannot_set_delivery_status(db, world, ready_order):
    with pytest.raises(Forbidden):
        order_service.update_order_status(db, world.owner, ready_order.id, "delivering")
    with pytest.raises(Forbidden):
        order_service.update_order_status(db, world.owner, ready_order.id, "completed")


def test_drivers_cannot_set_kitchen_statuses(db, world, place_order):
    order = place_order()
    with pytest.raises(Forbidden):
        order_service.update_order_status(db, world.driver, order.id, "confirmed")


def test_only_the_restaurant_owner_moves_its_orders(db, world, place_order):
    order = place_order()
    with pytest.raises(Forbidden):
        order_service.confirm_order(db, world.other_owner, order.id)
    with pytest.raises(Forbidden):
        order_service.update_order_status(db, world.customer, order.id, "confirmed")


def test_status_cannot_skip_or_rewind(db, world, place_order):
    order = place_order()
    with pytest.raises(InvalidOrderStatus):
        order_service.update_order_status(db, world.owner, order.id, "ready")
    order_service.confirm_order(db, world.owner, order.id)
    with pytest.raises(InvalidOrderStatus):
        order_service.confirm_order(db, world.owner, order.id)
    for status in ("pending", "cancelled", "lost"):
        with pytest.raises(ValidationError):
            order_service.update_order_status(db, world.owner, order.id, status)


def test_customer_cancels_pending_order(db, world, place_order):
    order = place_order()
    order = order_service.cancel_order(db, world.customer, order.id, reason="changed my mind")
    assert order.status == "cancelled"
    assert order.cancellation_reason == "changed my mind"
    assert order.note is None
    with pytest.raises(InvalidOrderStatus):
        order_service.cancel_order(db, world.customer, order.id)


def test_other_customer_cannot_cancel(db, world, place_order):
    order = place_order()
    with pytest.raises(Forbidden):
        order_service.cancel_order(db, world.other_customer, order.id)


def test_reject_requires_reason(db, world, place_order):
    order = place_order()
    with pytest.raises(ValidationError) as exc:
        order_service.reject_order(db, world.owner, order.id, "  ")
    assert exc.value.code == "REASON_REQUIRED"
    order = order_service.reject_order(db, world.owner, order.id, "out of rice")
    assert order.status == "cancelled"
    assert order.cancellation_reason == "Rejected by restaurant: out of rice"


def test_order_visibility(db, world, place_order):
    order = place_order()
    assert order_service.get_order(db, world.owner, order.id).id == order.id
    with pytest.raises(Forbidden):
        order_service.get_order(db, world.other_customer, order.id)
    with pytest.raises(Forbidden):
        order_service.get_order(db, world.other_owner, order.id)
    with pytest.raises(Forbidden):
        order_service.get_order(db, world.driver, order.id)
    with pytest.raises(OrderNotFound):
        order_service.get_order(db, world.customer, 4242)
    with pytest.raises(NotFound):
        order_service.get_order(db, world.customer, "4242")


def test_drivers_see_open_ready_orders(db, world, ready_order):
    assert order_service.get_order(db, world.driver, ready_order.id).id == ready_order.id


def test_list_orders_is_scoped_filtered_and_sorted(db, world, place_order):
    small = place_order(items=[{"menu_item_id": world.mie.id, "quantity": 1}])
    big = place_order()
    order_service.confirm_order(db, world.owner, big.id)

    ids = [o.id for o in order_service.list_orders(db, world.owner, sort_by="TOTAL_DESC")]
    assert ids == [big.id, small.id]
    confirmed = order_service.list_orders(db, world.owner, OrderFilter(status="confirmed"))
    assert [o.id for o in confirmed] == [big.id]
    cheap = order_service.list_orders(db, world.owner, OrderFilter(max_total=30000))
    assert [o.id for o in cheap] == [small.id]
    assert order_service.list_orders(db, world.other_owner) == []
    assert len(order_service.list_orders(db, world.owner, limit=1)) == 1

    with pytest.raises(ValidationError):
        order_service.list_orders(db, world.owner, sort_by="RANDOM")
    with pytest.raises(Forbidden):
        order_service.list_orders(db, world.customer)


def test_customer_lists(db, world, place_order):
    first = place_order()
    second = place_order()
    order_service.cancel_order(db, world.customer, first.id)

    assert [o.id for o in order_service.list_my_orders(db, world.customer)] == [second.id, first.id]
    assert [o.id for o in order_service.list_active_orders(db, world.customer)] == [second.id]
    assert [o.id for o in order_service.order_history(db, world.customer)] == [first.id]
    assert order_service.list_my_orders(db, world.other_customer) == []


def test_pending_orders_oldest_first(db, world, place_order):
    first = place_order()
    second = place_order()
    pending = order_service.list_pending_orders(db, world.owner)
    assert [o.id for o in pending] == [first.id, second.id]


def test_transitions_are_audited(db, world, place_order):
    order = place_order()
    order_service.confirm_order(db, world.owner, order.id)
    actions = [a.action for a in db.query(AuditLog).order_by(AuditLog.id).all()]
    assert any(f"Order #{order.id} pending -> confirmed" in a for a in actions)
