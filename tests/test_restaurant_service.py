import pytest

from core import restaurant_service
from core.errors import Conflict, Forbidden, MenuItemNotFound, ValidationError
from core.restaurant_service import RestaurantFilter


def test_create_and_update_restaurant(db, world):
    restaurant = restaurant_service.create_restaurant(db, world.owner, "Bakmi", cuisine="Chinese", delivery_fee=7000)
    assert restaurant.owner_id == world.owner.user_id
    assert restaurant.is_active is True

    restaurant = restaurant_service.update_restaurant(db, world.owner, restaurant.id, delivery_fee=6000)
    assert restaurant.delivery_fee == 6000
    with pytest.raises(Forbidden):
        restaurant_service.update_restaurant(db, world.other_owner, restaurant.id, name="Mine now")
    with pytest.raises(ValidationError):
        restaurant_service.update_restaurant(db, world.owner, restaurant.id, owner_id=1)
    with pytest.raises(ValidationError):
        restaurant_service.create_restaurant(db, world.owner, "Cheap", delivery_fee=-1)
    with pytest.raises(Forbidden):
        restaurant_service.create_restaurant(db, world.customer, "Nope")


def test_list_restaurants(db, world):
    restaurant_service.toggle_restaurant_status(db, world.owner, world.restaurant.id)
    active = restaurant_service.list_restaurants(db, RestaurantFilter(is_active=True))
    assert [r.id for r in active] == [world.other_restaurant.id]
    by_fee = restaurant_service.list_restaurants(db, sort_by="DELIVERY_FEE_DESC")
    assert [r.id for r in by_fee] == [world.other_restaurant.id, world.restaurant.id]
    assert [r.id for r in restaurant_service.list_my_restaurants(db, world.owner)] == [world.restaurant.id]
    with pytest.raises(ValidationError):
        restaurant_service.list_restaurants(db, sort_by="BEST")


def test_menu_management(db, world):
    item = restaurant_service.add_menu_item(db, world.owner, world.restaurant.id, "Es Jeruk", 6000, category="Drinks")
    assert item.is_available is True
    item = restaurant_service.update_menu_item(db, world.owner, item.id, price=6500)
    assert item.price == 6500

    assert restaurant_service.set_menu_item_availability(db, world.owner, item.id).is_available is False
    assert restaurant_service.set_menu_item_availability(db, world.owner, item.id, True).is_available is True
    with pytest.raises(Forbidden):
        restaurant_service.set_menu_item_availability(db, world.other_owner, item.id, False)
    with pytest.raises(Forbidden):
        restaurant_service.add_menu_item(db, world.other_owner, world.restaurant.id, "Sneaky", 1000)

    available = restaurant_service.list_menu(db, world.restaurant.id, available_only=True)
    assert world.sold_out.id not in [m.id for m in available]
    assert item.id in [m.id for m in available]

    assert restaurant_service.delete_menu_item(db, world.owner, item.id) is True
    with pytest.raises(MenuItemNotFound):
        restaurant_service.update_menu_item(db, world.owner, item.id, price=1)


def test_history_blocks_deletion(db, world, place_order):
    place_order()
    with pytest.raises(Conflict) as exc:
        restaurant_service.delete_restaurant(db, world.owner, world.restaurant.id)
    assert exc.value.code == "RESTAURANT_HAS_ORDERS"
    with pytest.raises(Conflict):
        restaurant_service.delete_menu_item(db, world.owner, world.nasi.id)
    assert restaurant_service.delete_restaurant(db, world.other_owner, world.other_restaurant.id) is True


def test_search_and_popular_restaurants(db, world):
    assert [r.id for r in restaurant_service.search_restaurants(db, "warung")] == [world.restaurant.id]
    assert restaurant_service.search_restaurants(db, "nothing like this") == []

    world.other_restaurant.rating = 4.5
    db.commit()
    popular = restaurant_service.popular_restaurants(db)
    assert [r.id for r in popular] == [world.other_restaurant.id, world.restaurant.id]
    assert len(restaurant_service.popular_restaurants(db, limit=1)) == 1

    restaurant_service.toggle_restaurant_status(db, world.owner, world.restaurant.id)
    assert restaurant_service.search_restaurants(db, "warung") == []
    assert [r.id for r in restaurant_service.popular_restaurants(db)] == [world.other_restaurant.id]


def test_menu_item_lookup_and_search(db, world):
    assert restaurant_service.get_menu_item(db, str(world.nasi.id)).name == "Nasi Goreng"
    with pytest.raises(MenuItemNotFound):
        restaurant_service.get_menu_item(db, 999)

    found = restaurant_service.search_menu_items(db, world.restaurant.id, "goreng")
    assert [m.id for m in found] == [world.nasi.id]
    # unavailable items are never returned
    assert restaurant_service.search_menu_items(db, world.restaurant.id, "kerupuk") == []
    everything = restaurant_service.search_menu_items(db, world.restaurant.id, "")
    assert [m.name for m in everything] == ["Mie Ayam", "Nasi Goreng"]
