from core.db import Base, engine, SessionLocal
from core.auth_service import register_user
from core.logger import configure_logging
from models.enums import DriverStatus, Role
from models.restaurant import Restaurant, MenuItem
from models.driver import DeliveryDriver
import models  # noqa: F401  registers every table on Base.metadata

DEMO_PASSWORD = "demo123"


def seed_accounts(db):
    customer = register_user(db, "customer@foodcourier.com", DEMO_PASSWORD, Role.CUSTOMER,
                             username="Demo Customer", address="Jl. Merdeka 10")
    owner = register_user(db, "owner@foodcourier.com", DEMO_PASSWORD, Role.RESTAURANT, username="Demo Owner")
    driver = register_user(db, "driver@foodcourier.com", DEMO_PASSWORD, Role.DRIVER, username="Demo Driver")
    print("Demo accounts created.")
    return customer, owner, driver


def seed_restaurant(db, owner):
    restaurant = Restaurant(owner_id=owner.id, name="Warung Pojok", address="Jl. Sudirman 5",
                            cuisine="Indonesian", delivery_fee=5000, rating=4.5, is_active=True)
    restaurant.menu_items = [
        MenuItem(name="Nasi Goreng", description="Fried rice with egg.", category="Rice", price=20000),
        MenuItem(name="Mie Ayam", description="Chicken noodles.", category="Noodles", price=15000),
        MenuItem(name="Sate Ayam", description="Chicken satay, 10 skewers.", category="Grill", price=25000),
        MenuItem(name="Es Teh Manis", description="Sweet iced tea.", category="Drinks", price=5000),
        MenuItem(name="Kerupuk", description="Crackers.", category="Sides", price=3000, is_available=False),
    ]
    db.add(restaurant)
    db.commit()
    print(f"Restaurant '{restaurant.name}' seeded with {len(restaurant.menu_items)} menu items.")
    return restaurant


def seed_driver(db, account):
    driver = DeliveryDriver(user_id=account.id, name="Budi", phone="0812000000", vehicle="Motorcycle",
                            status=DriverStatus.ONLINE.value, rating=4.8)
    db.add(driver)
    db.commit()
    print(f"Driver profile #{driver.id} seeded (Online).")
    return driver


def init_db():
    print("Rebuilding database (drop/create)...")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    print("All tables created:")
    for table in Base.metadata.sorted_tables:
        print(f"   - {table.name}")

    db = SessionLocal()
    try:
        customer, owner, driver_account = seed_accounts(db)
        seed_restaurant(db, owner)
        seed_driver(db, driver_account)
    finally:
        db.close()

    print("\nDatabase initialization complete!")
    print(f"Demo logins (password '{DEMO_PASSWORD}'): customer@, owner@, driver@foodcourier.com")


if __name__ == "__main__":
    configure_logging()
    init_db()
