# core/analytics_service.py
"""
Order, order-item and driver statistics.

Rows are pulled through the same scoping the order queries use, then
aggregated with pandas.
"""
import pandas as pd
from sqlalchemy.orm import Session

from core.access import Action, require
from core.config import DRIVER_EARNING_PER_DELIVERY
from core.errors import Forbidden, NotFound
from core.order_service import scoped_orders
from core.repositories import DriverRepository, MenuRepository
from core.utils import parse_date, parse_id
from models.enums import OrderStatus, Role
from models.order import Order, OrderItem
from models.restaurant import MenuItem

POPULAR_ITEMS_LIMIT = 5
POPULAR_ORDER_ITEMS_LIMIT = 10


def _orders_frame(query) -> pd.DataFrame:
    rows = query.with_entities(Order.id, Order.status, Order.total).all()
    return pd.DataFrame([tuple(r) for r in rows], columns=["id", "status", "total"])


def order_stats(db: Session, caller, restaurant_id=None, driver_id=None, date_from=None, date_to=None):
    """
    Counts and revenue over the orders visible to the caller.

    Revenue only counts completed orders; the average is taken over all
    matching orders.
    """
    require(caller, Action.VIEW_ORDER_STATS)
    query = scoped_orders(db, caller)
    if restaurant_id is not None:
        query = query.filter(Order.restaurant_id == parse_id(restaurant_id, "restaurant_id"))
    if driver_id is not None:
        query = query.filter(Order.driver_id == parse_id(driver_id, "driver_id"))
    if date_from is not None and date_to is not None:
        query = query.filter(
            Order.created_at >= parse_date(date_from, "date_from"),
            Order.created_at <= parse_date(date_to, "date_to"),
        )

    df = _orders_frame(query)
    counts = df["status"].value_counts()
    completed = df[df["status"] == OrderStatus.COMPLETED.value]
    total_orders = len(df)
    total_revenue = float(completed["total"].sum()) if not completed.empty else 0.0

    return {
        "total_orders": total_orders,
        "total_revenue": total_revenue,
        "average_order_value": total_revenue / total_orders if total_orders else 0.0,
        "completed_orders": int(counts.get(OrderStatus.COMPLETED.value, 0)),
        "cancelled_orders": int(counts.get(OrderStatus.CANCELLED.value, 0)),
        "pending_orders": int(counts.get(OrderStatus.PENDING.value, 0)),
    }


def _order_items_frame(db: Session, caller, restaurant_id=None, date_from=None, date_to=None) -> pd.DataFrame:
    owned = MenuRepository(db).owned_restaurant_ids(caller.user_id)
    query = db.query(
        OrderItem.id, OrderItem.menu_item_id, MenuItem.name, OrderItem.quantity, OrderItem.line_total,
    ).join(MenuItem, MenuItem.id == OrderItem.menu_item_id).filter(MenuItem.restaurant_id.in_(owned))
    if restaurant_id is not None:
        query = query.filter(MenuItem.restaurant_id == parse_id(restaurant_id, "restaurant_id"))
    if date_from is not None and date_to is not None:
        query = query.filter(
            OrderItem.created_at >= parse_date(date_from, "date_from"),
            OrderItem.created_at <= parse_date(date_to, "date_to"),
        )
    return pd.DataFrame(
        [tuple(r) for r in query.all()], columns=["id", "menu_item_id", "name", "quantity", "line_total"]
    )


def _popular(df: pd.DataFrame, limit: int, rank_by):
    if df.empty:
        return []
    popular = (
        df.groupby(["menu_item_id", "name"])
        .agg(order_count=("id", "count"), quantity=("quantity", "sum"), revenue=("line_total", "sum"))
        .reset_index()
        .sort_values(list(rank_by) + ["menu_item_id"], ascending=[False] * len(rank_by) + [True])
        .head(limit)
    )
    return [
        {
            "menu_item_id": int(row.menu_item_id),
            "name": row.name,
            "order_count": int(row.order_count),
            "quantity": int(row.quantity),
            "revenue": float(row.revenue),
        }
        for row in popular.itertuples(index=False)
    ]


def order_item_stats(db: Session, caller, restaurant_id=None, date_from=None, date_to=None):
    """Quantity and value sold for the caller's restaurants, plus the most ordered menu items."""
    require(caller, Action.VIEW_ITEM_STATS)
    df = _order_items_frame(db, caller, restaurant_id, date_from, date_to)
    if df.empty:
        return {"total_quantity": 0, "total_value": 0.0, "popular_items": [], "average_quantity_per_order": 0.0}

    total_quantity = int(df["quantity"].sum())
    return {
        "total_quantity": total_quantity,
        "total_value": float(df["line_total"].sum()),
        "popular_items": _popular(df, POPULAR_ITEMS_LIMIT, ("order_count", "quantity")),
        "average_quantity_per_order": total_quantity / len(df),
    }


def popular_order_items(db: Session, caller, restaurant_id=None, limit: int = POPULAR_ORDER_ITEMS_LIMIT):
    """Menu items of the caller's restaurants ranked by quantity sold."""
    require(caller, Action.VIEW_ITEM_STATS)
    return _popular(_order_items_frame(db, caller, restaurant_id), max(limit, 0), ("quantity", "order_count"))


def driver_stats(db: Session, caller, driver_id):
    """Drivers see their own numbers; restaurant owners see any driver's."""
    require(caller, Action.VIEW_DRIVER_STATS)
    driver = DriverRepository(db).get(parse_id(driver_id, "driver_id"))
    if not driver:
        raise NotFound("Driver not found", code="DRIVER_NOT_FOUND")
    if caller.role == Role.DRIVER and driver.user_id != caller.user_id:
        raise Forbidden("Drivers can only view their own stats")

    df = _orders_frame(db.query(Order).filter(Order.driver_id == driver.id))
    completed = int((df["status"] == OrderStatus.COMPLETED.value).sum())
    total = len(df)
    return {
        "total_deliveries": driver.total_deliveries,
        "total_earnings": completed * DRIVER_EARNING_PER_DELIVERY,
        "average_rating": driver.rating or 0,
        "completion_rate": completed / total * 100 if total else 0.0,
    }
