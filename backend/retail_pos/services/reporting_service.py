# Overview: Service-layer operations for sales reporting over committed orders.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Order, OrderLine, User
from retail_pos.time_utils import store_midnight_utc, to_store_time, to_utc_z, utcnow


DATE_RANGES = ("all", "today", "yesterday", "last_7_days", "this_month", "custom")

# Orders other than these never count as sales
REPORTED_STATUSES = ("Completed",)


class ReportError(Exception):
    """Raised when report parameters are invalid."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _parse_day(value: str | None, name: str) -> date:
    if not value:
        raise ReportError(f"{name} is required for a custom range", {"field": name})
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ReportError(f"{name} must be a YYYY-MM-DD date", {"field": name}) from None


def resolve_range(
    date_range: str,
    start_date: str | None = None,
    end_date: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """
    Translate a preset into a half-open [start, end) window of UTC-naive
    datetimes. Days are calendar days in the store time zone.

    - all: no bounds
    - today / yesterday: one store day
    - last_7_days: from the start of the day seven days ago up to now
    - this_month: the whole current calendar month
    - custom: start_date through end_date inclusive (YYYY-MM-DD)
    """
    now = now or utcnow()
    today = to_store_time(now).date()

    if date_range == "all":
        return None, None
    if date_range == "today":
        return store_midnight_utc(today), store_midnight_utc(today + timedelta(days=1))
    if date_range == "yesterday":
        return store_midnight_utc(today - timedelta(days=1)), store_midnight_utc(today)
    if date_range == "last_7_days":
        return store_midnight_utc(today - timedelta(days=7)), now + timedelta(microseconds=1)
    if date_range == "this_month":
        first = today.replace(day=1)
        following = (first + timedelta(days=32)).replace(day=1)
        return store_midnight_utc(first), store_midnight_utc(following)
    if date_range == "custom":
        first = _parse_day(start_date, "startDate")
        last = _parse_day(end_date, "endDate")
        if first > last:
            raise ReportError("startDate must not be after endDate", {"field": "startDate"})
        return store_midnight_utc(first), store_midnight_utc(last + timedelta(days=1))

    raise ReportError(
        f"dateRange must be one of: {', '.join(DATE_RANGES)}",
        {"field": "dateRange"},
    )


def _format_order(order: Order, customer: Customer | None, staff_names: dict[int, str]) -> dict:
    return {
        "id": order.id,
        "created_at": to_utc_z(order.created_at),
        "total_price": order.total_price,
        "status": order.status,
        "customer": {
            "name": customer.name if customer else "N/A",
            "phone": customer.phone if customer else "N/A",
        },
        "employee": staff_names.get(order.employee_id) or "N/A",
        "products": [line.to_dict() for line in order.lines],
    }


def sales_report(
    *,
    date_range: str = "this_month",
    start_date: str | None = None,
    end_date: str | None = None,
    page: int = 1,
    limit: int = 10,
    now: datetime | None = None,
) -> dict:
    """
    Orders in a date window, newest first, with statistics over the whole
    window (not just the returned page).

    Returns:
        {"range", "statistics": {total_revenue, total_orders, total_products},
         "pagination": {current_page, total_pages, total_items, items_per_page},
         "orders": [...]}
    """
    start, end = resolve_range(date_range, start_date, end_date, now=now)
    limit = min(max(limit or 10, 1), 100)
    page = max(page or 1, 1)

    filters = [Order.status.in_(REPORTED_STATUSES)]
    if start is not None:
        filters.append(Order.created_at >= start)
    if end is not None:
        filters.append(Order.created_at < end)

    total_orders, total_revenue = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_price), 0),
    ).filter(*filters).one()

    total_products = db.session.query(
        func.coalesce(func.sum(OrderLine.quantity), 0),
    ).join(Order, OrderLine.order_id == Order.id).filter(*filters).scalar()

    rows = (
        db.session.query(Order, Customer)
        .outerjoin(Customer, Customer.id == Order.customer_id)
        .filter(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    employee_ids = {order.employee_id for order, _ in rows}
    staff_names = {
        user.id: user.fullname
        for user in db.session.query(User).filter(User.id.in_(employee_ids))
    } if employee_ids else {}

    total_orders = int(total_orders or 0)
    return {
        "range": {
            "date_range": date_range,
            "start": to_utc_z(start),
            "end": to_utc_z(end),
        },
        "statistics": {
            "total_revenue": int(total_revenue or 0),
            "total_orders": total_orders,
            "total_products": int(total_products or 0),
        },
        "pagination": {
            "current_page": page,
            "total_pages": (total_orders + limit - 1) // limit if total_orders else 1,
            "total_items": total_orders,
            "items_per_page": limit,
        },
        "orders": [_format_order(order, customer, staff_names) for order, customer in rows],
    }
