# Overview: Sales reporting; period windows, summaries and dashboard statistics.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Iterable

from sqlalchemy import func

from kasir.extensions import db
from kasir.models import Product, Transaction, TransactionItem
from kasir.errors import InvalidPeriodError
from kasir.time_utils import utcnow, to_utc_z
"""
Report Window Rules (authoritative)

All datetimes are UTC-naive. Weeks start on Monday.

1. start and end given  -> used verbatim, no snapping.
2. only start given     -> end = now.
3. only end given       -> start derived from period relative to end:
     daily:   [start of end's day, end of end's day]
     weekly:  [Monday 00:00 of end's week, end]
     monthly: [1st 00:00 of end's month, end]
4. neither given        -> as 3, anchored to now, except weekly also snaps
                           end to Sunday 23:59:59.999 of that week.
"""

PERIODS = ("daily", "weekly", "monthly")

END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class ReportWindow:
    start: datetime
    end: datetime


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min)


def end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), END_OF_DAY)


def start_of_week(dt: datetime) -> datetime:
    # weekday(): Monday == 0 ... Sunday == 6
    return start_of_day(dt - timedelta(days=dt.weekday()))


def end_of_week(dt: datetime) -> datetime:
    return end_of_day(start_of_week(dt) + timedelta(days=6))


def start_of_month(dt: datetime) -> datetime:
    return start_of_day(dt.replace(day=1))


def resolve_window(
    period: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    *,
    now: datetime | None = None,
) -> ReportWindow:
    if period not in PERIODS:
        raise InvalidPeriodError(
            f"period must be one of {', '.join(PERIODS)}",
            {"period": period},
        )

    if start_date is not None and end_date is not None:
        return ReportWindow(start=start_date, end=end_date)

    now = now or utcnow()

    if start_date is not None:
        return ReportWindow(start=start_date, end=now)

    if end_date is not None:
        if period == "daily":
            return ReportWindow(start=start_of_day(end_date), end=end_of_day(end_date))
        if period == "weekly":
            return ReportWindow(start=start_of_week(end_date), end=end_date)
        return ReportWindow(start=start_of_month(end_date), end=end_date)

    if period == "daily":
        return ReportWindow(start=start_of_day(now), end=end_of_day(now))
    if period == "weekly":
        return ReportWindow(start=start_of_week(now), end=end_of_week(now))
    return ReportWindow(start=start_of_month(now), end=now)


def summarize(
    transactions: Iterable[Transaction],
    window: ReportWindow | None = None,
) -> dict:
    """
    Totals over completed transactions (optionally restricted to a window,
    bounds inclusive). Average is rounded half-up to whole cents and is 0
    when there are no transactions.
    """
    total_sales_cents = 0
    count = 0
    for tx in transactions:
        if tx.status != "completed":
            continue
        if window is not None and not (window.start <= tx.created_at <= window.end):
            continue
        total_sales_cents += tx.total_amount_cents
        count += 1

    average = (total_sales_cents + count // 2) // count if count else 0
    return {
        "total_sales_cents": total_sales_cents,
        "total_transactions": count,
        "average_transaction_cents": average,
    }


def completed_transactions_between(start: datetime, end: datetime) -> list[Transaction]:
    return (
        db.session.query(Transaction)
        .filter(
            Transaction.status == "completed",
            Transaction.created_at >= start,
            Transaction.created_at <= end,
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )


def sales_report(
    *,
    period: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> dict:
    window = resolve_window(period, start_date, end_date, now=now)
    transactions = completed_transactions_between(window.start, window.end)
    summary = summarize(transactions, window)
    return {
        "period": period,
        "start_date": to_utc_z(window.start),
        "end_date": to_utc_z(window.end),
        **summary,
        "transactions": [tx.to_dict() for tx in transactions],
    }


def _completed_total_between(start: datetime, end: datetime) -> tuple[int, int]:
    row = db.session.query(
        func.coalesce(func.sum(Transaction.total_amount_cents), 0).label("total"),
        func.count(Transaction.id).label("count"),
    ).filter(
        Transaction.status == "completed",
        Transaction.created_at >= start,
        Transaction.created_at <= end,
    ).one()
    return int(row.total or 0), int(row.count or 0)


def top_selling_products(limit: int = 5) -> list[dict]:
    """Best sellers by units over completed transactions, with revenue."""
    rows = db.session.query(
        TransactionItem.product_id.label("product_id"),
        Product.name.label("product_name"),
        func.coalesce(func.sum(TransactionItem.quantity), 0).label("total_sold"),
        func.coalesce(func.sum(TransactionItem.total_price_cents), 0).label("revenue_cents"),
    ).join(
        Transaction, TransactionItem.transaction_id == Transaction.id
    ).join(
        Product, TransactionItem.product_id == Product.id
    ).filter(
        Transaction.status == "completed",
    ).group_by(
        TransactionItem.product_id, Product.name
    ).order_by(
        func.sum(TransactionItem.quantity).desc(),
        TransactionItem.product_id.asc(),
    ).limit(limit).all()

    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "total_sold": int(row.total_sold or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def dashboard_stats(
    *,
    now: datetime | None = None,
    low_stock_threshold: int = 10,
    top_limit: int = 5,
) -> dict:
    now = now or utcnow()

    sales_today, transactions_today = _completed_total_between(start_of_day(now), end_of_day(now))
    revenue_month, _ = _completed_total_between(start_of_month(now), now)

    low_stock = db.session.query(func.count(Product.id)).filter(
        Product.is_active.is_(True),
        Product.stock_quantity < low_stock_threshold,
    ).scalar()

    return {
        "as_of": to_utc_z(now),
        "total_sales_today_cents": sales_today,
        "total_transactions_today": transactions_today,
        "low_stock_products": int(low_stock or 0),
        "total_revenue_month_cents": revenue_month,
        "top_selling_products": top_selling_products(limit=top_limit),
    }
