# Overview: Read-only aggregates over the sales and credit ledgers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from ..errors import ValidationError
from ..extensions import db
from ..models import DigitalProduct, Platform, PlatformCreditMovement, StockSale, PAYMENT_TYPES, PRODUCT_CATEGORIES
from digistock.time_utils import parse_iso_datetime, to_utc_z
from .catalog_service import get_platform
from .credit_service import CREDIT_ADDED, CREDIT_DEDUCTED, SALE_DEDUCTION, SALE_REFUND


def _parse_range(start: str | datetime | None, end: str | datetime | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
        end_dt = parse_iso_datetime(end) if isinstance(end, str) else end
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 datetimes")
    return start_dt, end_dt


def _margin_percent(profit_cents: int, revenue_cents: int) -> float:
    if revenue_cents <= 0:
        return 0.0
    return round(profit_cents * 100 / revenue_cents, 2)


def _active_sales(start_dt: datetime | None, end_dt: datetime | None):
    query = db.session.query(StockSale).filter(StockSale.status == "active")
    if start_dt:
        query = query.filter(StockSale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(StockSale.sale_date <= end_dt)
    return query


def platform_profitability(
    *,
    platform_id: str | None = None,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
) -> dict:
    """
    Per-platform revenue, platform cost and profit for active sales in the
    range, with totals across the listed platforms.
    """
    start_dt, end_dt = _parse_range(start, end)

    if platform_id:
        platforms = [get_platform(platform_id)]
    else:
        platforms = db.session.query(Platform).order_by(Platform.name.asc()).all()

    rows = (
        _active_sales(start_dt, end_dt)
        .with_entities(
            StockSale.platform_id.label("platform_id"),
            func.count(StockSale.id).label("sales_count"),
            func.coalesce(func.sum(StockSale.quantity), 0).label("quantity"),
            func.coalesce(func.sum(StockSale.total_price_cents), 0).label("revenue_cents"),
            func.coalesce(
                func.sum(StockSale.platform_buying_price_cents * StockSale.quantity), 0
            ).label("platform_cost_cents"),
            func.coalesce(func.sum(StockSale.profit_cents), 0).label("profit_cents"),
            func.coalesce(
                func.sum(case((StockSale.payment_type == "recurring", 1), else_=0)), 0
            ).label("recurring_count"),
        )
        .filter(StockSale.platform_id.isnot(None))
        .group_by(StockSale.platform_id)
        .all()
    )
    by_platform = {row.platform_id: row for row in rows}

    report_rows = []
    totals = {"sales_count": 0, "quantity": 0, "revenue_cents": 0, "platform_cost_cents": 0, "profit_cents": 0}
    for platform in platforms:
        row = by_platform.get(platform.id)
        sales_count = int(row.sales_count) if row else 0
        revenue = int(row.revenue_cents) if row else 0
        profit = int(row.profit_cents) if row else 0
        recurring = int(row.recurring_count) if row else 0
        entry = {
            "platform_id": platform.id,
            "platform_name": platform.name,
            "sales_count": sales_count,
            "quantity": int(row.quantity) if row else 0,
            "revenue_cents": revenue,
            "platform_cost_cents": int(row.platform_cost_cents) if row else 0,
            "profit_cents": profit,
            "margin_percent": _margin_percent(profit, revenue),
            "recurring_sales": recurring,
            "one_time_sales": sales_count - recurring,
            "current_balance_cents": platform.credit_balance_cents,
        }
        for key in totals:
            totals[key] += entry[key]
        report_rows.append(entry)

    totals["margin_percent"] = _margin_percent(totals["profit_cents"], totals["revenue_cents"])
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "platforms": report_rows,
        "summary": totals,
    }


def sales_summary(*, start: str | datetime | None = None, end: str | datetime | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)
    query = _active_sales(start_dt, end_dt)

    totals = query.with_entities(
        func.count(StockSale.id),
        func.coalesce(func.sum(StockSale.total_price_cents), 0),
        func.coalesce(func.sum(StockSale.profit_cents), 0),
        func.coalesce(func.sum(StockSale.paid_amount_cents), 0),
        func.coalesce(func.sum(StockSale.remaining_amount_cents), 0),
    ).one()

    status_rows = (
        query.with_entities(StockSale.payment_status, func.count(StockSale.id))
        .group_by(StockSale.payment_status)
        .all()
    )
    by_status = {"paid": 0, "pending": 0, "partial": 0}
    for status, count in status_rows:
        by_status[status] = int(count)

    sales_count, revenue, profit, collected, outstanding = (int(v or 0) for v in totals)
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "sales_count": sales_count,
        "revenue_cents": revenue,
        "profit_cents": profit,
        "margin_percent": _margin_percent(profit, revenue),
        "collected_cents": collected,
        "outstanding_cents": outstanding,
        "by_payment_status": by_status,
    }


def _average_cents(total_cents: int, count: int) -> int:
    if not count:
        return 0
    return (2 * total_cents + count) // (2 * count)


# =============================================================================
# CREDIT UTILIZATION
# =============================================================================

USAGE_TYPES = (CREDIT_DEDUCTED, SALE_DEDUCTION)


def credit_utilization(
    *,
    platform_id: str | None = None,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
) -> dict:
    """
    Credits added versus credits used per platform, read from the credit
    movement trail.

    Used amounts are reported as positive cents. net_flow_cents is the change
    in balance over the range, refunds of voided sales included, so over the
    whole trail it equals the current balance.
    """
    start_dt, end_dt = _parse_range(start, end)

    if platform_id:
        platforms = [get_platform(platform_id)]
    else:
        platforms = db.session.query(Platform).order_by(Platform.name.asc()).all()

    mv = PlatformCreditMovement
    is_added = mv.type == CREDIT_ADDED
    is_used = mv.type.in_(USAGE_TYPES)
    query = db.session.query(
        mv.platform_id.label("platform_id"),
        func.coalesce(func.sum(case((is_added, mv.amount_cents), else_=0)), 0).label("added_cents"),
        func.coalesce(func.sum(case((is_used, -mv.amount_cents), else_=0)), 0).label("used_cents"),
        func.coalesce(func.sum(case((mv.type == SALE_REFUND, mv.amount_cents), else_=0)), 0).label("refunded_cents"),
        func.coalesce(func.sum(case((is_added, 1), else_=0)), 0).label("add_count"),
        func.coalesce(func.sum(case((is_used, 1), else_=0)), 0).label("use_count"),
        func.coalesce(func.sum(case((mv.type == SALE_DEDUCTION, 1), else_=0)), 0).label("sale_count"),
        func.min(mv.occurred_at).label("first_at"),
        func.max(mv.occurred_at).label("last_at"),
    )
    if platform_id:
        query = query.filter(mv.platform_id == platform_id)
    if start_dt:
        query = query.filter(mv.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(mv.occurred_at <= end_dt)
    by_platform = {row.platform_id: row for row in query.group_by(mv.platform_id).all()}

    report_rows = []
    for platform in platforms:
        row = by_platform.get(platform.id)
        added = int(row.added_cents) if row else 0
        used = int(row.used_cents) if row else 0
        refunded = int(row.refunded_cents) if row else 0
        add_count = int(row.add_count) if row else 0
        use_count = int(row.use_count) if row else 0
        report_rows.append({
            "platform_id": platform.id,
            "platform_name": platform.name,
            "current_balance_cents": platform.credit_balance_cents,
            "credits_added_cents": added,
            "credits_used_cents": used,
            "credits_refunded_cents": refunded,
            "net_flow_cents": added - used + refunded,
            "add_transactions": add_count,
            "use_transactions": use_count,
            "sale_transactions": int(row.sale_count) if row else 0,
            "average_addition_cents": _average_cents(added, add_count),
            "average_usage_cents": _average_cents(used, use_count),
            "utilization_percent": round(used * 100 / added, 2) if added > 0 else 0.0,
            "first_movement_at": to_utc_z(row.first_at) if row and row.first_at else None,
            "last_movement_at": to_utc_z(row.last_at) if row and row.last_at else None,
        })
    report_rows.sort(key=lambda r: (-r["credits_used_cents"], r["platform_name"]))

    funded = [r for r in report_rows if r["credits_added_cents"] > 0]
    busiest = max(report_rows, key=lambda r: r["utilization_percent"], default=None)
    idlest = min(funded, key=lambda r: r["utilization_percent"], default=None)
    rates = [r["utilization_percent"] for r in report_rows]
    summary = {
        "platform_count": len(report_rows),
        "credits_added_cents": sum(r["credits_added_cents"] for r in report_rows),
        "credits_used_cents": sum(r["credits_used_cents"] for r in report_rows),
        "current_balance_cents": sum(r["current_balance_cents"] for r in report_rows),
        "transactions": sum(r["add_transactions"] + r["use_transactions"] for r in report_rows),
        "average_utilization_percent": round(sum(rates) / len(rates), 2) if rates else 0.0,
        "highest_utilization_platform_id": (
            busiest["platform_id"] if busiest and busiest["utilization_percent"] > 0 else None
        ),
        "lowest_utilization_platform_id": idlest["platform_id"] if idlest else None,
    }
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "platforms": report_rows,
        "summary": summary,
    }


# =============================================================================
# SALES PROFIT
# =============================================================================

PROFIT_GROUPINGS = ("platform", "product", "category", "month")


def sales_profit_report(
    *,
    platform_id: str | None = None,
    product_id: str | None = None,
    category: str | None = None,
    payment_type: str | None = None,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
    group_by: str | None = None,
) -> dict:
    """
    Revenue, cost and profit of active sales, optionally grouped.

    group_by: platform | product | category | month (YYYY-MM), or None for a
    single group covering every matching sale. Months are listed in
    calendar order, other groups by revenue.
    """
    start_dt, end_dt = _parse_range(start, end)
    if group_by is not None and group_by not in PROFIT_GROUPINGS:
        raise ValidationError(f"group_by must be one of: {', '.join(PROFIT_GROUPINGS)}")
    if category is not None and category not in PRODUCT_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(PRODUCT_CATEGORIES)}")
    if payment_type is not None and payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")

    if group_by == "platform":
        keys = [StockSale.platform_id.label("group_id"), Platform.name.label("group_name")]
    elif group_by == "product":
        keys = [StockSale.product_id.label("group_id"), DigitalProduct.name.label("group_name")]
    elif group_by == "category":
        keys = [DigitalProduct.category.label("group_id"), DigitalProduct.category.label("group_name")]
    elif group_by == "month":
        period = func.strftime("%Y-%m", StockSale.sale_date)
        keys = [period.label("group_id"), period.label("group_name")]
    else:
        keys = []

    def _count_where(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    query = (
        db.session.query(
            *keys,
            func.count(StockSale.id).label("sales_count"),
            func.coalesce(func.sum(StockSale.quantity), 0).label("quantity"),
            func.coalesce(func.sum(StockSale.total_price_cents), 0).label("revenue_cents"),
            func.coalesce(
                func.sum(StockSale.platform_buying_price_cents * StockSale.quantity), 0
            ).label("cost_cents"),
            func.coalesce(func.sum(StockSale.profit_cents), 0).label("profit_cents"),
            func.coalesce(func.sum(StockSale.unit_price_cents), 0).label("unit_price_sum"),
            func.coalesce(func.sum(StockSale.platform_buying_price_cents), 0).label("buying_price_sum"),
            _count_where(StockSale.payment_type == "recurring").label("recurring_sales"),
            _count_where(StockSale.payment_status == "paid").label("paid_sales"),
            _count_where(StockSale.payment_status == "pending").label("pending_sales"),
            _count_where(StockSale.payment_status == "partial").label("partial_sales"),
            func.min(StockSale.sale_date).label("first_sale"),
            func.max(StockSale.sale_date).label("last_sale"),
        )
        .select_from(StockSale)
        .join(DigitalProduct, DigitalProduct.id == StockSale.product_id)
        .outerjoin(Platform, Platform.id == StockSale.platform_id)
        .filter(StockSale.status == "active")
    )
    if platform_id:
        query = query.filter(StockSale.platform_id == platform_id)
    if product_id:
        query = query.filter(StockSale.product_id == product_id)
    if category:
        query = query.filter(DigitalProduct.category == category)
    if payment_type:
        query = query.filter(StockSale.payment_type == payment_type)
    if start_dt:
        query = query.filter(StockSale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(StockSale.sale_date <= end_dt)
    if keys:
        query = query.group_by(*keys)

    groups = []
    for row in query.all():
        sales_count = int(row.sales_count)
        if not sales_count:
            continue
        revenue = int(row.revenue_cents)
        profit = int(row.profit_cents)
        recurring = int(row.recurring_sales)
        if keys:
            group_id, group_name = row.group_id, row.group_name or "No platform"
        else:
            group_id, group_name = "all", "All sales"
        groups.append({
            "group_id": group_id,
            "group_name": group_name,
            "sales_count": sales_count,
            "quantity": int(row.quantity),
            "revenue_cents": revenue,
            "cost_cents": int(row.cost_cents),
            "profit_cents": profit,
            "margin_percent": _margin_percent(profit, revenue),
            "average_profit_cents": _average_cents(profit, sales_count),
            "average_unit_price_cents": _average_cents(int(row.unit_price_sum), sales_count),
            "average_buying_price_cents": _average_cents(int(row.buying_price_sum), sales_count),
            "recurring_sales": recurring,
            "one_time_sales": sales_count - recurring,
            "paid_sales": int(row.paid_sales),
            "pending_sales": int(row.pending_sales),
            "partial_sales": int(row.partial_sales),
            "first_sale_date": to_utc_z(row.first_sale) if row.first_sale else None,
            "last_sale_date": to_utc_z(row.last_sale) if row.last_sale else None,
        })

    if group_by == "month":
        groups.sort(key=lambda g: g["group_id"])
    else:
        groups.sort(key=lambda g: (-g["revenue_cents"], g["group_name"]))

    totals = {"sales_count": 0, "quantity": 0, "revenue_cents": 0, "cost_cents": 0, "profit_cents": 0}
    for group in groups:
        for key in totals:
            totals[key] += group[key]
    totals["margin_percent"] = _margin_percent(totals["profit_cents"], totals["revenue_cents"])

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "group_by": group_by or "total",
        "groups": groups,
        "summary": totals,
    }
