# atlas_core/modules/metrics/services.py
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Depends
from loguru import logger

from atlas_core.core.timeutils import app_timezone, local_now, timestamp_to_utc_iso, to_utc_iso
from atlas_core.modules.metrics.models import (
    AttendanceToday,
    CashProxy,
    MetricsOverview,
    OrdersAggregate,
    ReturnsToday,
    TimeRange,
)
from atlas_core.modules.metrics.repository import MetricsRepository, get_metrics_repository


def _local_midnight_utc(day) -> datetime:
    return datetime.combine(day, time.min, tzinfo=app_timezone()).astimezone(timezone.utc)


def business_ranges(now: Optional[datetime] = None) -> Dict[str, TimeRange]:
    """
    Today, the Monday-starting week and the calendar month around `now`,
    computed in the business time zone and returned as UTC bounds.
    """
    today = local_now(now).date()
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    if month_start.month == 12:
        next_month = month_start.replace(year=month_start.year + 1, month=1)
    else:
        next_month = month_start.replace(month=month_start.month + 1)

    return {
        "today": TimeRange(start=_local_midnight_utc(today), end=_local_midnight_utc(today + timedelta(days=1))),
        "week": TimeRange(start=_local_midnight_utc(week_start), end=_local_midnight_utc(week_start + timedelta(days=7))),
        "month": TimeRange(start=_local_midnight_utc(month_start), end=_local_midnight_utc(next_month)),
    }


def items_in_range(items: Iterable[Dict[str, Any]], bounds: TimeRange) -> List[Dict[str, Any]]:
    """Items whose `order_created_at` falls in [start, end). Unparseable timestamps never match."""
    start, end = to_utc_iso(bounds.start), to_utc_iso(bounds.end)
    selected = []
    for item in items:
        stamp = timestamp_to_utc_iso(item.get("order_created_at"))
        if stamp is not None and start <= stamp < end:
            selected.append(item)
    return selected


def aggregate_items(items: List[Dict[str, Any]]) -> OrdersAggregate:
    revenue = sum(item.get("subtotal") or 0 for item in items)
    units = sum(item.get("quantity") or 0 for item in items)
    tickets = len({item.get("order_id") for item in items if item.get("order_id")})
    return OrdersAggregate(revenue=revenue, tickets=tickets, units=units)


def attach_order_timestamps(orders: List[Dict[str, Any]], items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    created_by_order = {order.get("id") or order.get("_id"): order.get("created_at") for order in orders}
    return [{**item, "order_created_at": created_by_order.get(item.get("order_id"))} for item in items]


class MetricsService:
    def __init__(self, repo: MetricsRepository):
        self.repo = repo

    async def overview(self, now: Optional[datetime] = None) -> MetricsOverview:
        log = logger.bind(service="MetricsService")
        ranges = business_ranges(now)
        month = ranges["month"]
        today = ranges["today"]

        orders = await self.repo.orders_created_between(month.start, month.end)
        order_ids = [str(o.get("id") or o.get("_id")) for o in orders]
        items = attach_order_timestamps(orders, await self.repo.items_for_orders(order_ids))

        totals = {key: aggregate_items(items_in_range(items, bounds)) for key, bounds in ranges.items()}

        local_day = local_now(now).date().isoformat()
        returns = await self.repo.returns_on(local_day)
        attendance = await self.repo.attendance_between(today.start, today.end)

        log.debug(f"Overview computed from {len(orders)} order(s) and {len(items)} item(s).")
        return MetricsOverview(
            today=totals["today"],
            week=totals["week"],
            month=totals["month"],
            returns_today=ReturnsToday(
                count=len(returns),
                amount=sum(r.get("return_amount") or 0 for r in returns),
            ),
            attendance_today=AttendanceToday(
                marks=len(attendance),
                people=len({a.get("person_id") for a in attendance if a.get("person_id")}),
            ),
            cash=CashProxy(today=totals["today"].revenue, month=totals["month"].revenue),
        )


async def get_metrics_service(repo: MetricsRepository = Depends(get_metrics_repository)) -> MetricsService:
    return MetricsService(repo)
