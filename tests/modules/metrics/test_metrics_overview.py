# tests/modules/metrics/test_metrics_overview.py
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from httpx import AsyncClient
from fastapi import status
from pymongo.errors import AutoReconnect, OperationFailure

from atlas_core.main import app
from atlas_core.modules.metrics.models import TimeRange
from atlas_core.modules.metrics.repository import MetricsRepository, get_metrics_repository
from atlas_core.modules.metrics.services import (
    MetricsService,
    aggregate_items,
    business_ranges,
    items_in_range,
)

# Wednesday 2024-05-15, 14:00 in La Paz (UTC-4)
NOW = datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_business_ranges_follow_local_calendar():
    ranges = business_ranges(NOW)
    assert ranges["today"] == TimeRange(start=utc(2024, 5, 15, 4), end=utc(2024, 5, 16, 4))
    assert ranges["week"] == TimeRange(start=utc(2024, 5, 13, 4), end=utc(2024, 5, 20, 4))
    assert ranges["month"] == TimeRange(start=utc(2024, 5, 1, 4), end=utc(2024, 6, 1, 4))


def test_business_ranges_roll_over_year_end():
    ranges = business_ranges(utc(2024, 12, 31, 12))
    assert ranges["month"].end == utc(2025, 1, 1, 4)


def test_unparseable_or_missing_timestamps_are_excluded():
    bounds = business_ranges(NOW)["month"]
    items = [
        {"order_id": "a", "subtotal": 10, "order_created_at": "2024-05-10T12:00:00Z"},
        {"order_id": "b", "subtotal": 99, "order_created_at": "not-a-date"},
        {"order_id": "c", "subtotal": 99, "order_created_at": None},
    ]
    selected = items_in_range(items, bounds)
    assert [i["order_id"] for i in selected] == ["a"]


def test_tickets_count_distinct_orders_not_rows():
    totals = aggregate_items([
        {"order_id": "a", "subtotal": 10, "quantity": 1},
        {"order_id": "a", "subtotal": 5, "quantity": None},
        {"order_id": "b", "subtotal": None, "quantity": 2},
    ])
    assert totals.tickets == 2
    assert totals.revenue == 15
    assert totals.units == 3


async def _seed(db):
    orders = [
        {"_id": "today", "created_at": datetime(2024, 5, 15, 12, 0)},
        {"_id": "monday", "created_at": datetime(2024, 5, 13, 5, 0)},
        {"_id": "early-may", "created_at": datetime(2024, 5, 2, 10, 0)},
        # 22:00 on April 30 in La Paz
        {"_id": "april", "created_at": datetime(2024, 5, 1, 2, 0)},
    ]
    items = [
        {"_id": "i1", "order_id": "today", "subtotal": 100, "quantity": 2},
        {"_id": "i2", "order_id": "today", "subtotal": 50, "quantity": 1},
        {"_id": "i3", "order_id": "monday", "subtotal": 30, "quantity": None},
        {"_id": "i4", "order_id": "early-may", "subtotal": 20, "quantity": 1},
        {"_id": "i5", "order_id": "april", "subtotal": 999, "quantity": 9},
    ]
    returns = [
        {"_id": "r1", "return_date": "2024-05-15", "return_amount": 10},
        {"_id": "r2", "return_date": "2024-05-15", "return_amount": None},
        {"_id": "r3", "return_date": "2024-05-14", "return_amount": 70},
    ]
    attendance = [
        {"_id": "a1", "person_id": "p1", "created_at": datetime(2024, 5, 15, 13, 0)},
        {"_id": "a2", "person_id": "p1", "created_at": datetime(2024, 5, 15, 14, 0)},
        {"_id": "a3", "person_id": "p2", "created_at": datetime(2024, 5, 15, 15, 0)},
        {"_id": "a4", "person_id": "p3", "created_at": datetime(2024, 5, 15, 3, 0)},
    ]
    await db["orders"].insert_many(orders)
    await db["order_items"].insert_many(items)
    await db["product_returns"].insert_many(returns)
    await db["attendance"].insert_many(attendance)


async def test_overview_nests_today_in_week_in_month(db_client):
    await _seed(db_client)

    overview = await MetricsService(MetricsRepository(db_client)).overview(now=NOW)

    assert overview.today.model_dump() == {"revenue": 150, "tickets": 1, "units": 3}
    assert overview.week.model_dump() == {"revenue": 180, "tickets": 2, "units": 3}
    assert overview.month.model_dump() == {"revenue": 200, "tickets": 3, "units": 4}
    assert overview.today.revenue <= overview.week.revenue <= overview.month.revenue
    assert overview.returns_today.model_dump() == {"count": 2, "amount": 10}
    assert overview.attendance_today.model_dump() == {"marks": 3, "people": 2}
    assert overview.cash.model_dump() == {"today": 150, "month": 200}


async def test_overview_endpoint_requires_session(test_client: AsyncClient):
    response = await test_client.get("/endpoints/metrics/overview")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


async def test_overview_endpoint_shape(test_client: AsyncClient, admin_headers):
    response = await test_client.get("/endpoints/metrics/overview", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["ok"] is True
    assert set(body) == {"ok", "today", "week", "month", "returns_today", "attendance_today", "cash"}
    assert body["today"] == {"revenue": 0, "tickets": 0, "units": 0}


def _failing_repository(**side_effects) -> AsyncMock:
    repo = AsyncMock(spec=MetricsRepository)
    for name in ("orders_created_between", "items_for_orders", "returns_on", "attendance_between"):
        getattr(repo, name).return_value = []
    for name, error in side_effects.items():
        getattr(repo, name).side_effect = error
    return repo


async def test_overview_transient_store_error_is_503(test_client: AsyncClient, admin_headers):
    repo = _failing_repository(orders_created_between=AutoReconnect("connection reset by peer"))
    app.dependency_overrides[get_metrics_repository] = lambda: repo

    response = await test_client.get("/endpoints/metrics/overview", headers=admin_headers)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json() == {"ok": False, "error": "database_unavailable"}
    repo.items_for_orders.assert_not_called()
    repo.returns_on.assert_not_called()


async def test_overview_other_store_error_is_500(test_client: AsyncClient, admin_headers):
    repo = _failing_repository(items_for_orders=OperationFailure("not authorized on atlas", code=13))
    app.dependency_overrides[get_metrics_repository] = lambda: repo

    response = await test_client.get("/endpoints/metrics/overview", headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"ok": False, "error": "server_error"}
    repo.attendance_between.assert_not_called()
