# atlas_core/modules/metrics/repository.py
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import Depends

from atlas_core.core.database import get_database, with_db_retry


def _naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class MetricsRepository:
    """Read-only queries behind the overview; spans several collections."""

    def __init__(self, db: Any):
        self.db = db

    async def _find(self, collection: str, query: Dict[str, Any], projection: Dict[str, int]) -> List[Dict[str, Any]]:
        async def _run():
            return await self.db[collection].find(query, projection).to_list(length=None)

        return await with_db_retry(_run, op_name=f"{collection}.metrics")

    async def orders_created_between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return await self._find(
            "orders",
            {"created_at": {"$gte": _naive_utc(start), "$lt": _naive_utc(end)}},
            {"created_at": 1},
        )

    async def items_for_orders(self, order_ids: List[str]) -> List[Dict[str, Any]]:
        if not order_ids:
            return []
        return await self._find(
            "order_items",
            {"order_id": {"$in": order_ids}},
            {"order_id": 1, "quantity": 1, "subtotal": 1},
        )

    async def returns_on(self, day: str) -> List[Dict[str, Any]]:
        return await self._find("product_returns", {"return_date": day}, {"return_amount": 1})

    async def attendance_between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return await self._find(
            "attendance",
            {"created_at": {"$gte": _naive_utc(start), "$lt": _naive_utc(end)}},
            {"person_id": 1},
        )


async def get_metrics_repository(db=Depends(get_database)) -> MetricsRepository:
    return MetricsRepository(db)
