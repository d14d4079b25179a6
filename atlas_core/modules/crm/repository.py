# atlas_core/modules/crm/repository.py
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from pymongo import DESCENDING

from atlas_core.core.database import get_database, with_db_retry
from atlas_core.core.repository import BaseRepository, Document


def _ilike_any(fields: Tuple[str, ...], q: str) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(q), "$options": "i"}
    return {"$or": [{field: pattern} for field in fields]}


class CustomerRepository(BaseRepository):
    collection_name = "customers"

    async def search(self, q: str, skip: int, limit: int) -> Tuple[List[Document], int]:
        query = _ilike_any(("name", "email", "phone", "channel", "segment"), q) if q else {}
        rows = await self.list_by(query, skip=skip, limit=limit, sort=[("created_at", DESCENDING)])
        return rows, await self.count(query)

    async def orders_for_customers(self, customer_ids: List[str]) -> List[Document]:
        orders = self.db["orders"]

        async def _run():
            cursor = orders.find(
                {"customer_id": {"$in": customer_ids}},
                {"customer_id": 1, "amount": 1, "created_at": 1},
            )
            return await cursor.to_list(length=None)

        return await with_db_retry(_run, op_name="orders.by_customer")

    async def recent_orders(self, customer_id: str, limit: int = 20) -> List[Document]:
        orders = self.db["orders"]

        async def _run():
            cursor = orders.find(
                {"customer_id": customer_id},
                {"order_no": 1, "amount": 1, "created_at": 1, "status": 1},
                sort=[("created_at", DESCENDING)],
                limit=limit,
            )
            return await cursor.to_list(length=None)

        rows = await with_db_retry(_run, op_name="orders.recent_for_customer")
        return [self.to_api(row) for row in rows]

    async def names_by_id(self, customer_ids: List[str]) -> Dict[str, str]:
        if not customer_ids:
            return {}
        rows = await self.list_by({"_id": {"$in": customer_ids}}, projection={"name": 1})
        return {row["id"]: row.get("name") or "" for row in rows}


class OpportunityRepository(BaseRepository):
    collection_name = "opportunities"

    async def search(self, stage: str = "", q: str = "", customer_id: Optional[str] = None, limit: int = 0) -> List[Document]:
        query: Dict[str, Any] = _ilike_any(("title", "description", "source"), q) if q else {}
        if stage:
            query["stage"] = stage
        if customer_id:
            query["customer_id"] = customer_id
        return await self.list_by(query, limit=limit, sort=[("created_at", DESCENDING)])

    async def owner_names(self, owner_ids: List[str]) -> Dict[str, str]:
        if not owner_ids:
            return {}
        people = self.db["people"]

        async def _run():
            return await people.find({"_id": {"$in": owner_ids}}, {"full_name": 1}).to_list(length=None)

        rows = await with_db_retry(_run, op_name="people.owner_names")
        return {row["_id"]: row.get("full_name") or "" for row in rows}


async def get_customer_repository(db=Depends(get_database)) -> CustomerRepository:
    return CustomerRepository(db)


async def get_opportunity_repository(db=Depends(get_database)) -> OpportunityRepository:
    return OpportunityRepository(db)
