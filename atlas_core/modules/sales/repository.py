# atlas_core/modules/sales/repository.py
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from pymongo import ASCENDING, DESCENDING

from atlas_core.core.database import get_database
from atlas_core.core.repository import BaseRepository, Document


class OrderRepository(BaseRepository):
    collection_name = "orders"

    async def list_created_between(self, start: Optional[datetime], end: Optional[datetime], limit: int = 0) -> List[Document]:
        query: Dict[str, Any] = {}
        if start or end:
            query["created_at"] = {}
            if start:
                query["created_at"]["$gte"] = start
            if end:
                query["created_at"]["$lt"] = end
        return await self.list_by(query, limit=limit, sort=[("created_at", DESCENDING)])


class OrderItemRepository(BaseRepository):
    collection_name = "order_items"

    async def list_for_orders(self, order_ids: List[str]) -> List[Document]:
        if not order_ids:
            return []
        return await self.list_by({"order_id": {"$in": order_ids}})

    async def delete_for_order(self, order_id: str) -> int:
        return await self.delete_many({"order_id": order_id})


class PromoterSaleRepository(BaseRepository):
    collection_name = "promoter_sales"

    async def list_for_summary(self, date_from: str, date_to: str, approval_status: Optional[str]) -> List[Document]:
        query: Dict[str, Any] = {"sale_date": {"$gte": date_from, "$lte": date_to}}
        if approval_status:
            query["approval_status"] = approval_status
        return await self.list_by(
            query,
            projection={"sale_date": 1, "promoter_name": 1, "origin": 1, "quantity": 1, "unit_price": 1, "approval_status": 1},
        )


class ProductRepository(BaseRepository):
    collection_name = "products"

    async def search(self, q: str, limit: int) -> List[Document]:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        rows = await self.list_by(
            {"$or": [{"code": pattern}, {"name": pattern}]},
            limit=limit,
            sort=[("name", ASCENDING)],
            projection={"code": 1, "name": 1, "retail_price": 1, "stock": 1},
        )
        for row in rows:
            row.pop("id", None)
        return rows

    async def list_all(self) -> List[Document]:
        return await self.list_by({}, sort=[("name", ASCENDING)])


class ProductReturnRepository(BaseRepository):
    collection_name = "product_returns"

    async def list_for_date(self, day: str) -> List[Document]:
        return await self.list_by({"return_date": day}, projection={"return_amount": 1})

    async def list_recent(self, date_from: Optional[str], date_to: Optional[str], limit: int) -> List[Document]:
        query: Dict[str, Any] = {}
        if date_from or date_to:
            query["return_date"] = {}
            if date_from:
                query["return_date"]["$gte"] = date_from
            if date_to:
                query["return_date"]["$lte"] = date_to
        return await self.list_by(query, limit=limit, sort=[("return_date", DESCENDING)])


class SalesSummaryRepository(BaseRepository):
    collection_name = "monthly_sales_summary"

    async def list_sorted(self) -> List[Document]:
        return await self.list_by({}, sort=[("summary_date", ASCENDING)])


async def get_order_repository(db=Depends(get_database)) -> OrderRepository:
    return OrderRepository(db)


async def get_order_item_repository(db=Depends(get_database)) -> OrderItemRepository:
    return OrderItemRepository(db)


async def get_promoter_sale_repository(db=Depends(get_database)) -> PromoterSaleRepository:
    return PromoterSaleRepository(db)


async def get_product_repository(db=Depends(get_database)) -> ProductRepository:
    return ProductRepository(db)


async def get_product_return_repository(db=Depends(get_database)) -> ProductReturnRepository:
    return ProductReturnRepository(db)


async def get_sales_summary_repository(db=Depends(get_database)) -> SalesSummaryRepository:
    return SalesSummaryRepository(db)
