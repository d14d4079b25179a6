# atlas_core/modules/sales/services.py
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from loguru import logger

from atlas_core.core.permissions import is_approver
from atlas_core.core.repository import utcnow
from atlas_core.core.security import SessionUser
from atlas_core.core.timeutils import local_today, timestamp_to_utc_iso
from atlas_core.modules.sales.models import (
    ORIGIN_KEYS,
    DateRange,
    InventoryProduct,
    PromoterSaleDecisionAPI,
    PromoterSummaryRow,
    SalesReportRow,
)
from atlas_core.modules.sales.repository import (
    OrderItemRepository,
    OrderRepository,
    ProductRepository,
    ProductReturnRepository,
    PromoterSaleRepository,
    SalesSummaryRepository,
    get_order_item_repository,
    get_order_repository,
    get_product_repository,
    get_product_return_repository,
    get_promoter_sale_repository,
    get_sales_summary_repository,
)

_DMY_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
SUMMARY_STATUSES = ("approved", "pending", "rejected", "all")


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    a, b = (a or "").strip().lower(), (b or "").strip().lower()
    return bool(a and b and a == b)


# --- Deletion policies ---

def order_delete_denial(order: Dict[str, Any], session: SessionUser) -> Optional[str]:
    """
    Reason the caller may not delete `order`, or None when allowed.

    Any status other than `pending` means the sale was already validated and only
    an approver may remove it. A pending sale may also be removed by its owner,
    matched by `sales_user_id` or by seller name.
    """
    approver = is_approver(session.role)
    order_status = str(order.get("status") or "").lower()
    if order_status and order_status != "pending":
        if not approver:
            return "Esta venta ya fue validada/asignada. Solo un aprobador puede eliminarla."
        return None
    is_owner = bool(order.get("sales_user_id")) and order.get("sales_user_id") == session.person_id
    if not (is_owner or _same_name(order.get("seller"), session.name) or approver):
        return "Solo el dueño de la venta o un aprobador puede eliminarla."
    return None


def promoter_sale_delete_denial(sale: Dict[str, Any], session: SessionUser) -> Optional[str]:
    """Approved sales: approvers or whoever approved them. Otherwise: the promoter or an approver."""
    approver = is_approver(session.role)
    if str(sale.get("approval_status") or "").lower() == "approved":
        if approver or _same_name(sale.get("approved_by"), session.name):
            return None
        return "Solo quien aprobó (o un rol superior) puede eliminar una venta ya validada."
    if sale.get("promoter_person_id") == session.person_id or approver:
        return None
    return "Solo el dueño de la venta o un superior puede eliminarla."


# --- Promoter summary ---

def as_iso_date(raw: str) -> str:
    """Accepts DD/MM/YYYY or anything starting with YYYY-MM-DD."""
    raw = (raw or "").strip()
    if _DMY_RE.match(raw):
        dd, mm, yyyy = raw.split("/")
        return f"{yyyy}-{mm}-{dd}"
    return raw[:10]


def summary_range(raw_from: str, raw_to: str, today: Optional[date] = None) -> Tuple[str, str]:
    """Both bounds given, or else the last 30 days."""
    if raw_from and raw_to:
        return as_iso_date(raw_from), as_iso_date(raw_to)
    end = today or local_today()
    return (end - timedelta(days=30)).isoformat(), end.isoformat()


def summarize_promoter_sales(rows: List[Dict[str, Any]]) -> List[PromoterSummaryRow]:
    """Groups by (sale_date, promoter_name); totals are quantity x unit_price, also split by origin."""
    grouped: Dict[Tuple[str, str], PromoterSummaryRow] = {}
    for row in rows:
        sale_date = str(row.get("sale_date") or "")
        promoter = row.get("promoter_name") or "—"
        key = (sale_date, promoter)
        summary = grouped.get(key)
        if summary is None:
            summary = grouped[key] = PromoterSummaryRow(sale_date=sale_date, promoter_name=promoter)
        quantity = float(row.get("quantity") or 0)
        line_total = quantity * float(row.get("unit_price") or 0)
        summary.items += quantity
        summary.total_bs += line_total
        origin = row.get("origin")
        if origin in ORIGIN_KEYS:
            setattr(summary, origin, getattr(summary, origin) + line_total)
    return sorted(grouped.values(), key=lambda r: r.sale_date)


def stock_total(stock: Any) -> float:
    """`products.stock` is either a number or a per-branch mapping."""
    if isinstance(stock, dict):
        return float(sum(float(v or 0) for v in stock.values()))
    try:
        return float(stock or 0)
    except (TypeError, ValueError):
        return 0.0


class SalesService:
    def __init__(
        self,
        orders: OrderRepository,
        items: OrderItemRepository,
        promoter_sales: PromoterSaleRepository,
        products: ProductRepository,
        returns: ProductReturnRepository,
        summaries: SalesSummaryRepository,
    ):
        self.orders = orders
        self.items = items
        self.promoter_sales = promoter_sales
        self.products = products
        self.returns = returns
        self.summaries = summaries

    # --- Orders ---

    async def delete_order(self, order_id: str, session: SessionUser):
        log = logger.bind(service="SalesService", order_id=order_id, person_id=session.person_id)
        order = await self.orders.get_by_id(order_id)
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="venta no encontrada")
        denial = order_delete_denial(order, session)
        if denial:
            log.warning(f"Order deletion denied for role '{session.role}'.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=denial)

        # Children first; there is no transaction spanning both deletes
        removed_items = await self.items.delete_for_order(order_id)
        await self.orders.delete(order_id)
        log.info(f"Order deleted with {removed_items} item(s).")

    # --- Promoter sales ---

    async def delete_promoter_sale(self, sale_id: str, session: SessionUser):
        sale = await self.promoter_sales.get_by_id(sale_id)
        if not sale:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="venta no encontrada")
        denial = promoter_sale_delete_denial(sale, session)
        if denial:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=denial)
        await self.promoter_sales.delete(sale_id)
        logger.bind(service="SalesService", sale_id=sale_id).info("Promoter sale deleted.")

    async def decide_promoter_sale(self, sale_id: str, decision: PromoterSaleDecisionAPI) -> str:
        if decision.status not in ("approved", "rejected"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="status inválido")
        fields = {
            "approval_status": decision.status,
            "approval_note": (decision.note or "").strip() or None,
            "approval_ticket": (decision.ticket or "").strip() or None,
            "approved_by": (decision.approver or "").strip() or None,
            "approved_at": utcnow(),
        }
        updated = await self.promoter_sales.update(sale_id, fields)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="venta no encontrada")
        logger.bind(service="SalesService", sale_id=sale_id).info(f"Promoter sale {decision.status}.")
        return decision.status

    async def promoter_summary(self, raw_from: str, raw_to: str, raw_status: str) -> Tuple[DateRange, List[PromoterSummaryRow]]:
        date_from, date_to = summary_range(raw_from, raw_to)
        wanted = raw_status.lower() if raw_status.lower() in SUMMARY_STATUSES else "approved"
        rows = await self.promoter_sales.list_for_summary(date_from, date_to, None if wanted == "all" else wanted)
        return DateRange(date_from=date_from, date_to=date_to), summarize_promoter_sales(rows)

    # --- Catalog ---

    async def search_products(self, q: str, limit: int) -> List[Dict[str, Any]]:
        q = q.strip()
        if len(q) < 2:
            return []
        return await self.products.search(q, limit)

    async def inventory_summary(self) -> List[InventoryProduct]:
        rows = await self.products.list_all()
        return [
            InventoryProduct(
                id=row["id"],
                name=row.get("name"),
                sku=row.get("sku") or row.get("code"),
                total_quantity=stock_total(row.get("stock")),
                retail_price=row.get("retail_price"),
            )
            for row in rows
        ]

    # --- Reports ---

    async def sales_summary(self) -> List[Dict[str, Any]]:
        return await self.summaries.list_sorted()

    async def sales_report(self, days: int, limit: int) -> List[SalesReportRow]:
        """One row per order line, newest orders first."""
        start = utcnow() - timedelta(days=days) if days > 0 else None
        orders = await self.orders.list_created_between(start, None, limit=limit)
        items = await self.items.list_for_orders([o["id"] for o in orders])
        by_order: Dict[str, List[Dict[str, Any]]] = {}
        for item in items:
            by_order.setdefault(item.get("order_id"), []).append(item)

        report = []
        for order in orders:
            for item in by_order.get(order["id"], []):
                report.append(SalesReportRow(
                    order_id=order["id"],
                    order_no=order.get("order_no"),
                    order_date=timestamp_to_utc_iso(order.get("created_at")),
                    branch=order.get("branch") or order.get("local"),
                    seller_full_name=order.get("seller"),
                    customer_id=order.get("customer_id"),
                    customer_name=order.get("customer_name"),
                    channel=order.get("channel"),
                    status=order.get("status"),
                    product_name=item.get("product_name"),
                    quantity=float(item.get("quantity") or 0),
                    subtotal=float(item.get("subtotal") or 0),
                ))
        return report

    async def returns_report(self, date_from: str, date_to: str, limit: int) -> List[Dict[str, Any]]:
        return await self.returns.list_recent(as_iso_date(date_from) or None, as_iso_date(date_to) or None, limit)

    async def today_returns(self) -> Tuple[str, int, float]:
        today = local_today().isoformat()
        rows = await self.returns.list_for_date(today)
        return today, len(rows), float(sum(float(r.get("return_amount") or 0) for r in rows))


async def get_sales_service(
    orders: OrderRepository = Depends(get_order_repository),
    items: OrderItemRepository = Depends(get_order_item_repository),
    promoter_sales: PromoterSaleRepository = Depends(get_promoter_sale_repository),
    products: ProductRepository = Depends(get_product_repository),
    returns: ProductReturnRepository = Depends(get_product_return_repository),
    summaries: SalesSummaryRepository = Depends(get_sales_summary_repository),
) -> SalesService:
    return SalesService(orders, items, promoter_sales, products, returns, summaries)
