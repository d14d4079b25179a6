# atlas_core/modules/sales/models.py
from pydantic import BaseModel, Field
from typing import List, Literal, Optional

ApprovalStatus = Literal["pending", "approved", "rejected"]

# Buckets of promoter_sales.origin
ORIGIN_KEYS = ("cochabamba", "lapaz", "elalto", "santacruz", "sucre", "encomienda", "tienda")


class PromoterSaleDecisionAPI(BaseModel):
    status: str
    note: Optional[str] = None
    ticket: Optional[str] = None
    approver: Optional[str] = None


class PromoterSummaryRow(BaseModel):
    sale_date: str
    promoter_name: str
    items: float = 0
    total_bs: float = 0
    cochabamba: float = 0
    lapaz: float = 0
    elalto: float = 0
    santacruz: float = 0
    sucre: float = 0
    encomienda: float = 0
    tienda: float = 0


class DateRange(BaseModel):
    date_from: str = Field(..., serialization_alias="from")
    date_to: str = Field(..., serialization_alias="to")


class PromoterSummaryResponse(BaseModel):
    ok: bool = True
    range: DateRange
    rows: List[PromoterSummaryRow]


class SalesReportRow(BaseModel):
    order_id: str
    order_no: Optional[int | str] = None
    order_date: Optional[str] = None
    branch: Optional[str] = None
    seller_full_name: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    channel: Optional[str] = None
    status: Optional[str] = None
    product_name: Optional[str] = None
    quantity: float = 0
    subtotal: float = 0


class InventoryProduct(BaseModel):
    id: str
    name: Optional[str] = None
    sku: Optional[str] = None
    total_quantity: float = 0
    retail_price: Optional[float] = None


class TodayReturnsResponse(BaseModel):
    ok: bool = True
    date: str
    count: int
    amount: float
